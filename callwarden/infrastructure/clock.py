"""
Clock implementations: the real system clock and a fake for tests.
"""
import time

from callwarden.domain.interfaces.clock import Clock


class SystemClock(Clock):
    """Real system clock implementation."""

    def now(self) -> float:
        return time.time()


class FakeClock(Clock):
    """
    Fake clock for testing.
    Time can be set and advanced manually.
    """

    def __init__(self, initial: float = 1_705_320_000.0):
        self._current = float(initial)

    def now(self) -> float:
        return self._current

    def set(self, timestamp: float) -> None:
        """Set current time."""
        self._current = float(timestamp)

    def advance_seconds(self, seconds: float) -> None:
        """Advance time by seconds."""
        self._current += seconds

    def advance_minutes(self, minutes: float) -> None:
        """Advance time by minutes."""
        self.advance_seconds(minutes * 60)

    def advance_hours(self, hours: float) -> None:
        """Advance time by hours."""
        self.advance_seconds(hours * 3600)
