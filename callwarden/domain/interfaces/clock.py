"""
Clock abstraction for time operations.
Allows faking time in tests.
"""
from abc import ABC, abstractmethod


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> float:
        """Get current time as float seconds since the Unix epoch."""
        pass
