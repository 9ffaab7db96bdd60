"""Value object representing retry backoff configuration."""

from dataclasses import dataclass

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SECONDS = 1.0
DEFAULT_MULTIPLIER = 2.0


@dataclass(frozen=True)
class RetryPolicy:
    """Per-call retry configuration. Not persisted."""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    multiplier: float = DEFAULT_MULTIPLIER

    def __post_init__(self):
        """Validate retry values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait between attempt ``attempt`` and ``attempt + 1`` (1-based)."""
        return self.base_delay * self.multiplier ** (attempt - 1)
