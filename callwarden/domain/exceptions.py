"""Exception taxonomy for usage governance and resilient calls.

RateLimited and RemoteError are surfaced to callers and must stay distinct so
the UI can render "try later" and "something went wrong" differently.
StoreUnavailable never leaves the ledger or the cache.
"""

from typing import Optional


class CallwardenError(Exception):
    """Base class for all callwarden errors."""


class RateLimited(CallwardenError):
    """Raised when the governor refuses a call because a cooldown is active."""

    def __init__(self, wait_seconds: int, message: Optional[str] = None):
        self.wait_seconds = wait_seconds
        self.message = message or f"Rate limited. Retry in {wait_seconds}s."
        super().__init__(self.message)


class RemoteError(CallwardenError):
    """Raised by the invoker after every retry attempt has failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Remote call '{operation}' failed after {attempts} attempt(s). "
            f"Last error: {type(last_error).__name__}: {last_error}"
        )


class StoreUnavailable(CallwardenError):
    """Raised by key-value store adapters when the backend cannot be used."""


class ConfigurationError(CallwardenError, ValueError):
    """Raised when governor, retry or cache configuration is invalid."""
