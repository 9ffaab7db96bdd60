"""Domain Events related to governed calls and resilience.

Examples include events for when calls are refused, served from cache,
retried, fail, or succeed.
"""

from dataclasses import dataclass, field
import time


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Governor Events ---

@dataclass
class CallPermitted(DomainEvent):
    """Event triggered when the governor lets a call through."""
    identity: str
    count: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class CallRefused(DomainEvent):
    """Event triggered when a call is refused because of a cooldown."""
    identity: str
    wait_seconds: int
    cooldown_started: bool  # False when an existing cooldown was still active
    timestamp: float = field(default_factory=time.time)


# --- Invoker Events ---

@dataclass
class CacheHit(DomainEvent):
    """Event triggered when a result is served from the cache."""
    operation: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class AttemptStarted(DomainEvent):
    """Event triggered before each attempt of a remote call."""
    operation: str
    attempt_number: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed call."""
    operation: str
    attempt_number: int
    delay_seconds: float
    error_type: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CallSucceeded(DomainEvent):
    """Event triggered when a remote call returns a result."""
    operation: str
    attempts: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class CallFailed(DomainEvent):
    """Event triggered when a remote call fails definitively (after retries)."""
    operation: str
    attempts: int
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)
