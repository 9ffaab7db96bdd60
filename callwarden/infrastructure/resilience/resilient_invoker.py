"""Service for executing remote calls with caching and automatic retries.

Consults the result cache first, then attempts the call with exponential
backoff between attempts. Successful results are cached; the last failure is
surfaced unmasked inside RemoteError once every attempt is used up.

State machine: Idle -> Attempting(i) -> {Success | Attempting(i+1) | Exhausted}.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional

from callwarden.domain.events.call_events import (
    AttemptStarted, CacheHit, CallFailed, CallSucceeded, DomainEvent, RetryScheduled
)
from callwarden.domain.exceptions import RemoteError
from callwarden.domain.models.retry import RetryPolicy
from callwarden.infrastructure.cache.result_cache import ResultCache

logger = logging.getLogger(__name__)

RemoteCall = Callable[[], Any]  # returns the payload or an awaitable of it
Sleeper = Callable[[float], Awaitable[None]]


def _log_event(event: DomainEvent) -> None:
    logger.debug(f"EVENT: {event}")


class ResilientInvoker:
    """Executes a call with cache lookup and retries with exponential backoff."""

    def __init__(
        self,
        cache: ResultCache,
        default_policy: Optional[RetryPolicy] = None,
        sleep: Sleeper = asyncio.sleep,
        event_sink: Optional[Callable[[DomainEvent], None]] = None,
    ):
        """Initializes the ResilientInvoker.

        Args:
            cache: Result cache consulted before and populated after each call.
            default_policy: Retry policy used when invoke() is given none.
            sleep: Coroutine used for backoff waits; only the calling task is suspended.
            event_sink: Receives domain events (defaults to DEBUG logging).
        """
        self.cache = cache
        self.default_policy = default_policy or RetryPolicy()
        self.sleep = sleep
        self.dispatch_event = event_sink or _log_event

        logger.info(
            f"ResilientInvoker initialized: max_attempts={self.default_policy.max_attempts}, "
            f"base_delay={self.default_policy.base_delay}s, multiplier={self.default_policy.multiplier}"
        )

    async def invoke(
        self,
        operation: str,
        params: Optional[Mapping[str, Any]],
        call: RemoteCall,
        cache_ttl: float,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        """Returns the result of ``call()``, from the cache when possible.

        Args:
            operation: Operation name, part of the cache key.
            params: Request parameters, normalized into the cache key.
            call: Zero-argument callable performing the remote work (sync or async).
            cache_ttl: Seconds the successful result may be reused.
            retry_policy: Attempts and backoff; defaults to the invoker's policy.

        Raises:
            RemoteError: After every attempt has failed, wrapping the last error.
        """
        policy = retry_policy or self.default_policy

        cached = self.cache.get(operation, params)
        if cached is not None:
            logger.info(f"Serving '{operation}' from cache.")
            self.dispatch_event(CacheHit(operation=operation))
            return cached

        last_exception: Optional[Exception] = None
        for attempt in range(1, policy.max_attempts + 1):
            self.dispatch_event(AttemptStarted(operation=operation, attempt_number=attempt))
            start_time = time.perf_counter()
            try:
                result = call()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                last_exception = e
                if attempt < policy.max_attempts:
                    delay = policy.delay_after(attempt)
                    logger.warning(
                        f"Error calling '{operation}' on attempt {attempt}/{policy.max_attempts}: "
                        f"{type(e).__name__}: {e}. Waiting {delay:.2f}s..."
                    )
                    self.dispatch_event(RetryScheduled(
                        operation=operation, attempt_number=attempt,
                        delay_seconds=delay, error_type=type(e).__name__,
                    ))
                    await self.sleep(delay)
                continue

            latency_ms = (time.perf_counter() - start_time) * 1000
            self.dispatch_event(CallSucceeded(operation=operation, attempts=attempt, latency_ms=latency_ms))
            self.cache.put(operation, params, result, cache_ttl)
            return result

        logger.error(
            f"Max attempts ({policy.max_attempts}) reached for '{operation}'. "
            f"Last error: {type(last_exception).__name__}: {last_exception}"
        )
        self.dispatch_event(CallFailed(
            operation=operation, attempts=policy.max_attempts,
            error_type=type(last_exception).__name__, error_message=str(last_exception),
        ))
        raise RemoteError(operation, policy.max_attempts, last_exception) from last_exception
