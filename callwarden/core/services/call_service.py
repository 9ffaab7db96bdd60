"""Governed call service.

Runs the full control flow for one outbound call: ask the governor for
permission, then let the resilient invoker perform the call (cache first,
retries after). A cache hit still consumes quota because permission is
asked before the cache is consulted.
"""

import logging
from typing import Any, Callable, Mapping, Optional

from callwarden.core.services.rate_governor import RateGovernor
from callwarden.domain.models.retry import RetryPolicy
from callwarden.infrastructure.resilience.resilient_invoker import RemoteCall, ResilientInvoker

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 5 * 60


class GovernedCallService:
    """Rate-limited, cached, retried execution of remote calls."""

    def __init__(
        self,
        governor: RateGovernor,
        invoker: ResilientInvoker,
        ttl_for: Optional[Callable[[str], float]] = None,
    ):
        """Initializes the service.

        Args:
            governor: Decides whether the call may proceed.
            invoker: Executes permitted calls.
            ttl_for: Maps an operation name to its default cache TTL in seconds.
        """
        self.governor = governor
        self.invoker = invoker
        self.ttl_for = ttl_for or (lambda operation: DEFAULT_CACHE_TTL_SECONDS)

    async def execute(
        self,
        operation: str,
        params: Optional[Mapping[str, Any]],
        call: RemoteCall,
        cache_ttl: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        """Performs ``call`` if the governor allows it.

        Raises:
            RateLimited: If the current identity is cooling down.
            RemoteError: If every attempt of the call failed.
        """
        decision = self.governor.enforce()
        logger.debug(f"Call '{operation}' permitted (count={decision.usage.count if decision.usage else '?'})")
        ttl = self.ttl_for(operation) if cache_ttl is None else cache_ttl
        return await self.invoker.invoke(operation, params, call, ttl, retry_policy)
