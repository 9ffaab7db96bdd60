"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the work
to the governor, the governed call service, the usage ledger and the result
cache, rendering outcomes through the UserInterface.
"""

import logging
from typing import List, Optional

from callwarden.core.services.call_service import GovernedCallService
from callwarden.core.services.fingerprint_service import FingerprintGenerator
from callwarden.core.services.rate_governor import RateGovernor, format_wait
from callwarden.domain.exceptions import RateLimited, RemoteError
from callwarden.domain.interfaces.user_interface import UserInterface
from callwarden.domain.models.common import Identity
from callwarden.domain.models.retry import RetryPolicy
from callwarden.infrastructure.cache.result_cache import ResultCache
from callwarden.infrastructure.remote.command_call import command_call
from callwarden.infrastructure.scheduling.task_scheduler import TaskScheduler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REMOTE_ERROR = 1
EXIT_RATE_LIMITED = 2


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        fingerprint: FingerprintGenerator,
        governor: RateGovernor,
        call_service: GovernedCallService,
        cache: ResultCache,
        scheduler: TaskScheduler,
        ui: UserInterface,
    ):
        """Initializes the CommandHandler with required services."""
        self.fingerprint = fingerprint
        self.governor = governor
        self.call_service = call_service
        self.cache = cache
        self.scheduler = scheduler
        self.ui = ui

    def handle_identity(self) -> int:
        """Shows the anonymous identity and the attributes it was derived from."""
        user_agent, locale, resolution, tz_offset = self.fingerprint.attributes()
        self.ui.display_table(
            "Caller identity",
            ["Attribute", "Value"],
            [
                ["identity", self.fingerprint.identify()],
                ["user agent", user_agent],
                ["locale", locale],
                ["screen resolution", resolution],
                ["timezone offset (min)", tz_offset],
            ],
        )
        return EXIT_OK

    def handle_check(self) -> int:
        """Consumes one call and reports the governor's decision."""
        decision = self.governor.check_and_consume()
        if decision.allowed:
            count = decision.usage.count if decision.usage else 0
            self.ui.display_info(f"Call allowed. Calls in current window: {count}.")
            return EXIT_OK
        self.ui.display_warning(decision.message or f"Rate limited for {decision.wait_seconds}s.")
        return EXIT_RATE_LIMITED

    def handle_usage(self) -> int:
        """Shows the current identity's usage without consuming a call."""
        snapshot = self.governor.usage()
        stats = self.cache.stats()
        rows = [
            ["identity", snapshot.identity],
            ["calls in window", snapshot.count],
            ["cooldown remaining", format_wait(snapshot.cooldown_remaining) if snapshot.cooldown_remaining else "none"],
            [
                "calls before next cooldown",
                "unlimited" if snapshot.calls_until_next_tier is None else snapshot.calls_until_next_tier,
            ],
            ["next cooldown", format_wait(snapshot.next_cooldown) if snapshot.next_cooldown else "none"],
            ["cached results", f"{stats['entries']} ({stats['expired']} expired)"],
        ]
        self.ui.display_table("Usage", ["Field", "Value"], rows)
        return EXIT_OK

    def handle_reset(self, identity: Optional[str] = None) -> int:
        """Administrative reset of an identity's usage (current identity by default)."""
        target = Identity(identity) if identity else self.fingerprint.identify()
        if self.governor.reset(target):
            self.ui.display_info(f"Usage for {target} has been reset.")
        else:
            self.ui.display_info(f"No usage recorded for {target}.")
        return EXIT_OK

    def run_due_maintenance(self) -> List[str]:
        """Runs the maintenance tasks that have come due. Silent; returns their names."""
        ran = self.scheduler.run_pending()
        if ran:
            logger.info(f"Due maintenance ran: {ran}")
        return ran

    def handle_sweep(self) -> int:
        """Runs every registered maintenance task once, immediately."""
        ran = self.scheduler.run_pending(force=True)
        logger.info(f"Sweep ran tasks: {ran}")
        self.ui.display_info(f"Ran maintenance tasks: {', '.join(ran) if ran else 'none'}.")
        return EXIT_OK

    def handle_clear_cache(self) -> int:
        """Removes every cached result."""
        removed = self.cache.clear()
        self.ui.display_info(f"Removed {removed} cached result(s).")
        return EXIT_OK

    async def handle_run(
        self,
        operation: str,
        argv: List[str],
        cache_ttl: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Runs ``argv`` as a governed, cached and retried remote call."""
        if not argv:
            self.ui.display_error("No command given. Usage: callwarden run OPERATION -- COMMAND [ARGS]...")
            return EXIT_REMOTE_ERROR
        logger.info(f"Handling 'run' for operation '{operation}': {argv}")
        try:
            output = await self.call_service.execute(
                operation,
                {"argv": argv},
                command_call(argv, timeout=timeout),
                cache_ttl=cache_ttl,
                retry_policy=retry_policy,
            )
        except RateLimited as e:
            self.ui.display_warning(e.message)
            return EXIT_RATE_LIMITED
        except RemoteError as e:
            logger.error(f"Run command failed: {e}")
            self.ui.display_error(str(e))
            return EXIT_REMOTE_ERROR
        self.ui.display_output(output, title=operation)
        return EXIT_OK
