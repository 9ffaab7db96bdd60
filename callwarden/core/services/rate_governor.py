"""Rate Governor: the public decision point for outbound calls.

Answers "is this call allowed right now, and if not, how long must the caller
wait?" for the anonymous identity of the current environment.

A refused attempt during an active cooldown is never counted and never
extends the cooldown, so callers hammering a blocked identity cannot make
their own wait longer.
"""

import logging
import math
from typing import Callable, Optional

from callwarden.core.services.fingerprint_service import FingerprintGenerator
from callwarden.core.services.tiered_policy import TieredRatePolicy
from callwarden.domain.events.call_events import CallPermitted, CallRefused, DomainEvent
from callwarden.domain.exceptions import RateLimited
from callwarden.domain.interfaces.clock import Clock
from callwarden.domain.models.common import Identity
from callwarden.domain.models.usage import GovernorDecision, UsageRecord, UsageSnapshot
from callwarden.infrastructure.clock import SystemClock
from callwarden.infrastructure.usage.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


def format_wait(seconds: float) -> str:
    """Renders a wait as '45 seconds', '2 minutes' or '1 hour' (rounded up)."""
    seconds = max(0, math.ceil(seconds))
    if seconds < 60:
        value, unit = seconds, "second"
    elif seconds < 3600:
        value, unit = math.ceil(seconds / 60), "minute"
    else:
        value, unit = math.ceil(seconds / 3600), "hour"
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def _log_event(event: DomainEvent) -> None:
    logger.debug(f"EVENT: {event}")


class RateGovernor:
    """Progressive, tiered rate limiting keyed by an anonymous fingerprint."""

    def __init__(
        self,
        fingerprint: FingerprintGenerator,
        ledger: UsageLedger,
        policy: TieredRatePolicy,
        clock: Optional[Clock] = None,
        event_sink: Optional[Callable[[DomainEvent], None]] = None,
    ):
        self.fingerprint = fingerprint
        self.ledger = ledger
        self.policy = policy
        self.clock = clock or SystemClock()
        self.dispatch_event = event_sink or _log_event

    def _refusal(self, identity: Identity, wait: float, record: UsageRecord, started: bool) -> GovernorDecision:
        wait_seconds = math.ceil(wait)
        if started:
            message = (
                f"You have made {record.count} calls. "
                f"Please wait {format_wait(wait_seconds)} before trying again."
            )
        else:
            message = f"Please wait {format_wait(wait_seconds)} before trying again."
        self.dispatch_event(CallRefused(identity=identity, wait_seconds=wait_seconds, cooldown_started=started))
        return GovernorDecision(allowed=False, wait_seconds=wait_seconds, message=message, usage=record)

    def check_and_consume(self, now: Optional[float] = None) -> GovernorDecision:
        """Decides whether one call may proceed, counting it if it does.

        Args:
            now: Decision time; defaults to the injected clock.

        Returns:
            A GovernorDecision. Refusals carry wait_seconds and a message.
        """
        now = self.clock.now() if now is None else now
        identity = self.fingerprint.identify()

        with self.ledger.lock_for(identity):
            record = self.ledger.get(identity) or UsageRecord(count=0, last_used_at=now)

            if record.in_cooldown(now):
                logger.info(f"Call refused for {identity}: cooldown active for {record.cooldown_until - now:.0f}s")
                return self._refusal(identity, record.cooldown_until - now, record, started=False)

            tier = self.policy.tier_for(record.count)
            updated = self.ledger.record(identity, now)

            # Crossing a tier ceiling imposes the cooldown of the tier entered
            if updated.count > tier.ceiling:
                entered = self.policy.tier_for(updated.count)
                if entered.cooldown > 0:
                    self.ledger.set_cooldown(identity, now + entered.cooldown)
                    updated.cooldown_until = now + entered.cooldown
                    logger.info(
                        f"Identity {identity} exceeded {tier.ceiling} calls; "
                        f"cooldown of {entered.cooldown:.0f}s started"
                    )
                    return self._refusal(identity, entered.cooldown, updated, started=True)

        self.dispatch_event(CallPermitted(identity=identity, count=updated.count))
        return GovernorDecision(allowed=True, usage=updated)

    def enforce(self, now: Optional[float] = None) -> GovernorDecision:
        """Like check_and_consume, but raises RateLimited on refusal."""
        decision = self.check_and_consume(now)
        if not decision.allowed:
            raise RateLimited(decision.wait_seconds or 0, decision.message)
        return decision

    def usage(self, now: Optional[float] = None) -> UsageSnapshot:
        """Returns the current identity's standing without consuming a call."""
        now = self.clock.now() if now is None else now
        identity = self.fingerprint.identify()
        record = self.ledger.get(identity) or UsageRecord(count=0, last_used_at=now)
        count = record.count
        if now - record.last_used_at > self.policy.tier_for(count).window:
            count = 0

        tier = self.policy.tier_for(count)
        following = self.policy.next_tier(tier)
        cooldown_remaining = math.ceil(record.cooldown_until - now) if record.in_cooldown(now) else 0
        return UsageSnapshot(
            identity=identity,
            count=count,
            cooldown_remaining=cooldown_remaining,
            calls_until_next_tier=None if tier.unbounded else int(tier.ceiling - count),
            next_cooldown=following.cooldown if following is not None else None,
            tier_ceiling=tier.ceiling,
        )

    def reset(self, identity: Optional[Identity] = None) -> bool:
        """Clears the usage of ``identity`` (the current one by default)."""
        return self.ledger.reset(identity or self.fingerprint.identify())
