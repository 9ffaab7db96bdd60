"""Value objects for usage governance: ledger records, tiers and decisions."""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from callwarden.domain.models.common import Identity

Ceiling = Union[int, float]  # int, or math.inf for the unbounded tier


@dataclass
class UsageRecord:
    """Calls observed for one identity in its current window."""
    count: int = 0
    last_used_at: float = 0.0
    cooldown_until: Optional[float] = None

    def __post_init__(self):
        if self.count < 0:
            raise ValueError("count must be >= 0")
        if self.cooldown_until is not None and self.cooldown_until < self.last_used_at:
            self.cooldown_until = self.last_used_at

    def in_cooldown(self, now: float) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until

    def to_json(self) -> str:
        return json.dumps({
            "count": self.count,
            "last_used_at": self.last_used_at,
            "cooldown_until": self.cooldown_until,
        })

    @classmethod
    def from_json(cls, raw: str) -> "UsageRecord":
        """Parses a stored record.

        Raises:
            ValueError: If the stored text is not a valid record.
        """
        try:
            data: Dict[str, Any] = json.loads(raw)
            return cls(
                count=int(data["count"]),
                last_used_at=float(data["last_used_at"]),
                cooldown_until=(
                    float(data["cooldown_until"])
                    if data.get("cooldown_until") is not None else None
                ),
            )
        except (TypeError, KeyError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed usage record: {e}") from e


@dataclass(frozen=True)
class RateTier:
    """A usage-count bracket with its observation window and cooldown.

    Attributes:
        ceiling: Highest cumulative count covered by this tier (math.inf for the last).
        window: Seconds of inactivity after which the count starts over.
        cooldown: Seconds a caller is blocked when crossing into this tier.
    """
    ceiling: Ceiling
    window: float
    cooldown: float = 0.0

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.ceiling)


@dataclass
class GovernorDecision:
    """Outcome of a single check_and_consume call."""
    allowed: bool
    wait_seconds: Optional[int] = None
    message: Optional[str] = None
    usage: Optional[UsageRecord] = None


@dataclass
class UsageSnapshot:
    """Read-only view of an identity's standing, for display."""
    identity: Identity
    count: int
    cooldown_remaining: int = 0
    calls_until_next_tier: Optional[int] = None
    next_cooldown: Optional[float] = None
    tier_ceiling: Ceiling = field(default=math.inf)
