"""Tiered Rate Policy.

Maps a cumulative usage count to the tier that governs it. The tier table is
configuration: any table may be supplied as long as ceilings ascend, the last
tier is unbounded and cooldowns never decrease (later tiers are never
friendlier than earlier ones).
"""

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

from callwarden.domain.exceptions import ConfigurationError
from callwarden.domain.models.usage import Ceiling, RateTier

MINUTE = 60.0
HOUR = 60 * MINUTE

# Unlimited within the first 8 calls, then progressively stricter.
REFERENCE_TIERS: List[RateTier] = [
    RateTier(ceiling=8, window=10 * MINUTE, cooldown=0),
    RateTier(ceiling=12, window=30 * MINUTE, cooldown=30),
    RateTier(ceiling=18, window=1 * HOUR, cooldown=1 * MINUTE),
    RateTier(ceiling=25, window=6 * HOUR, cooldown=30 * MINUTE),
    RateTier(ceiling=35, window=12 * HOUR, cooldown=45 * MINUTE),
    RateTier(ceiling=math.inf, window=24 * HOUR, cooldown=60 * MINUTE),
]

_UNBOUNDED_MARKERS = (None, "inf", "infinity", "unbounded")


def _parse_ceiling(raw: Any) -> Ceiling:
    if isinstance(raw, str):
        raw = raw.strip().lower()
    if raw in _UNBOUNDED_MARKERS or (isinstance(raw, float) and math.isinf(raw)):
        return math.inf
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid tier ceiling: {raw!r}") from e


class TieredRatePolicy:
    """Ordered, validated list of rate tiers."""

    def __init__(self, tiers: Sequence[RateTier] = REFERENCE_TIERS):
        self.tiers: List[RateTier] = list(tiers)
        self._validate()

    def _validate(self) -> None:
        if not self.tiers:
            raise ConfigurationError("At least one rate tier is required")
        previous: Optional[RateTier] = None
        for index, tier in enumerate(self.tiers):
            if tier.ceiling < 0:
                raise ConfigurationError(f"Tier {index}: ceiling must be >= 0")
            if tier.window < 0 or tier.cooldown < 0:
                raise ConfigurationError(f"Tier {index}: window and cooldown must be >= 0")
            if previous is not None:
                if tier.ceiling <= previous.ceiling:
                    raise ConfigurationError(f"Tier {index}: ceilings must be strictly ascending")
                if tier.cooldown < previous.cooldown:
                    raise ConfigurationError(f"Tier {index}: cooldown must not decrease across tiers")
            previous = tier
        if not self.tiers[-1].unbounded:
            raise ConfigurationError("The last tier must have an unbounded ceiling")

    @classmethod
    def from_config(cls, raw_tiers: Iterable[Dict[str, Any]]) -> "TieredRatePolicy":
        """Builds a policy from config dicts with ``ceiling``, ``window`` and ``cooldown`` keys."""
        tiers = []
        for index, raw in enumerate(raw_tiers):
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Tier {index}: expected a mapping, got {type(raw).__name__}")
            try:
                tiers.append(RateTier(
                    ceiling=_parse_ceiling(raw.get("ceiling")),
                    window=float(raw["window"]),
                    cooldown=float(raw.get("cooldown", 0)),
                ))
            except ConfigurationError:
                raise
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Tier {index}: invalid definition {raw!r}: {e}") from e
        return cls(tiers)

    def tier_for(self, count: int) -> RateTier:
        """Returns the first tier whose ceiling is >= ``count``."""
        for tier in self.tiers:
            if tier.ceiling >= count:
                return tier
        return self.tiers[-1]

    def next_tier(self, tier: RateTier) -> Optional[RateTier]:
        """Returns the tier after ``tier``, or None for the last one."""
        index = self.tiers.index(tier)
        return self.tiers[index + 1] if index + 1 < len(self.tiers) else None
