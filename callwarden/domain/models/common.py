"""Defines common Value Objects used across different domain contexts.

These objects represent simple values like identities and store keys,
ensuring consistency and type safety.
"""

from typing import NewType

# === Identity Context ===
Identity = NewType("Identity", str)              # Anonymous base-36 fingerprint

# === Store Context ===
# Timestamps are float seconds since the epoch, durations are float seconds.
CacheKey = NewType("CacheKey", str)

USAGE_NAMESPACE = "usage:"
USAGE_LOCK_NAMESPACE = "usage-lock:"
CACHE_NAMESPACE = "cache:"
SCHEDULE_NAMESPACE = "schedule:"
