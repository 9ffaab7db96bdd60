"""Concrete implementation of the Result Cache.

Memoizes completed call results keyed by ``cache:{operation}:{paramHash}``
with a per-entry TTL. Reusing a result for identical normalized input within
the TTL is an accepted trade-off: the remote operation is not guaranteed to
be referentially identical across calls.

When the store is unavailable every lookup is a miss and every write a no-op.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from callwarden.domain.exceptions import StoreUnavailable
from callwarden.domain.interfaces.clock import Clock
from callwarden.domain.interfaces.hashing import StringHasher
from callwarden.domain.interfaces.key_value_store import KeyValueStore
from callwarden.domain.models.cache import CacheEntry
from callwarden.domain.models.common import CACHE_NAMESPACE, CacheKey
from callwarden.infrastructure.clock import SystemClock
from callwarden.infrastructure.hashing import Sha256Hasher

logger = logging.getLogger(__name__)


def normalize_params(params: Optional[Mapping[str, Any]]) -> str:
    """Serializes request parameters with a stable field ordering."""
    return json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)


class ResultCache:
    """TTL cache for remote call results, persisted in the key-value store."""

    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None, hasher: Optional[StringHasher] = None):
        self.store = store
        self.clock = clock or SystemClock()
        self.hasher = hasher or Sha256Hasher()

    def make_key(self, operation: str, params: Optional[Mapping[str, Any]]) -> CacheKey:
        """Builds the store key for an (operation, params) pair."""
        param_hash = self.hasher.hash(f"{operation}|{normalize_params(params)}")
        return CacheKey(f"{CACHE_NAMESPACE}{operation}:{param_hash}")

    def _read(self, key: str) -> Optional[CacheEntry]:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_json(raw)
        except ValueError as e:
            logger.warning(f"Corrupt cache entry {key[:40]}...: {e}. Removing.")
            self.store.delete(key)
            return None

    def get(self, operation: str, params: Optional[Mapping[str, Any]]) -> Optional[Any]:
        """Returns the cached payload, or None on a miss or expired entry."""
        key = self.make_key(operation, params)
        now = self.clock.now()
        try:
            entry = self._read(key)
            if entry is None:
                logger.debug(f"Cache MISS for key: {key[:40]}...")
                return None
            if not entry.is_valid(now):
                logger.debug(f"Cache EXPIRED for key: {key[:40]}... Evicting.")
                self.store.delete(key)
                return None
        except StoreUnavailable as e:
            logger.warning(f"Cache store unavailable, treating lookup as a miss: {e}")
            return None
        logger.debug(f"Cache HIT for key: {key[:40]}...")
        return entry.payload

    def put(self, operation: str, params: Optional[Mapping[str, Any]], payload: Any, ttl: float) -> None:
        """Stores ``payload`` for ``ttl`` seconds, persisting immediately."""
        if ttl <= 0:
            logger.debug(f"Not caching result of '{operation}': ttl={ttl}")
            return
        key = self.make_key(operation, params)
        entry = CacheEntry(payload=payload, stored_at=self.clock.now(), ttl=ttl)
        try:
            serialized = entry.to_json()
        except (TypeError, ValueError) as e:
            logger.warning(f"Result of '{operation}' is not JSON-serializable, not caching: {e}")
            return
        try:
            self.store.set(key, serialized)
            logger.debug(f"Cache PUT key: {key[:40]}... TTL: {ttl}s")
        except StoreUnavailable as e:
            logger.warning(f"Cache store unavailable, result of '{operation}' not cached: {e}")

    def invalidate(self, operation: str, params: Optional[Mapping[str, Any]]) -> bool:
        """Removes one entry. Returns True if it existed."""
        try:
            return self.store.delete(self.make_key(operation, params))
        except StoreUnavailable as e:
            logger.warning(f"Cache store unavailable, could not invalidate: {e}")
            return False

    def clear(self) -> int:
        """Removes every cache entry. Returns the number removed."""
        removed = 0
        try:
            for key in self.store.keys(CACHE_NAMESPACE):
                if self.store.delete(key):
                    removed += 1
        except StoreUnavailable as e:
            logger.warning(f"Cache store unavailable, clear incomplete: {e}")
        logger.info(f"Cleared result cache. Removed {removed} entries.")
        return removed

    def sweep(self, now: Optional[float] = None) -> int:
        """Evicts expired entries. Returns the number removed."""
        now = self.clock.now() if now is None else now
        removed = 0
        try:
            for key in self.store.keys(CACHE_NAMESPACE):
                entry = self._read(key)
                if entry is not None and not entry.is_valid(now) and self.store.delete(key):
                    removed += 1
        except StoreUnavailable as e:
            logger.warning(f"Cache sweep interrupted, store unavailable: {e}")
        if removed:
            logger.info(f"Cache sweep evicted {removed} expired entries")
        return removed

    def stats(self) -> Dict[str, int]:
        """Counts stored entries (valid and expired)."""
        now = self.clock.now()
        stats = {"entries": 0, "expired": 0}
        try:
            for key in self.store.keys(CACHE_NAMESPACE):
                entry = self._read(key)
                if entry is None:
                    continue
                stats["entries"] += 1
                if not entry.is_valid(now):
                    stats["expired"] += 1
        except StoreUnavailable as e:
            logger.warning(f"Cache store unavailable, stats incomplete: {e}")
        return stats
