"""Usage Ledger implementation.

Tracks per-identity call counts, last-used timestamps and cooldown deadlines
under the ``usage:`` namespace of the key-value store. This is the only
component that writes to that namespace.

The ledger fails open: when the store is unavailable every call is treated
as coming from a fresh, unthrottled identity.
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator, List, Optional

from callwarden.core.services.tiered_policy import TieredRatePolicy
from callwarden.domain.exceptions import StoreUnavailable
from callwarden.domain.interfaces.key_value_store import KeyValueStore
from callwarden.domain.models.common import USAGE_LOCK_NAMESPACE, USAGE_NAMESPACE, Identity
from callwarden.domain.models.usage import UsageRecord

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_MAX_AGE_SECONDS = 60 * 60  # Forget identities idle for an hour


class UsageLedger:
    """Persistent per-identity usage records with per-identity locking.

    Locks hold across processes that share one store directory, so
    concurrent CLI invocations cannot both consume the same count.
    """

    def __init__(self, store: KeyValueStore, policy: TieredRatePolicy):
        """Initializes the ledger.

        Args:
            store: Persistent key-value store shared with the result cache.
            policy: Tier table used to find the window that applies to a record.
        """
        self.store = store
        self.policy = policy
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @staticmethod
    def _key(identity: str) -> str:
        return f"{USAGE_NAMESPACE}{identity}"

    @contextmanager
    def lock_for(self, identity: Identity) -> Iterator[None]:
        """Serializes read-modify-write sequences for one identity.

        Threads of this process queue on an in-process RLock; other processes
        sharing the store are excluded by the store's own lock. If the store
        cannot be locked the sequence proceeds unguarded (fail open).
        Reentrant, so callers may hold it around several ledger calls.
        """
        with self._registry_lock:
            lock = self._locks.setdefault(identity, threading.RLock())
        with lock, ExitStack() as stack:
            try:
                stack.enter_context(self.store.lock(f"{USAGE_LOCK_NAMESPACE}{identity}"))
            except StoreUnavailable as e:
                logger.warning(f"Usage store lock unavailable for {identity}, proceeding unguarded: {e}")
            yield

    def _load(self, identity: Identity) -> Optional[UsageRecord]:
        """Reads a record; raises StoreUnavailable, drops corrupt records."""
        raw = self.store.get(self._key(identity))
        if raw is None:
            return None
        try:
            return UsageRecord.from_json(raw)
        except ValueError as e:
            logger.warning(f"Discarding corrupt usage record for {identity}: {e}")
            return None

    def _save(self, identity: Identity, record: UsageRecord) -> None:
        self.store.set(self._key(identity), record.to_json())

    # --- Ledger Operations ---

    def get(self, identity: Identity) -> Optional[UsageRecord]:
        """Returns the current record for ``identity``, or None."""
        try:
            return self._load(identity)
        except StoreUnavailable as e:
            logger.warning(f"Usage store unavailable, treating {identity} as new: {e}")
            return None

    def record(self, identity: Identity, now: float) -> UsageRecord:
        """Counts one call at ``now`` and returns the updated record.

        If the tier window that applies to the previous count has elapsed
        since the last call, the count starts over and any cooldown is cleared.
        """
        with self.lock_for(identity):
            try:
                previous = self._load(identity)
            except StoreUnavailable as e:
                logger.warning(f"Usage store unavailable, not recording call for {identity}: {e}")
                return UsageRecord(count=1, last_used_at=now)

            record = previous or UsageRecord(count=0, last_used_at=now)
            if previous is not None:
                window = self.policy.tier_for(previous.count).window
                if now - previous.last_used_at > window:
                    logger.debug(f"Usage window of {window:.0f}s elapsed for {identity}; starting over.")
                    record = UsageRecord(count=0, last_used_at=now)

            record.count += 1
            record.last_used_at = now
            if record.cooldown_until is not None and record.cooldown_until < now:
                record.cooldown_until = None

            try:
                self._save(identity, record)
            except StoreUnavailable as e:
                logger.warning(f"Failed to persist usage for {identity}: {e}")
            logger.debug(f"Recorded call for {identity}: count={record.count}")
            return record

    def set_cooldown(self, identity: Identity, until: float) -> None:
        """Blocks ``identity`` until the ``until`` timestamp."""
        with self.lock_for(identity):
            try:
                record = self._load(identity) or UsageRecord(count=0, last_used_at=until)
                record.cooldown_until = max(until, record.last_used_at)
                self._save(identity, record)
                logger.info(f"Cooldown set for {identity} until {record.cooldown_until:.0f}")
            except StoreUnavailable as e:
                logger.warning(f"Usage store unavailable, cooldown for {identity} not persisted: {e}")

    def reset(self, identity: Identity) -> bool:
        """Administrative reset: forgets every record of ``identity``."""
        with self.lock_for(identity):
            try:
                removed = self.store.delete(self._key(identity))
            except StoreUnavailable as e:
                logger.warning(f"Usage store unavailable, could not reset {identity}: {e}")
                return False
        logger.info(f"Usage reset for {identity} (record existed: {removed})")
        return removed

    def identities(self) -> List[Identity]:
        """Returns every identity that currently has a record."""
        try:
            keys = self.store.keys(USAGE_NAMESPACE)
        except StoreUnavailable as e:
            logger.warning(f"Usage store unavailable, cannot list identities: {e}")
            return []
        return [Identity(k[len(USAGE_NAMESPACE):]) for k in keys]

    def sweep(self, now: float, max_age: float = DEFAULT_SWEEP_MAX_AGE_SECONDS) -> int:
        """Removes records whose last use is more than ``max_age`` seconds before ``now``.

        Keys are snapshotted without any lock; each identity is then locked
        only while its own record is re-checked and deleted.

        Returns:
            The number of records removed.
        """
        removed = 0
        for identity in self.identities():
            with self.lock_for(identity):
                try:
                    record = self._load(identity)
                    if record is None or now - record.last_used_at > max_age:
                        if self.store.delete(self._key(identity)):
                            removed += 1
                except StoreUnavailable as e:
                    logger.warning(f"Usage sweep interrupted, store unavailable: {e}")
                    break
        if removed:
            logger.info(f"Usage sweep removed {removed} stale record(s)")
        return removed
