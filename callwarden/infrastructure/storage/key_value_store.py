"""Concrete implementations of the KeyValueStore interface.

DiskKeyValueStore keeps ledger and cache entries in a ``diskcache`` directory
so they survive restarts; InMemoryKeyValueStore is used by tests and by
callers that do not need persistence.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import diskcache as dc

from callwarden.domain.exceptions import StoreUnavailable
from callwarden.domain.interfaces.key_value_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORE_DIR = Path.home() / ".callwarden" / "store"
DEFAULT_LOCK_EXPIRE_SECONDS = 30.0
_BACKEND_ERRORS = (OSError, sqlite3.Error, dc.Timeout)


class DiskKeyValueStore(KeyValueStore):
    """Persistent store backed by a diskcache directory (SQLite + files)."""

    def __init__(
        self,
        directory: Union[str, Path] = DEFAULT_STORE_DIR,
        timeout: float = 1.0,
        lock_expire: float = DEFAULT_LOCK_EXPIRE_SECONDS,
    ):
        """Opens (or creates) the store directory.

        A directory that cannot be opened is logged and leaves the store
        unavailable; every operation then raises StoreUnavailable.
        """
        self.directory = Path(directory)
        self.lock_expire = lock_expire
        self._cache: Optional[dc.Cache] = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._cache = dc.Cache(str(self.directory), timeout=timeout)
            logger.info(f"Opened persistent store at: {self.directory}")
        except _BACKEND_ERRORS as e:
            logger.error(f"Failed to open persistent store at {self.directory}: {e}", exc_info=True)

    def _backend(self) -> dc.Cache:
        if self._cache is None:
            raise StoreUnavailable(f"Persistent store at {self.directory} is not available")
        return self._cache

    def get(self, key: str) -> Optional[str]:
        try:
            return self._backend().get(key, default=None, retry=True)
        except _BACKEND_ERRORS as e:
            raise StoreUnavailable(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self._backend().set(key, value, retry=True)
        except _BACKEND_ERRORS as e:
            raise StoreUnavailable(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return bool(self._backend().delete(key, retry=True))
        except _BACKEND_ERRORS as e:
            raise StoreUnavailable(f"Failed to delete '{key}': {e}") from e

    def keys(self, prefix: str = "") -> List[str]:
        try:
            return [k for k in self._backend().iterkeys() if isinstance(k, str) and k.startswith(prefix)]
        except _BACKEND_ERRORS as e:
            raise StoreUnavailable(f"Failed to list keys with prefix '{prefix}': {e}") from e

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """Holds a ``diskcache.RLock`` on ``key``, shared across processes.

        The lock entry expires after ``lock_expire`` seconds so a crashed
        holder cannot block the store forever.
        """
        backend = self._backend()
        lock = dc.RLock(backend, key, expire=self.lock_expire)
        try:
            lock.acquire()
        except _BACKEND_ERRORS as e:
            raise StoreUnavailable(f"Failed to lock '{key}': {e}") from e
        try:
            yield
        finally:
            try:
                lock.release()
            except _BACKEND_ERRORS as e:
                logger.warning(f"Failed to release lock '{key}', it expires in {self.lock_expire}s: {e}")

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()
            logger.debug(f"Closed persistent store at: {self.directory}")


class InMemoryKeyValueStore(KeyValueStore):
    """
    In-memory store for testing.
    Set ``available = False`` to simulate a backend outage.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.RLock] = {}
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailable("In-memory store marked unavailable")

    def get(self, key: str) -> Optional[str]:
        self._check()
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._check()
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        self._check()
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        self._check()
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        self._check()
        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.RLock())
        with key_lock:
            yield
