"""Interface for the persistent key-value store.

Defines the contract for a durable, synchronous, string-keyed store shared by
the usage ledger and the result cache (each in its own key namespace).
"""

import abc
from typing import ContextManager, List, Optional


class KeyValueStore(abc.ABC):
    """Abstract Base Class for string-keyed persistent storage.

    Implementations raise StoreUnavailable when the backend cannot be read
    or written; callers decide how to degrade.
    """

    @abc.abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Returns the stored text for ``key``, or None if absent."""
        pass

    @abc.abstractmethod
    def set(self, key: str, value: str) -> None:
        """Stores ``value`` under ``key``, persisting immediately."""
        pass

    @abc.abstractmethod
    def delete(self, key: str) -> bool:
        """Removes ``key``. Returns True if something was removed."""
        pass

    @abc.abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """Returns a snapshot of the keys starting with ``prefix``."""
        pass

    @abc.abstractmethod
    def lock(self, key: str) -> ContextManager[None]:
        """Holds a reentrant lock named ``key`` shared by every client of the store.

        For a persistent store this excludes other processes using the same
        location. Raises StoreUnavailable if the lock cannot be acquired.
        """
        pass
