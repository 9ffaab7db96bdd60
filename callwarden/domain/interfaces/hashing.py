"""Interface for the non-cryptographic hash functions.

Identity fingerprints and cache keys each take their own hasher so either can
be swapped independently. Only low collision probability is required.
"""

import abc


class StringHasher(abc.ABC):
    """Maps a string to a short, stable digest string."""

    @abc.abstractmethod
    def hash(self, text: str) -> str:
        pass
