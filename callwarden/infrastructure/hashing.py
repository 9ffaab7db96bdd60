"""String hashers for identity fingerprints and cache keys."""

import hashlib

from callwarden.domain.interfaces.hashing import StringHasher

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    """Renders a non-negative integer in base 36 (lowercase)."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


class PolynomialHasher(StringHasher):
    """32-bit polynomial rolling hash (``h = h * 31 + c``) rendered in base 36.

    ``c`` runs over UTF-16 code units, so a character outside the Basic
    Multilingual Plane contributes its two surrogates, as browser-side
    fingerprints do. Wraps like a signed 32-bit integer and takes the
    absolute value, so the output is at most seven base-36 characters.
    """

    def hash(self, text: str) -> str:
        data = text.encode("utf-16-le", errors="surrogatepass")
        h = 0
        for i in range(0, len(data), 2):
            unit = data[i] | (data[i + 1] << 8)
            h = (h * 31 + unit) & 0xFFFFFFFF
        if h >= 0x80000000:
            h -= 0x100000000
        return to_base36(abs(h))


class Sha256Hasher(StringHasher):
    """Truncated SHA-256 hex digest."""

    def __init__(self, length: int = 32):
        self.length = length

    def hash(self, text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()[:self.length]
