"""Fingerprint Generator.

Derives a short, stable, anonymous identity string from environment
attributes. This is coarse de-duplication, not authentication: collisions
are acceptable and the identity maps back to no personal data.
"""

import logging
from typing import Callable, Optional, Tuple

from callwarden.domain.interfaces.environment import EnvironmentProvider
from callwarden.domain.interfaces.hashing import StringHasher
from callwarden.domain.models.common import Identity
from callwarden.infrastructure.hashing import PolynomialHasher

logger = logging.getLogger(__name__)

UNKNOWN_ATTRIBUTE = "unknown"
ATTRIBUTE_SEPARATOR = "|"


class FingerprintGenerator:
    """Hashes user agent, locale, screen resolution and timezone offset."""

    def __init__(self, environment: EnvironmentProvider, hasher: Optional[StringHasher] = None):
        self.environment = environment
        self.hasher = hasher or PolynomialHasher()

    def _read(self, name: str, getter: Callable[[], object]) -> str:
        try:
            value = getter()
        except Exception as e:
            logger.debug(f"Environment attribute '{name}' unavailable ({type(e).__name__}: {e}); using fallback.")
            return UNKNOWN_ATTRIBUTE
        if value is None or str(value) == "":
            return UNKNOWN_ATTRIBUTE
        return str(value)

    def attributes(self) -> Tuple[str, str, str, str]:
        """Returns the resolved (user_agent, locale, resolution, tz_offset) strings."""
        return (
            self._read("user_agent", self.environment.user_agent),
            self._read("locale", self.environment.locale),
            self._read("screen_resolution", self.environment.screen_resolution),
            self._read("timezone_offset", self.environment.timezone_offset),
        )

    def identify(self) -> Identity:
        """Returns the identity for the current environment. Never raises."""
        fingerprint = ATTRIBUTE_SEPARATOR.join(self.attributes())
        return Identity(self.hasher.hash(fingerprint))
