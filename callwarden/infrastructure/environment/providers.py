"""EnvironmentProvider adapters.

- LocalEnvironmentProvider: the running process (platform, locale, configured display, local time).
- HeaderEnvironmentProvider: HTTP-style request headers, for servers fingerprinting remote callers.
- StaticEnvironmentProvider: fixed values, for tests and configuration overrides.
"""

import locale
import logging
import os
import platform
from datetime import datetime
from typing import Mapping, Optional

from callwarden import __version__
from callwarden.domain.interfaces.environment import EnvironmentProvider

logger = logging.getLogger(__name__)


class LocalEnvironmentProvider(EnvironmentProvider):
    """Reads attributes of the local process and machine."""

    def __init__(self, app_name: str = "callwarden", screen_resolution: Optional[str] = None):
        self.app_name = app_name
        # Configured display size; the terminal size is not stable per machine
        self._screen_resolution = screen_resolution

    def user_agent(self) -> Optional[str]:
        return (
            f"{self.app_name}/{__version__} "
            f"({platform.system()} {platform.release()}; {platform.machine()}; {platform.node()}) "
            f"Python/{platform.python_version()}"
        )

    def locale(self) -> Optional[str]:
        try:
            language, _ = locale.getlocale()
        except ValueError:
            language = None
        # Fall back to the POSIX variables when the process locale is unset
        if not language:
            for var in ("LC_ALL", "LC_MESSAGES", "LANG"):
                value = os.environ.get(var)
                if value:
                    language = value.split(".")[0]
                    break
        return language or None

    def screen_resolution(self) -> Optional[str]:
        return self._screen_resolution or None

    def timezone_offset(self) -> Optional[int]:
        offset = datetime.now().astimezone().utcoffset()
        if offset is None:
            return None
        return int(-offset.total_seconds() // 60)


class HeaderEnvironmentProvider(EnvironmentProvider):
    """Reads attributes from request headers (case-insensitive).

    Expected headers: ``User-Agent``, ``Accept-Language``,
    ``X-Screen-Resolution`` (``"1920x1080"``) and ``X-Timezone-Offset`` (minutes).
    """

    def __init__(self, headers: Mapping[str, str]):
        self._headers = {k.lower(): v for k, v in headers.items()}

    def _header(self, name: str) -> Optional[str]:
        value = self._headers.get(name.lower())
        return value.strip() if value and value.strip() else None

    def user_agent(self) -> Optional[str]:
        return self._header("User-Agent")

    def locale(self) -> Optional[str]:
        accept = self._header("Accept-Language")
        if not accept:
            return None
        # "en-US,en;q=0.9" -> "en-US"
        return accept.split(",")[0].split(";")[0].strip() or None

    def screen_resolution(self) -> Optional[str]:
        return self._header("X-Screen-Resolution")

    def timezone_offset(self) -> Optional[int]:
        raw = self._header("X-Timezone-Offset")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.debug(f"Ignoring non-integer X-Timezone-Offset header: {raw!r}")
            return None


class StaticEnvironmentProvider(EnvironmentProvider):
    """Returns fixed attribute values."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        locale: Optional[str] = None,
        screen_resolution: Optional[str] = None,
        timezone_offset: Optional[int] = None,
    ):
        self._user_agent = user_agent
        self._locale = locale
        self._screen_resolution = screen_resolution
        self._timezone_offset = timezone_offset

    def user_agent(self) -> Optional[str]:
        return self._user_agent

    def locale(self) -> Optional[str]:
        return self._locale

    def screen_resolution(self) -> Optional[str]:
        return self._screen_resolution

    def timezone_offset(self) -> Optional[int]:
        return self._timezone_offset
