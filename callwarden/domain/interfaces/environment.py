"""Interface for reading the environment attributes used for fingerprinting.

Platform-specific adapters (local process, HTTP request headers, fixed test
values) implement this contract.
"""

import abc
from typing import Optional


class EnvironmentProvider(abc.ABC):
    """Supplies the four raw attributes an anonymous identity is derived from.

    Any method may return None when the attribute is not available.
    """

    @abc.abstractmethod
    def user_agent(self) -> Optional[str]:
        pass

    @abc.abstractmethod
    def locale(self) -> Optional[str]:
        pass

    @abc.abstractmethod
    def screen_resolution(self) -> Optional[str]:
        """Display size formatted as ``"<width>x<height>"``."""
        pass

    @abc.abstractmethod
    def timezone_offset(self) -> Optional[int]:
        """Minutes to add to local time to get UTC (positive west of UTC)."""
        pass
