"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML configuration file (``~/.callwarden/config.yaml``),
``.env`` files and environment variables prefixed with ``CALLWARDEN_``.
Nested YAML sections are flattened into dotted keys, so ``retry.max_attempts``
can come from::

    retry:
      max_attempts: 5

or from ``CALLWARDEN_RETRY_MAX_ATTEMPTS=5``.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from callwarden.core.services.tiered_policy import REFERENCE_TIERS, TieredRatePolicy
from callwarden.domain.exceptions import ConfigurationError
from callwarden.domain.models.retry import RetryPolicy

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".callwarden"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "CALLWARDEN_"

DEFAULT_STORE_PATH = DEFAULT_CONFIG_DIR / "store"
DEFAULT_CACHE_TTLS = {
    "generate": 5 * 60,     # generation results go stale quickly
    "analyze": 30 * 60,
    "default": 5 * 60,
}
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60
DEFAULT_SWEEP_MAX_AGE_SECONDS = 60 * 60

# --- Global Configuration Store (Simple Approach) ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(data: Dict[str, Any], parent: str = "") -> Dict[str, Any]:
    """Flattens nested mappings into dotted keys. Lists are kept as values."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{parent}.{key}" if parent else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def env_var_name(key: str) -> str:
    """Environment variable consulted for a dotted config key."""
    return f"{ENV_PREFIX}{key.upper().replace('.', '_')}"


def load_configuration(
    config_file: Path = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Loads configuration from YAML file and .env file.

    Priority order (highest to lowest):
    1. Test overrides (set_config_for_testing)
    2. Environment Variables
    3. .env file (never overrides variables already set)
    4. YAML configuration file
    5. Default values passed to get_config

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    config_file = Path(config_file)
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no .env found).")

    # 3. Environment Variables (Highest priority) are handled in get_config
    _loaded = True
    logger.info("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    """Converts common string forms from the environment to Python values."""
    lowered = value.lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by dotted key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (CALLWARDEN_<KEY>)
    3. YAML config
    4. Default value

    Args:
        key: The configuration key (e.g., 'retry.max_attempts')
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Typed Accessors ---

def get_rate_tiers() -> TieredRatePolicy:
    """Builds the tier policy from ``governor.tiers`` (reference tiers if unset).

    Raises:
        ConfigurationError: If the configured tiers are invalid.
    """
    raw_tiers: Optional[List[Dict[str, Any]]] = get_config('governor.tiers')
    if not raw_tiers:
        return TieredRatePolicy(REFERENCE_TIERS)
    if not isinstance(raw_tiers, list):
        raise ConfigurationError("governor.tiers must be a list of tier mappings")
    return TieredRatePolicy.from_config(raw_tiers)


def get_retry_policy() -> RetryPolicy:
    """Builds the default retry policy from the ``retry.*`` keys."""
    defaults = RetryPolicy()
    try:
        return RetryPolicy(
            max_attempts=int(get_config('retry.max_attempts', defaults.max_attempts)),
            base_delay=float(get_config('retry.base_delay', defaults.base_delay)),
            multiplier=float(get_config('retry.multiplier', defaults.multiplier)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid retry configuration: {e}") from e


def get_cache_ttl(operation: str) -> float:
    """Cache TTL in seconds for ``operation`` (``cache.ttl.<operation>``)."""
    fallback = get_config('cache.ttl.default', DEFAULT_CACHE_TTLS['default'])
    value = get_config(f'cache.ttl.{operation}', DEFAULT_CACHE_TTLS.get(operation, fallback))
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid cache TTL for '{operation}': {value!r}") from e


def get_store_path() -> Path:
    """Directory of the persistent key-value store."""
    return Path(str(get_config('store.path', DEFAULT_STORE_PATH))).expanduser()


def get_sweep_settings() -> Dict[str, float]:
    """Interval and maximum record age for the periodic sweeps."""
    return {
        'interval': float(get_config('sweep.interval_seconds', DEFAULT_SWEEP_INTERVAL_SECONDS)),
        'max_age': float(get_config('sweep.max_age_seconds', DEFAULT_SWEEP_MAX_AGE_SECONDS)),
    }


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
