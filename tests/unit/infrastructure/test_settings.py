import math
from pathlib import Path

import pytest

from callwarden.domain.exceptions import ConfigurationError
from callwarden.domain.models.retry import RetryPolicy
from callwarden.infrastructure.config import settings

CONFIG_YAML = """
store:
  path: /tmp/callwarden-test-store
retry:
  max_attempts: 5
  base_delay: 0.25
governor:
  tiers:
    - {ceiling: 4, window: 60}
    - {ceiling: .inf, window: 600, cooldown: 90}
cache:
  ttl:
    generate: 120
logging:
  level: DEBUG
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)
    return path


@pytest.fixture
def loaded(config_file: Path, tmp_path: Path):
    settings.load_configuration(config_file=config_file, env_file=tmp_path / "missing.env", force=True)


def test_yaml_values_are_flattened(loaded):
    assert settings.get_config("retry.max_attempts") == 5
    assert settings.get_config("logging.level") == "DEBUG"
    assert settings.get_config("does.not.exist", "fallback") == "fallback"


def test_environment_overrides_yaml(loaded, monkeypatch):
    monkeypatch.setenv("CALLWARDEN_RETRY_MAX_ATTEMPTS", "7")
    monkeypatch.setenv("CALLWARDEN_RETRY_BASE_DELAY", "0.5")
    assert settings.get_config("retry.max_attempts") == 7
    assert settings.get_retry_policy() == RetryPolicy(max_attempts=7, base_delay=0.5, multiplier=2.0)


def test_test_config_has_highest_priority(loaded, monkeypatch):
    monkeypatch.setenv("CALLWARDEN_RETRY_MAX_ATTEMPTS", "7")
    settings.set_config_for_testing({"retry.max_attempts": 2})
    assert settings.get_config("retry.max_attempts") == 2


def test_dotenv_does_not_override_real_environment(tmp_path: Path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("CALLWARDEN_CACHE_TTL_DEFAULT=42\nCALLWARDEN_RETRY_MULTIPLIER=3.0\n")
    # Registered so the value load_dotenv writes is removed after the test
    monkeypatch.setenv("CALLWARDEN_CACHE_TTL_DEFAULT", "")
    monkeypatch.delenv("CALLWARDEN_CACHE_TTL_DEFAULT")
    monkeypatch.setenv("CALLWARDEN_RETRY_MULTIPLIER", "1.5")

    settings.load_configuration(config_file=tmp_path / "absent.yaml", env_file=env_file, force=True)

    assert settings.get_cache_ttl("other") == 42
    assert settings.get_retry_policy().multiplier == 1.5


def test_env_var_name():
    assert settings.env_var_name("cache.ttl.generate") == "CALLWARDEN_CACHE_TTL_GENERATE"


def test_rate_tiers_from_yaml(loaded):
    policy = settings.get_rate_tiers()
    assert [t.ceiling for t in policy.tiers] == [4, math.inf]
    assert policy.tier_for(5).cooldown == 90


def test_reference_tiers_by_default():
    assert settings.get_rate_tiers().tier_for(9).cooldown == 30


def test_invalid_tiers_raise():
    settings.set_config_for_testing({"governor.tiers": "eight"})
    with pytest.raises(ConfigurationError):
        settings.get_rate_tiers()


def test_invalid_retry_raises():
    settings.set_config_for_testing({"retry.max_attempts": 0})
    with pytest.raises(ConfigurationError):
        settings.get_retry_policy()


def test_cache_ttls(loaded):
    assert settings.get_cache_ttl("generate") == 120
    assert settings.get_cache_ttl("analyze") == 1800
    assert settings.get_cache_ttl("summarize") == 300


def test_store_path_and_sweep_settings(loaded):
    assert settings.get_store_path() == Path("/tmp/callwarden-test-store")
    assert settings.get_sweep_settings() == {"interval": 300.0, "max_age": 3600.0}


def test_malformed_yaml_is_logged(tmp_path: Path, caplog):
    bad = tmp_path / "config.yaml"
    bad.write_text("retry: [unclosed")

    settings.load_configuration(config_file=bad, env_file=tmp_path / "missing.env", force=True)

    assert "Failed to load or parse YAML config" in caplog.text
    assert settings.get_config("retry.max_attempts") is None


def test_in_process_overrides_are_test_only():
    """Runtime configuration comes from files and the environment; only tests override in memory."""
    assert not hasattr(settings, "set_config")
    settings.set_config_for_testing({"identity.screen_resolution": "2560x1440"})
    assert settings.get_config("identity.screen_resolution") == "2560x1440"
