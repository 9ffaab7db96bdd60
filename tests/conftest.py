import math
import os
from typing import List

import pytest
from typer.testing import CliRunner

from callwarden.core.services.fingerprint_service import FingerprintGenerator
from callwarden.core.services.rate_governor import RateGovernor
from callwarden.core.services.tiered_policy import TieredRatePolicy
from callwarden.domain.events.call_events import DomainEvent
from callwarden.domain.models.retry import RetryPolicy
from callwarden.domain.models.usage import RateTier
from callwarden.infrastructure.cache.result_cache import ResultCache
from callwarden.infrastructure.clock import FakeClock
from callwarden.infrastructure.config import settings
from callwarden.infrastructure.environment.providers import StaticEnvironmentProvider
from callwarden.infrastructure.resilience.resilient_invoker import ResilientInvoker
from callwarden.infrastructure.storage.key_value_store import InMemoryKeyValueStore
from callwarden.infrastructure.usage.usage_ledger import UsageLedger


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def environment():
    return StaticEnvironmentProvider(
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0",
        locale="en-US",
        screen_resolution="1920x1080",
        timezone_offset=-60,
    )


@pytest.fixture
def fingerprint(environment):
    return FingerprintGenerator(environment)


@pytest.fixture
def two_tier_policy():
    """Eight free calls inside a minute, then a 30 second cooldown."""
    return TieredRatePolicy([
        RateTier(ceiling=8, window=60, cooldown=0),
        RateTier(ceiling=12, window=300, cooldown=30),
        RateTier(ceiling=math.inf, window=3600, cooldown=60),
    ])


@pytest.fixture
def ledger(memory_store, two_tier_policy):
    return UsageLedger(memory_store, two_tier_policy)


@pytest.fixture
def events() -> List[DomainEvent]:
    """Collects every domain event dispatched during a test."""
    return []


@pytest.fixture
def governor(fingerprint, ledger, two_tier_policy, fake_clock, events):
    return RateGovernor(fingerprint, ledger, two_tier_policy, clock=fake_clock, event_sink=events.append)


@pytest.fixture
def result_cache(memory_store, fake_clock):
    return ResultCache(memory_store, clock=fake_clock)


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by the invoker, recorded instead of slept."""
    return []


@pytest.fixture
def invoker(result_cache, sleeps, events):
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    return ResilientInvoker(
        result_cache,
        default_policy=RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0),
        sleep=record_sleep,
        event_sink=events.append,
    )


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keeps tests independent of the developer's config file and environment."""
    for name in list(os.environ):
        if name.startswith(settings.ENV_PREFIX):
            monkeypatch.delenv(name)
    monkeypatch.setattr(settings, "_config", {})
    monkeypatch.setattr(settings, "_loaded", False)
    yield
    settings.clear_test_config()
