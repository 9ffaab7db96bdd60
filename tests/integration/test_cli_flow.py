import sys
from pathlib import Path

import pytest
from rich.console import Console
from typer.testing import CliRunner

from callwarden import main
from callwarden.core.command_handler import CommandHandler
from callwarden.core.services.call_service import GovernedCallService
from callwarden.core.services.rate_governor import RateGovernor
from callwarden.domain.models.retry import RetryPolicy
from callwarden.infrastructure.cli.display import ConsoleDisplay
from callwarden.infrastructure.config import settings
from callwarden.infrastructure.resilience.resilient_invoker import ResilientInvoker
from callwarden.infrastructure.scheduling.task_scheduler import TaskScheduler
from callwarden.infrastructure.usage.usage_ledger import UsageLedger

# These fixtures are defined in tests/conftest.py:
# runner: CliRunner
# memory_store, fake_clock, fingerprint, two_tier_policy, result_cache


@pytest.fixture
def app_dependencies(monkeypatch, memory_store, fingerprint, two_tier_policy, fake_clock, result_cache):
    """Wires the real services over an in-memory store and installs them in main."""
    ledger = UsageLedger(memory_store, two_tier_policy)
    governor = RateGovernor(fingerprint, ledger, two_tier_policy, clock=fake_clock)
    invoker = ResilientInvoker(result_cache, default_policy=RetryPolicy(max_attempts=2, base_delay=0))
    call_service = GovernedCallService(governor, invoker)
    scheduler = TaskScheduler(clock=fake_clock, store=memory_store)
    scheduler.register("usage-sweep", 300, ledger.sweep)
    scheduler.register("cache-sweep", 300, result_cache.sweep)
    ui = ConsoleDisplay(console=Console(width=200))
    dependencies = {
        "ledger": ledger,
        "governor": governor,
        "cache": result_cache,
        "scheduler": scheduler,
        "command_handler": CommandHandler(fingerprint, governor, call_service, result_cache, scheduler, ui),
    }
    monkeypatch.setattr(main, "_dependencies", dependencies)
    return dependencies


def counting_command(marker: Path, output: str = "hello"):
    """A command that appends to ``marker`` each time it really runs."""
    script = f"open({str(marker)!r}, 'a').write('x'); print({output!r})"
    return [sys.executable, "-c", script]


def test_identity_command(runner: CliRunner, app_dependencies, fingerprint):
    result = runner.invoke(main.app, ["identity"])

    assert result.exit_code == 0, result.output
    assert fingerprint.identify() in result.output
    assert "en-US" in result.output


def test_check_until_cooldown(runner: CliRunner, app_dependencies):
    """Eight calls pass; the ninth is refused with exit code 2."""
    for _ in range(8):
        assert runner.invoke(main.app, ["check"]).exit_code == 0

    result = runner.invoke(main.app, ["check"])

    assert result.exit_code == 2
    assert "You have made 9 calls" in result.output
    assert "30 seconds" in result.output


def test_usage_command_does_not_consume(runner: CliRunner, app_dependencies):
    runner.invoke(main.app, ["check"])
    runner.invoke(main.app, ["check"])

    first = runner.invoke(main.app, ["usage"])
    second = runner.invoke(main.app, ["usage"])

    assert first.exit_code == 0
    assert first.output == second.output
    assert "calls in window" in first.output


def test_reset_command(runner: CliRunner, app_dependencies, fingerprint):
    for _ in range(9):
        runner.invoke(main.app, ["check"])

    result = runner.invoke(main.app, ["reset", "--identity", fingerprint.identify()])

    assert result.exit_code == 0
    assert "has been reset" in result.output
    assert runner.invoke(main.app, ["check"]).exit_code == 0


def test_run_command_caches_result(runner: CliRunner, app_dependencies, tmp_path: Path):
    marker = tmp_path / "runs.txt"
    command = counting_command(marker)

    first = runner.invoke(main.app, ["run", "generate", "--", *command])
    second = runner.invoke(main.app, ["run", "generate", "--", *command])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert "hello" in first.output and "hello" in second.output
    assert marker.read_text() == "x"


def test_run_command_with_zero_ttl_is_not_cached(runner: CliRunner, app_dependencies, tmp_path: Path):
    marker = tmp_path / "runs.txt"
    command = counting_command(marker)

    runner.invoke(main.app, ["run", "generate", "--ttl", "0", "--", *command])
    runner.invoke(main.app, ["run", "generate", "--ttl", "0", "--", *command])

    assert marker.read_text() == "xx"


def test_run_command_retries_then_fails(runner: CliRunner, app_dependencies, tmp_path: Path):
    settings.set_config_for_testing({"retry.base_delay": 0})
    marker = tmp_path / "runs.txt"
    script = f"open({str(marker)!r}, 'a').write('x'); import sys; sys.exit(4)"

    result = runner.invoke(main.app, ["run", "generate", "--attempts", "3", "--", sys.executable, "-c", script])

    assert result.exit_code == 1
    assert "failed after 3 attempt(s)" in result.output
    assert marker.read_text() == "xxx"


def test_run_command_when_rate_limited(runner: CliRunner, app_dependencies, tmp_path: Path):
    for _ in range(8):
        runner.invoke(main.app, ["check"])
    marker = tmp_path / "runs.txt"

    result = runner.invoke(main.app, ["run", "generate", "--", *counting_command(marker)])

    assert result.exit_code == 2
    assert not marker.exists()


def test_clear_cache_and_sweep(runner: CliRunner, app_dependencies, tmp_path: Path):
    runner.invoke(main.app, ["run", "generate", "--", *counting_command(tmp_path / "runs.txt")])

    sweep = runner.invoke(main.app, ["sweep"])
    cleared = runner.invoke(main.app, ["clear-cache"])

    assert sweep.exit_code == 0
    assert "usage-sweep" in sweep.output and "cache-sweep" in sweep.output
    assert "Removed 1 cached result(s)." in cleared.output


def test_due_sweep_runs_on_next_invocation(runner: CliRunner, app_dependencies, fake_clock, memory_store):
    """Each invocation is a short-lived process; the persisted schedule carries over."""
    started = fake_clock.now()
    runner.invoke(main.app, ["check"])
    assert float(memory_store.get("schedule:usage-sweep")) == started
    assert memory_store.keys("usage:")

    fake_clock.advance_seconds(5)
    runner.invoke(main.app, ["usage"])
    assert float(memory_store.get("schedule:usage-sweep")) == started

    fake_clock.advance_seconds(3600)
    result = runner.invoke(main.app, ["usage"])

    assert result.exit_code == 0
    assert float(memory_store.get("schedule:usage-sweep")) == started + 3605
    assert memory_store.keys("usage:") == []
