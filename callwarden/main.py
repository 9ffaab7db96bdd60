"""Main entry point for the callwarden application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import dataclasses
import logging
import sys
from typing import Annotated, Any, Coroutine, Dict, List, Optional

import typer

# --- Core Layer ---
from callwarden.core.command_handler import CommandHandler
from callwarden.core.services.call_service import GovernedCallService
from callwarden.core.services.fingerprint_service import FingerprintGenerator
from callwarden.core.services.rate_governor import RateGovernor
# --- Infrastructure Layer ---
# Config
from callwarden.infrastructure.config.settings import (
    get_cache_ttl, get_config, get_rate_tiers, get_retry_policy, get_store_path,
    get_sweep_settings, load_configuration,
)
# UI
from callwarden.infrastructure.cli.display import ConsoleDisplay
# Storage, usage and cache
from callwarden.infrastructure.cache.result_cache import ResultCache
from callwarden.infrastructure.clock import SystemClock
from callwarden.infrastructure.environment.providers import LocalEnvironmentProvider
from callwarden.infrastructure.storage.key_value_store import DiskKeyValueStore
from callwarden.infrastructure.usage.usage_ledger import UsageLedger
# Resilience
from callwarden.infrastructure.resilience.resilient_invoker import ResilientInvoker
# Scheduling
from callwarden.infrastructure.scheduling.task_scheduler import TaskScheduler
# Monitoring
from callwarden.infrastructure.monitoring.logger_setup import DEFAULT_LOG_FORMAT, level_from_name, setup_logging

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    dependencies: Dict[str, Any] = {}
    try:
        # 1. Load Configuration First
        load_configuration()
        setup_logging(
            log_level=level_from_name(get_config('logging.level', 'WARNING')),
            log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
            log_file=get_config('logging.file'),
        )
        logger.info("Configuration and logging initialized.")

        # 2. Instantiate Infrastructure Adapters
        dependencies['ui'] = ConsoleDisplay()
        dependencies['clock'] = SystemClock()
        dependencies['store'] = DiskKeyValueStore(get_store_path())
        dependencies['policy'] = get_rate_tiers()
        dependencies['ledger'] = UsageLedger(dependencies['store'], dependencies['policy'])
        dependencies['cache'] = ResultCache(dependencies['store'], clock=dependencies['clock'])

        # 3. Core Services
        dependencies['fingerprint'] = FingerprintGenerator(
            LocalEnvironmentProvider(screen_resolution=get_config('identity.screen_resolution'))
        )
        dependencies['governor'] = RateGovernor(
            fingerprint=dependencies['fingerprint'],
            ledger=dependencies['ledger'],
            policy=dependencies['policy'],
            clock=dependencies['clock'],
        )
        dependencies['invoker'] = ResilientInvoker(
            cache=dependencies['cache'],
            default_policy=get_retry_policy(),
        )
        dependencies['call_service'] = GovernedCallService(
            governor=dependencies['governor'],
            invoker=dependencies['invoker'],
            ttl_for=get_cache_ttl,
        )

        # 4. Periodic maintenance
        sweep_settings = get_sweep_settings()
        scheduler = TaskScheduler(clock=dependencies['clock'], store=dependencies['store'])
        ledger = dependencies['ledger']
        scheduler.register(
            'usage-sweep', sweep_settings['interval'], lambda now: ledger.sweep(now, sweep_settings['max_age'])
        )
        scheduler.register('cache-sweep', sweep_settings['interval'], dependencies['cache'].sweep)
        dependencies['scheduler'] = scheduler

        # 5. Instantiate Command Handler
        dependencies['command_handler'] = CommandHandler(
            fingerprint=dependencies['fingerprint'],
            governor=dependencies['governor'],
            call_service=dependencies['call_service'],
            cache=dependencies['cache'],
            scheduler=scheduler,
            ui=dependencies['ui'],
        )
        logger.info("All dependencies initialized successfully.")
        return dependencies

    except Exception as e:
        logger.error(f"Fatal Error during application initialization: {e}", exc_info=True)
        if 'ui' in dependencies:
            dependencies['ui'].display_error(f"Application Initialization Failed: {e}")
        else:
            print(f"FATAL ERROR during initialization: {e}", file=sys.stderr)
        raise typer.Exit(code=1)


# --- Get Wired-up Dependencies ---
# Built on first use so importing the module (e.g. in tests) has no side effects
_dependencies: Optional[Dict[str, Any]] = None


def _get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


def _handler() -> CommandHandler:
    return _get_dependencies()['command_handler']


# --- Typer App Definition ---
app = typer.Typer(
    name="callwarden",
    help="callwarden: anonymous usage governance, result caching and retries for remote calls.",
    add_completion=False,
)


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, int]) -> int:
    """Runs an async command handler from a sync Typer command."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Command interrupted by user.")
        return 130


def _finish(exit_code: int) -> None:
    if exit_code:
        raise typer.Exit(code=exit_code)


# --- CLI Commands ---

@app.callback()
def main_callback(ctx: typer.Context):
    """Runs maintenance that came due since the last invocation."""
    if ctx.resilient_parsing:
        return
    _handler().run_due_maintenance()


@app.command()
def identity():
    """Show the anonymous identity of this environment."""
    _finish(_handler().handle_identity())


@app.command()
def check():
    """Consume one call and report whether it is allowed (exit code 2 when refused)."""
    _finish(_handler().handle_check())


@app.command()
def usage():
    """Show usage and cooldown status without consuming a call."""
    _finish(_handler().handle_usage())


@app.command()
def reset(
    identity_id: Annotated[
        Optional[str],
        typer.Option("--identity", help="Identity to reset. Defaults to the current one.")
    ] = None,
):
    """Reset recorded usage for an identity."""
    _finish(_handler().handle_reset(identity_id))


@app.command()
def sweep():
    """Run the usage and cache sweeps once."""
    _finish(_handler().handle_sweep())


@app.command(name="clear-cache")
def clear_cache_command():
    """Remove every cached result."""
    _finish(_handler().handle_clear_cache())


@app.command()
def run(
    operation: Annotated[str, typer.Argument(help="Operation name, e.g. 'generate' or 'analyze'.")],
    command: Annotated[List[str], typer.Argument(help="Command to execute, after '--'.")],
    ttl: Annotated[
        Optional[float],
        typer.Option("--ttl", help="Cache TTL in seconds. Defaults to the operation's configured TTL.")
    ] = None,
    attempts: Annotated[
        Optional[int],
        typer.Option("--attempts", min=1, help="Maximum attempts. Defaults to retry.max_attempts.")
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", help="Seconds before an attempt is abandoned.")
    ] = None,
):
    """Run COMMAND as a governed, cached and retried remote call."""
    handler = _handler()
    retry_policy = None
    if attempts is not None:
        retry_policy = dataclasses.replace(get_retry_policy(), max_attempts=attempts)
    _finish(run_async(handler.handle_run(operation, command, ttl, retry_policy, timeout)))


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
