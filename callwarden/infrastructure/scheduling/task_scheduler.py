"""Periodic task registrations driven by an injectable clock.

Background maintenance (ledger and cache sweeps) is registered here instead
of on ambient timers, so tests can time-travel with a FakeClock and call
run_pending() directly.

With a store attached, each task's last run time is persisted under the
``schedule:`` namespace. A short-lived process (one CLI invocation) then
picks up a sweep that came due while no process was running.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from callwarden.domain.exceptions import StoreUnavailable
from callwarden.domain.interfaces.clock import Clock
from callwarden.domain.interfaces.key_value_store import KeyValueStore
from callwarden.domain.models.common import SCHEDULE_NAMESPACE
from callwarden.infrastructure.clock import SystemClock

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0


@dataclass
class ScheduledTask:
    """A callback run every ``interval`` seconds."""
    name: str
    interval: float
    callback: Callable[[float], object]  # receives the current time
    next_run_at: float


class TaskScheduler:
    """Runs registered callbacks when their interval has elapsed."""

    def __init__(self, clock: Optional[Clock] = None, store: Optional[KeyValueStore] = None):
        self.clock = clock or SystemClock()
        self.store = store
        self._tasks: Dict[str, ScheduledTask] = {}
        self._stopped: Optional[asyncio.Event] = None

    @staticmethod
    def _key(name: str) -> str:
        return f"{SCHEDULE_NAMESPACE}{name}"

    def _last_run(self, name: str) -> Optional[float]:
        """Persisted last run time of ``name``, or None if never recorded.

        Raises:
            StoreUnavailable: If the store cannot be read.
        """
        raw = self.store.get(self._key(name))
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Ignoring corrupt last run of '{name}': {raw!r}")
            return None

    def _mark_run(self, name: str, now: float) -> None:
        if self.store is None:
            return
        try:
            self.store.set(self._key(name), repr(now))
        except StoreUnavailable as e:
            logger.warning(f"Cannot persist last run of '{name}': {e}")

    def register(
        self,
        name: str,
        interval: float,
        callback: Callable[[float], object],
        run_immediately: bool = False,
    ) -> ScheduledTask:
        """Registers (or replaces) a periodic task.

        Without a store the first run is one interval from now. With a store
        it is one interval after the persisted last run, or immediately when
        the task has never run against that store.
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")
        now = self.clock.now()
        if run_immediately:
            next_run_at = now
        elif self.store is None:
            next_run_at = now + interval
        else:
            try:
                last_run = self._last_run(name)
            except StoreUnavailable as e:
                logger.warning(f"Cannot read last run of '{name}', scheduling from now: {e}")
                next_run_at = now + interval
            else:
                next_run_at = now if last_run is None else last_run + interval
        task = ScheduledTask(name=name, interval=interval, callback=callback, next_run_at=next_run_at)
        self._tasks[name] = task
        logger.debug(f"Registered periodic task '{name}' every {interval}s, next run at {next_run_at:.0f}")
        return task

    def unregister(self, name: str) -> bool:
        return self._tasks.pop(name, None) is not None

    @property
    def tasks(self) -> List[ScheduledTask]:
        return list(self._tasks.values())

    def run_pending(self, now: Optional[float] = None, force: bool = False) -> List[str]:
        """Runs every task that is due at ``now``. Returns the names that ran.

        With ``force`` every task runs regardless of its schedule. A failing
        callback is logged and rescheduled.
        """
        now = self.clock.now() if now is None else now
        ran = []
        for task in list(self._tasks.values()):
            if not force and now < task.next_run_at:
                continue
            try:
                task.callback(now)
            except Exception as e:
                logger.error(f"Periodic task '{task.name}' failed: {e}", exc_info=True)
            task.next_run_at = now + task.interval
            self._mark_run(task.name, now)
            ran.append(task.name)
        return ran

    async def run_forever(self, poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS) -> None:
        """Polls run_pending() until stop() is called or the task is cancelled."""
        self._stopped = asyncio.Event()
        logger.info(f"Task scheduler started with {len(self._tasks)} task(s)")
        while not self._stopped.is_set():
            self.run_pending()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Task scheduler stopped")

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()
