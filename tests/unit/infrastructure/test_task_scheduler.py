import asyncio
from unittest.mock import MagicMock

import pytest

from callwarden.infrastructure.clock import FakeClock
from callwarden.infrastructure.scheduling.task_scheduler import TaskScheduler
from callwarden.infrastructure.storage.key_value_store import InMemoryKeyValueStore


@pytest.fixture
def scheduler(fake_clock: FakeClock):
    return TaskScheduler(clock=fake_clock)


def test_task_runs_after_interval(scheduler: TaskScheduler, fake_clock: FakeClock):
    callback = MagicMock()
    scheduler.register("usage-sweep", 300, callback)

    assert scheduler.run_pending() == []
    fake_clock.advance_minutes(5)
    assert scheduler.run_pending() == ["usage-sweep"]
    callback.assert_called_once_with(fake_clock.now())

    # Rescheduled for the next interval
    assert scheduler.run_pending() == []
    fake_clock.advance_minutes(5)
    assert scheduler.run_pending() == ["usage-sweep"]


def test_run_immediately(scheduler: TaskScheduler):
    callback = MagicMock()
    scheduler.register("cache-sweep", 300, callback, run_immediately=True)
    assert scheduler.run_pending() == ["cache-sweep"]


def test_force_runs_every_task(scheduler: TaskScheduler):
    first, second = MagicMock(), MagicMock()
    scheduler.register("usage-sweep", 300, first)
    scheduler.register("cache-sweep", 600, second)

    assert scheduler.run_pending(force=True) == ["usage-sweep", "cache-sweep"]
    first.assert_called_once()
    second.assert_called_once()


def test_failing_task_is_rescheduled(scheduler: TaskScheduler, fake_clock: FakeClock, caplog):
    callback = MagicMock(side_effect=RuntimeError("disk full"))
    scheduler.register("usage-sweep", 60, callback)

    fake_clock.advance_seconds(60)
    assert scheduler.run_pending() == ["usage-sweep"]
    assert "usage-sweep" in caplog.text and "disk full" in caplog.text

    fake_clock.advance_seconds(60)
    scheduler.run_pending()
    assert callback.call_count == 2


def test_register_replaces_and_unregister_removes(scheduler: TaskScheduler):
    scheduler.register("usage-sweep", 60, MagicMock())
    scheduler.register("usage-sweep", 120, MagicMock())

    assert [t.interval for t in scheduler.tasks] == [120]
    assert scheduler.unregister("usage-sweep") is True
    assert scheduler.unregister("usage-sweep") is False
    assert scheduler.tasks == []


@pytest.mark.parametrize("interval", [0, -1])
def test_interval_must_be_positive(scheduler: TaskScheduler, interval):
    with pytest.raises(ValueError):
        scheduler.register("usage-sweep", interval, MagicMock())


@pytest.mark.asyncio
async def test_run_forever_until_stopped():
    scheduler = TaskScheduler()
    calls = []

    def callback(now: float) -> None:
        calls.append(now)
        scheduler.stop()

    scheduler.register("usage-sweep", 300, callback, run_immediately=True)
    await asyncio.wait_for(scheduler.run_forever(poll_interval=0.01), timeout=1.0)

    assert len(calls) == 1


class TestPersistedSchedule:
    """Schedulers sharing a store see each other's last run times."""

    def test_never_run_task_is_due_immediately(self, fake_clock: FakeClock, memory_store: InMemoryKeyValueStore):
        scheduler = TaskScheduler(clock=fake_clock, store=memory_store)
        scheduler.register("usage-sweep", 300, MagicMock())

        assert scheduler.run_pending() == ["usage-sweep"]
        assert float(memory_store.get("schedule:usage-sweep")) == fake_clock.now()

    def test_next_process_picks_up_due_sweep(self, fake_clock: FakeClock, memory_store: InMemoryKeyValueStore):
        first = TaskScheduler(clock=fake_clock, store=memory_store)
        first.register("usage-sweep", 300, MagicMock())
        first.run_pending()

        fake_clock.advance_seconds(5)
        callback = MagicMock()
        second = TaskScheduler(clock=fake_clock, store=memory_store)
        second.register("usage-sweep", 300, callback)
        assert second.run_pending() == []

        fake_clock.advance_seconds(295)
        third = TaskScheduler(clock=fake_clock, store=memory_store)
        third.register("usage-sweep", 300, callback)
        assert third.run_pending() == ["usage-sweep"]
        callback.assert_called_once_with(fake_clock.now())

    def test_corrupt_last_run_counts_as_never_run(self, fake_clock: FakeClock, memory_store: InMemoryKeyValueStore):
        memory_store.set("schedule:cache-sweep", "yesterday")
        scheduler = TaskScheduler(clock=fake_clock, store=memory_store)
        scheduler.register("cache-sweep", 300, MagicMock())

        assert scheduler.run_pending() == ["cache-sweep"]

    def test_store_outage_keeps_in_process_schedule(self, fake_clock: FakeClock, memory_store: InMemoryKeyValueStore):
        memory_store.available = False
        scheduler = TaskScheduler(clock=fake_clock, store=memory_store)
        callback = MagicMock()
        scheduler.register("usage-sweep", 300, callback)

        assert scheduler.run_pending() == []
        fake_clock.advance_seconds(300)
        assert scheduler.run_pending() == ["usage-sweep"]
        callback.assert_called_once()
