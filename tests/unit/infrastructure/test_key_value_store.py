import threading
from pathlib import Path

import diskcache as dc
import pytest

from callwarden.domain.exceptions import StoreUnavailable
from callwarden.infrastructure.storage.key_value_store import DiskKeyValueStore, InMemoryKeyValueStore


@pytest.fixture
def disk_store(tmp_path: Path):
    store = DiskKeyValueStore(tmp_path / "store")
    yield store
    store.close()


@pytest.fixture(params=["memory", "disk"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        yield InMemoryKeyValueStore()
    else:
        disk = DiskKeyValueStore(tmp_path / "store")
        yield disk
        disk.close()


def test_get_set_delete(store):
    assert store.get("usage:abc") is None
    store.set("usage:abc", '{"count": 1}')
    assert store.get("usage:abc") == '{"count": 1}'
    assert store.delete("usage:abc") is True
    assert store.delete("usage:abc") is False
    assert store.get("usage:abc") is None


def test_keys_by_prefix(store):
    store.set("usage:a", "1")
    store.set("usage:b", "2")
    store.set("cache:generate:ff", "3")

    assert sorted(store.keys("usage:")) == ["usage:a", "usage:b"]
    assert store.keys("cache:") == ["cache:generate:ff"]
    assert len(store.keys()) == 3


def test_disk_store_survives_reopen(tmp_path: Path):
    """Records persist across sessions."""
    first = DiskKeyValueStore(tmp_path / "store")
    first.set("usage:abc", "persisted")
    first.close()

    second = DiskKeyValueStore(tmp_path / "store")
    try:
        assert second.get("usage:abc") == "persisted"
    finally:
        second.close()


def test_unopenable_directory_is_unavailable(tmp_path: Path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")

    store = DiskKeyValueStore(blocker / "store")

    with pytest.raises(StoreUnavailable):
        store.get("usage:abc")
    with pytest.raises(StoreUnavailable):
        store.set("usage:abc", "1")


def test_backend_errors_become_store_unavailable(disk_store: DiskKeyValueStore, mocker):
    mocker.patch.object(dc.Cache, "get", side_effect=dc.Timeout("database is locked"))
    with pytest.raises(StoreUnavailable):
        disk_store.get("usage:abc")


def test_memory_store_outage():
    store = InMemoryKeyValueStore()
    store.available = False
    with pytest.raises(StoreUnavailable):
        store.keys()


def test_lock_is_reentrant(store):
    with store.lock("usage-lock:abc"):
        with store.lock("usage-lock:abc"):
            store.set("usage:abc", "1")
    assert store.get("usage:abc") == "1"


def test_disk_lock_excludes_other_handles(tmp_path: Path):
    """A second handle on the same directory waits until the first releases."""
    first = DiskKeyValueStore(tmp_path / "store")
    second = DiskKeyValueStore(tmp_path / "store")
    acquired = threading.Event()

    def contend():
        with second.lock("usage-lock:abc"):
            acquired.set()

    try:
        with first.lock("usage-lock:abc"):
            contender = threading.Thread(target=contend)
            contender.start()
            assert not acquired.wait(0.3)
        assert acquired.wait(5)
        contender.join()
    finally:
        first.close()
        second.close()


def test_lock_on_unavailable_store_raises(tmp_path: Path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")
    memory = InMemoryKeyValueStore()
    memory.available = False

    for store in (DiskKeyValueStore(blocker / "store"), memory):
        with pytest.raises(StoreUnavailable):
            with store.lock("usage-lock:abc"):
                pass
