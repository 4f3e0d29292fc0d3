from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from codecube.store import NotFound, SqliteStore, StoreUnavailable, TimedStore
from fakes import MemoryStore


@pytest.fixture
def sqlite_store(tmp_path: Path):
    store = SqliteStore(str(tmp_path / "pastes.db"))
    yield store
    store.close()


@pytest.mark.parametrize("content", ["", "hello world", "x" * 100_000, "multi\nline\n\ttext ✓"])
def test_round_trip_after_sync(sqlite_store: SqliteStore, content: str) -> None:
    sqlite_store.set("abcd1234", content)
    sqlite_store.sync()
    assert sqlite_store.get("abcd1234") == content


def test_missing_key_raises_not_found(sqlite_store: SqliteStore) -> None:
    with pytest.raises(NotFound) as info:
        sqlite_store.get("zzzzzzzz")
    assert info.value.key == "zzzzzzzz"
    assert sqlite_store.contains("zzzzzzzz") is False


def test_set_overwrites_existing_key(sqlite_store: SqliteStore) -> None:
    sqlite_store.set("abcd1234", "first")
    sqlite_store.set("abcd1234", "second")
    assert sqlite_store.get("abcd1234") == "second"
    assert sqlite_store.contains("abcd1234") is True


def test_writes_from_other_handle_visible_after_sync(tmp_path: Path) -> None:
    path = str(tmp_path / "shared.db")
    writer = SqliteStore(path)
    reader = SqliteStore(path)
    try:
        reader.sync()
        writer.set("shared01", "from writer")
        reader.sync()
        assert reader.get("shared01") == "from writer"
    finally:
        writer.close()
        reader.close()


def test_value_survives_reopen(tmp_path: Path) -> None:
    path = str(tmp_path / "durable.db")
    store = SqliteStore(path)
    store.set("durable1", "kept")
    store.close()

    reopened = SqliteStore(path)
    try:
        assert reopened.get("durable1") == "kept"
    finally:
        reopened.close()


def test_corrupt_file_is_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "corrupt.db"
    path.write_bytes(b"this is definitely not a sqlite database" * 100)
    with pytest.raises(StoreUnavailable):
        SqliteStore(str(path))


def test_closed_store_is_unavailable(tmp_path: Path) -> None:
    store = SqliteStore(str(tmp_path / "closed.db"))
    store.close()
    with pytest.raises(StoreUnavailable):
        store.get("anything")


def test_concurrent_writers_do_not_clobber_each_other(sqlite_store: SqliteStore) -> None:
    errors: list[Exception] = []

    def writer(prefix: str) -> None:
        try:
            for i in range(25):
                sqlite_store.set(f"{prefix}{i:04d}", f"{prefix}-{i}")
        except Exception as exc:  # pragma: no cover - reported below
            errors.append(exc)

    threads = [threading.Thread(target=writer, args=(name,)) for name in ("aaaa", "bbbb", "cccc", "dddd")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    sqlite_store.sync()
    for prefix in ("aaaa", "bbbb", "cccc", "dddd"):
        for i in range(25):
            assert sqlite_store.get(f"{prefix}{i:04d}") == f"{prefix}-{i}"


def test_timed_store_passes_calls_through() -> None:
    inner = MemoryStore()
    store = TimedStore(inner, timeout=1.0)
    try:
        store.set("abcdefgh", "value")
        store.sync()
        assert store.get("abcdefgh") == "value"
        assert store.contains("abcdefgh") is True
        with pytest.raises(NotFound):
            store.get("zzzzzzzz")
    finally:
        store.close()


def test_timed_store_turns_slow_calls_into_unavailable() -> None:
    class SlowStore(MemoryStore):
        def sync(self) -> None:
            time.sleep(0.5)

    store = TimedStore(SlowStore(), timeout=0.05)
    try:
        with pytest.raises(StoreUnavailable, match="timed out"):
            store.sync()
    finally:
        store.close()


def test_timed_store_after_close_is_unavailable() -> None:
    store = TimedStore(MemoryStore(), timeout=1.0)
    store.close()
    with pytest.raises(StoreUnavailable):
        store.get("abcdefgh")
