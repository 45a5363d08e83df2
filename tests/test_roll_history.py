"""Tests for history storage backends and the bounded HistoryStore."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from dice_engine import InvalidConfigurationError
from roll_history import (
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_STORAGE_KEY,
    HistoryStorageError,
    HistoryStore,
    JsonFileHistoryStorage,
    KeyValueHistoryStorage,
)


def test_default_capacity_and_key() -> None:
    assert DEFAULT_HISTORY_CAPACITY == 10
    assert DEFAULT_STORAGE_KEY == "rollHistory"


def test_key_value_storage_serializes_a_json_array() -> None:
    backing: dict[str, str] = {}
    storage = KeyValueHistoryStorage(backing)
    storage.save(["b", "a"])
    assert json.loads(backing["rollHistory"]) == ["b", "a"]
    assert storage.load() == ["b", "a"]


def test_key_value_storage_missing_key_loads_empty() -> None:
    assert KeyValueHistoryStorage({}).load() == []


@pytest.mark.parametrize("raw", ["not json", "{\"a\": 1}", "[1, 2]", "\"text\"", "[\"ok\", null]"])
def test_malformed_stored_history_loads_empty(raw: str, caplog) -> None:
    storage = KeyValueHistoryStorage({"rollHistory": raw})
    with caplog.at_level(logging.WARNING, logger="roll_history"):
        assert storage.load() == []
    assert "history" in caplog.text.lower()


def test_history_store_keeps_most_recent_first() -> None:
    store = HistoryStore(KeyValueHistoryStorage({}))
    for i in range(3):
        store.record(f"roll {i}")
    assert store.entries == ("roll 2", "roll 1", "roll 0")
    assert list(store) == ["roll 2", "roll 1", "roll 0"]


def test_history_store_truncates_to_capacity_on_every_write() -> None:
    backing: dict[str, str] = {}
    store = HistoryStore(KeyValueHistoryStorage(backing), capacity=10)
    for i in range(15):
        store.record(f"roll {i}")
        assert len(json.loads(backing["rollHistory"])) == min(i + 1, 10)
    persisted = json.loads(backing["rollHistory"])
    assert persisted == [f"roll {i}" for i in range(14, 4, -1)]
    assert len(store) == 10


def test_history_store_loads_existing_history_on_startup() -> None:
    backing = {"rollHistory": json.dumps(["newer", "older"])}
    store = HistoryStore(KeyValueHistoryStorage(backing))
    assert store.entries == ("newer", "older")


def test_history_store_truncates_longer_saved_history() -> None:
    backing = {"rollHistory": json.dumps([str(i) for i in range(20)])}
    store = HistoryStore(KeyValueHistoryStorage(backing), capacity=10)
    assert store.entries == tuple(str(i) for i in range(10))


def test_history_store_clear_persists_empty_list() -> None:
    backing: dict[str, str] = {}
    store = HistoryStore(KeyValueHistoryStorage(backing))
    store.record("roll")
    store.clear()
    assert store.entries == ()
    assert json.loads(backing["rollHistory"]) == []


def test_history_store_entries_are_read_only_snapshots() -> None:
    store = HistoryStore()
    store.record("a")
    snapshot = store.entries
    store.record("b")
    assert snapshot == ("a",)


@pytest.mark.parametrize("capacity", [0, -5, "10", True])
def test_history_store_rejects_bad_capacity(capacity) -> None:
    with pytest.raises(InvalidConfigurationError):
        HistoryStore(capacity=capacity)


def test_json_file_storage_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "history.json"
    storage = JsonFileHistoryStorage(path)
    assert storage.load() == []
    storage.save(["second", "first"])
    assert json.loads(path.read_text(encoding="utf-8")) == ["second", "first"]
    assert storage.load() == ["second", "first"]
    assert not path.with_suffix(".json.tmp").exists()


def test_json_file_storage_without_locking(tmp_path: Path) -> None:
    storage = JsonFileHistoryStorage(tmp_path / "history.json", enable_file_locking=False)
    storage.save(["x"])
    assert storage.load() == ["x"]


def test_json_file_storage_malformed_file_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text("{broken", encoding="utf-8")
    assert JsonFileHistoryStorage(path).load() == []


def test_json_file_storage_undecodable_bytes_load_empty(tmp_path: Path, caplog) -> None:
    path = tmp_path / "history.json"
    path.write_bytes(b"[\"\xff\xfe bad\"]")
    with caplog.at_level(logging.WARNING, logger="roll_history"):
        store = HistoryStore(JsonFileHistoryStorage(path))
    assert store.entries == ()
    assert "Failed to read history" in caplog.text


def test_deeply_nested_stored_history_loads_empty() -> None:
    raw = "[" * 100000 + "]" * 100000
    assert HistoryStore(KeyValueHistoryStorage({"rollHistory": raw})).entries == ()


def test_json_file_storage_write_failure_raises(tmp_path: Path) -> None:
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")
    storage = JsonFileHistoryStorage(blocker / "history.json")
    with pytest.raises(HistoryStorageError):
        storage.save(["x"])


def test_history_survives_a_restart(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    store = HistoryStore(JsonFileHistoryStorage(path), capacity=3)
    for entry in ["a", "b", "c", "d"]:
        store.record(entry)

    reopened = HistoryStore(JsonFileHistoryStorage(path), capacity=3)
    assert reopened.entries == ("d", "c", "b")
