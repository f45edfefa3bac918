import json

import pytest

from ecg_stream.errors import StoreUnavailable
from ecg_stream.storage.kv_store import (
    InMemoryStore,
    JsonFileStore,
    build_store,
    normalize_sequence,
)


def test_normalize_sequence_shapes():
    assert normalize_sequence(None) == []
    assert normalize_sequence(["a", "b"]) == ["a", "b"]
    assert normalize_sequence(("a",)) == ["a"]
    assert normalize_sequence({"1": "b", "0": "a", "10": "d", "2": "c"}) == ["a", "b", "c", "d"]
    assert normalize_sequence({2: "c", 0: "a", 1: "b"}) == ["a", "b", "c"]


def test_normalize_sequence_non_numeric_keys_last():
    assert normalize_sequence({"x": "z", "1": "b", "0": "a"}) == ["a", "b", "z"]


def test_transaction_commits_and_returns_value(store):
    assert store.transaction("k", lambda cur: (cur or 0) + 1) == 1
    assert store.transaction("k", lambda cur: cur + 1) == 2
    assert store.get("k") == 2


def test_failed_transform_leaves_record_untouched(store):
    store.set("k", [1, 2])

    def boom(current):
        current.append(3)
        raise RuntimeError("transform failed")

    with pytest.raises(RuntimeError):
        store.transaction("k", boom)
    assert store.get("k") == [1, 2]


def test_get_returns_private_copy():
    store = InMemoryStore(initial={"k": [{"ecg_value": 1}]})
    value = store.get("k")
    value[0]["ecg_value"] = 5
    assert store.get("k") == [{"ecg_value": 1}]


def test_json_store_persists_between_instances(tmp_path):
    path = tmp_path / "store.json"
    JsonFileStore(path).set("ecg_metrics", {"bpm": 72, "status": "normal"})

    reopened = JsonFileStore(path)
    assert reopened.get("ecg_metrics") == {"bpm": 72, "status": "normal"}
    assert reopened.get("missing") is None
    assert not list(tmp_path.glob("*.tmp"))


def test_json_store_corrupt_file_is_unavailable(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreUnavailable):
        JsonFileStore(path).get("ecg_latest")


def test_json_store_failed_write_keeps_previous_document(tmp_path):
    path = tmp_path / "store.json"
    store = JsonFileStore(path)
    store.set("k", [1])

    with pytest.raises(StoreUnavailable):
        store.set("k", {"unserializable": object()})

    assert json.loads(path.read_text(encoding="utf-8")) == {"k": [1]}


def test_build_store(tmp_path):
    assert isinstance(build_store("memory"), InMemoryStore)
    json_store = build_store("json", json_path=tmp_path / "s.json")
    assert isinstance(json_store, JsonFileStore)
    with pytest.raises(ValueError):
        build_store("redis")
