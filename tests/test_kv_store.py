"""Tests for JsonFileStore."""

import json

import pytest

from vastralaya.errors import StoreError
from vastralaya.kv_store import JsonFileStore


class TestJsonFileStore:
    """Tests for JsonFileStore class."""

    def test_get_missing_returns_none(self, temp_dir):
        store = JsonFileStore(temp_dir)
        assert store.get("order:nope") is None

    def test_set_and_get(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("order:1", {"id": "order:1", "status": "pending"})

        assert store.get("order:1") == {"id": "order:1", "status": "pending"}

    def test_set_creates_data_dir(self, temp_dir):
        store = JsonFileStore(temp_dir / "nested" / "data")
        store.set("k", "v")

        assert store.path.exists()

    def test_file_format(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("k", {"a": 1})

        data = json.loads(store.path.read_text())
        assert data["schema_version"] == 1
        assert data["records"] == {"k": {"a": 1}}

    def test_set_overwrites(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("k", 1)
        store.set("k", 2)

        assert store.get("k") == 2

    def test_values_survive_new_instance(self, temp_dir):
        JsonFileStore(temp_dir).set("session:abc", {"userId": "retailer:fixed"})

        assert JsonFileStore(temp_dir).get("session:abc") == {"userId": "retailer:fixed"}

    def test_delete(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("k", 1)

        assert store.delete("k") is True
        assert store.get("k") is None
        assert store.delete("k") is False

    def test_delete_matching(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("session:old", {"age": 9})
        store.set("session:new", {"age": 1})
        store.set("order:old", {"age": 9})

        removed = store.delete_matching("session:", lambda _key, value: value["age"] > 5)

        assert removed == 1
        assert store.get("session:old") is None
        assert store.get("session:new") == {"age": 1}
        assert store.get("order:old") == {"age": 9}

    def test_delete_matching_nothing_leaves_file_alone(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("session:a", 1)
        before = store.path.stat().st_mtime_ns

        assert store.delete_matching("session:", lambda _key, _value: False) == 0
        assert store.path.stat().st_mtime_ns == before

    def test_get_by_prefix(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("order:1", {"id": "order:1"})
        store.set("order:2", {"id": "order:2"})
        store.set("product:1", {"id": "product:1"})

        orders = store.get_by_prefix("order:")
        assert sorted(o["id"] for o in orders) == ["order:1", "order:2"]
        assert store.get_by_prefix("payment:") == []


class TestUpdate:
    def test_update_missing_key(self, temp_dir):
        store = JsonFileStore(temp_dir)

        result = store.update("counter", lambda current: (current or 0) + 1)

        assert result == 1
        assert store.get("counter") == 1

    def test_update_existing_key(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("order:1", {"status": "pending", "version": 1})

        def bump(current):
            return {**current, "status": "shipped", "version": current["version"] + 1}

        assert store.update("order:1", bump) == {"status": "shipped", "version": 2}
        assert store.get("order:1")["version"] == 2

    def test_none_from_mutator_keeps_value(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("k", {"a": 1})
        mtime = store.path.stat().st_mtime_ns

        assert store.update("k", lambda current: None) == {"a": 1}
        assert store.path.stat().st_mtime_ns == mtime

    def test_mutator_exception_aborts_write(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("k", {"a": 1})

        def fail(current):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.update("k", fail)
        assert store.get("k") == {"a": 1}


class TestCorruptStore:
    def test_invalid_json_raises(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.path.write_text("{not json")

        with pytest.raises(StoreError) as exc_info:
            store.get("k")
        assert "corrupt" in str(exc_info.value)

    def test_unknown_schema_version_raises(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.path.write_text(json.dumps({"schema_version": 99, "records": {}}))

        with pytest.raises(StoreError) as exc_info:
            store.get("k")
        assert "schema version 99" in str(exc_info.value)

    def test_no_temp_files_left_behind(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.set("a", 1)
        store.set("b", 2)

        assert list(temp_dir.glob(".store_*.tmp")) == []
