"""Flat key-value storage for vastralaya."""

import fcntl
import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol

from .errors import StoreError

SCHEMA_VERSION = 1
STORE_FILE = "store.json"


class KeyValueStore(Protocol):
    """What the services need from a store."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def get_by_prefix(self, prefix: str) -> list[Any]: ...

    def delete_matching(self, prefix: str, predicate: Callable[[str, Any], bool]) -> int: ...

    def update(self, key: str, mutator: Callable[[Any | None], Any]) -> Any: ...


class JsonFileStore:
    """Key-value store persisted as a single JSON document."""

    def __init__(self, data_dir: Path):
        """
        Initialize JsonFileStore.

        Args:
            data_dir: Directory holding the store file (created on first write).
        """
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / STORE_FILE

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the store for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.data_dir / ".store.lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load_records(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(str(self.path), f"corrupt store file ({e})") from e

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise StoreError(str(self.path), f"unsupported schema version {version}")
        return data.get("records", {})

    def _save_records(self, records: dict[str, Any]) -> None:
        """Write records to disk atomically."""
        self._ensure_dir()

        data = {"schema_version": SCHEMA_VERSION, "records": records}
        fd, temp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".store_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def get(self, key: str) -> Any | None:
        return self._load_records().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock():
            records = self._load_records()
            records[key] = value
            self._save_records(records)

    def delete(self, key: str) -> bool:
        """Delete a key. Returns False if it wasn't there."""
        with self._lock():
            records = self._load_records()
            if key not in records:
                return False
            del records[key]
            self._save_records(records)
            return True

    def get_by_prefix(self, prefix: str) -> list[Any]:
        """All values whose key starts with prefix, in no particular order."""
        records = self._load_records()
        return [value for key, value in records.items() if key.startswith(prefix)]

    def update(self, key: str, mutator: Callable[[Any | None], Any]) -> Any:
        """
        Read, mutate and write one key while holding the store lock.

        The mutator receives the current value (None if absent) and returns
        the value to store; returning None leaves the key as it was.
        Exceptions raised by the mutator abort the write.

        Returns:
            The stored value.
        """
        with self._lock():
            records = self._load_records()
            value = mutator(records.get(key))
            if value is None:
                return records.get(key)
            records[key] = value
            self._save_records(records)
            return value

    def delete_matching(self, prefix: str, predicate: Callable[[str, Any], bool]) -> int:
        """
        Delete every key under prefix for which predicate(key, value) holds.

        Returns:
            Number of keys removed.
        """
        with self._lock():
            records = self._load_records()
            doomed = [
                key for key, value in records.items()
                if key.startswith(prefix) and predicate(key, value)
            ]
            if not doomed:
                return 0
            for key in doomed:
                del records[key]
            self._save_records(records)
            return len(doomed)
