# ecg_stream/storage/kv_store.py
"""
Key-value record store with an atomic read-transform-write primitive.

Two backends:
    - InMemoryStore:  dict in process memory (default, used by tests and demos)
    - JsonFileStore:  one JSON document on disk, rewritten atomically

Both guard every transaction with a single lock per store instance, so the
read-modify-write of one record is linearizable across threads (FastAPI
worker threads, the Kafka consumer thread).

JSON objects cannot carry integer keys, so a sequence written by another
writer may come back as {"0": ..., "1": ...}. normalize_sequence() folds that
shape back into a list and is the only place that knows about it.
"""

import copy
import json
import os
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional

from ecg_stream.config.settings import settings
from ecg_stream.errors import StoreUnavailable
from ecg_stream.utils.logging_utils import get_logger

logger = get_logger(module_name="ecg_store", logfile_name="store.log")

Transform = Callable[[Any], Any]


def _index_sort_key(key: Any):
    # Numeric keys first, in numeric order; anything else after, by string
    try:
        return (0, int(key), "")
    except (TypeError, ValueError):
        return (1, 0, str(key))


def normalize_sequence(value: Any) -> List[Any]:
    """
    Return a stored collection as an ordered list.

    - None          -> []
    - list / tuple  -> list (same order)
    - mapping       -> values ordered by their (numeric) index key
    - anything else -> single-element list
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, Mapping):
        return [value[k] for k in sorted(value.keys(), key=_index_sort_key)]
    return [value]


class KeyValueStore:
    """
    Minimal record store interface.

    Subclasses implement _load_all / _save_all; locking and copying are done
    here so every backend gets the same transaction semantics.
    """

    def __init__(self) -> None:
        self._lock: Lock = Lock()

    # --- backend hooks --- #

    def _load_all(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _save_all(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    # --- public API --- #

    def get(self, key: str) -> Any:
        """Read one record (None if absent). Returns a private copy."""
        with self._lock:
            data = self._load_all()
            return copy.deepcopy(data.get(key))

    def set(self, key: str, value: Any) -> None:
        """Overwrite one record."""
        with self._lock:
            data = self._load_all()
            data[key] = copy.deepcopy(value)
            self._save_all(data)

    def transaction(self, key: str, transform: Transform) -> Any:
        """
        Atomically replace record `key` with transform(current).

        `transform` receives a copy of the current value (None if absent) and
        returns the new value. If it raises, or the backend fails, nothing is
        written. Returns the committed value.
        """
        with self._lock:
            data = self._load_all()
            new_value = transform(copy.deepcopy(data.get(key)))
            data[key] = new_value
            self._save_all(data)
            return copy.deepcopy(new_value)


class InMemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def _load_all(self) -> Dict[str, Any]:
        # Transactions mutate a copy so a failing transform leaves no trace
        return dict(self._data)

    def _save_all(self, data: Dict[str, Any]) -> None:
        self._data = data


class JsonFileStore(KeyValueStore):
    """
    Whole store kept as one JSON object in `path`.

    Writes go to a temp file in the same directory followed by os.replace(),
    so a crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def _load_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to read store file %s: %r", self.path, e)
            raise StoreUnavailable(f"Store read failed: {e}") from e

        if not isinstance(payload, dict):
            raise StoreUnavailable(f"Store file {self.path} does not hold a JSON object")
        return payload

    def _save_all(self, data: Dict[str, Any]) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write store file %s: %r", self.path, e)
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreUnavailable(f"Store write failed: {e}") from e


def build_store(backend: Optional[str] = None, json_path: Optional[Path] = None) -> KeyValueStore:
    """
    Construct the configured backend (settings.store unless overridden).
    """
    backend = (backend or settings.store.backend).strip().lower()

    if backend == "memory":
        logger.info("Using in-memory ECG store.")
        return InMemoryStore()
    if backend == "json":
        path = Path(json_path) if json_path is not None else settings.store.json_path
        logger.info("Using JSON file ECG store at %s", path)
        return JsonFileStore(path)

    raise ValueError(f"Unknown store backend: {backend!r}. Expected 'memory' or 'json'.")
