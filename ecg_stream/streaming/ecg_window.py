# Keeps the last N ECG samples in a single store record
"""
Rolling window of the most recent ECG samples.

Responsibilities:
    - Append incoming sample batches to the window record atomically.
    - Evict the oldest samples so at most `capacity` remain (FIFO).
    - Hand out read-only snapshots (copies) for estimation and queries.

Every mutation of the window record goes through RollingWindow.append(), which
runs inside the store's transaction; no other code path writes the record.

Configuration:
    - Capacity: settings.window.capacity
    - Record key: settings.window.window_key
"""

from typing import Any, List, Optional, Sequence

from ecg_stream.config.settings import settings
from ecg_stream.errors import StoreUnavailable
from ecg_stream.storage.kv_store import KeyValueStore, normalize_sequence
from ecg_stream.utils.logging_utils import get_logger

logger = get_logger(module_name="ecg_window", logfile_name="ingest.log")


def append_trailing(current: Any, batch: Sequence[Any], capacity: int) -> List[Any]:
    """
    Concatenate `batch` to the stored window and keep the trailing `capacity`.

    `current` may be None (no window yet), a list, or an index-keyed mapping.
    """
    window = normalize_sequence(current)
    window.extend(batch)
    if len(window) > capacity:
        window = window[len(window) - capacity:]
    return window


class RollingWindow:
    """
    Fixed-capacity, FIFO window of ECG samples stored under one record key.

    The store's transaction lock makes append() linearizable: two concurrent
    appends each see the other's result or the state before it, never a torn
    read, so no sample is lost.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> None:
        self.store = store
        self.key: str = key or settings.window.window_key
        self.capacity: int = int(capacity if capacity is not None else settings.window.capacity)
        if self.capacity <= 0:
            raise ValueError("Window capacity must be positive")

    def append(self, batch: Sequence[Any]) -> List[Any]:
        """
        Atomically append a batch and return the resulting window.

        Raises:
            StoreUnavailable: backend failure; the window is left unchanged.
        """
        batch = list(batch)
        try:
            window = self.store.transaction(
                self.key,
                lambda current: append_trailing(current, batch, self.capacity),
            )
        except StoreUnavailable:
            raise
        except Exception as e:
            logger.error("Window append failed for key '%s'", self.key, exc_info=True)
            raise StoreUnavailable(f"Window append failed: {e}") from e

        logger.debug(
            "Appended %d samples to '%s' -> window size %d",
            len(batch),
            self.key,
            len(window),
        )
        return normalize_sequence(window)

    def snapshot(self) -> List[Any]:
        """
        Current window contents (empty list if nothing stored yet).

        Read-committed: a concurrent append may or may not be visible.
        """
        try:
            current = self.store.get(self.key)
        except StoreUnavailable:
            raise
        except Exception as e:
            logger.error("Window read failed for key '%s'", self.key, exc_info=True)
            raise StoreUnavailable(f"Window read failed: {e}") from e
        return normalize_sequence(current)

    def __len__(self) -> int:
        return len(self.snapshot())
