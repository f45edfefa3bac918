# ecg_stream/ecg_metrics/service_ecg.py
"""
ECG ingestion and query service.

Ingestion path:
    payload -> validate_payload() -> RollingWindow.append() [atomic]
            -> estimate(resulting window) -> MetricsPublisher.publish()

Query paths:
    query_window()    -> current window, verbatim
    latest_metrics()  -> last published MetricsSnapshot record

Transports (FastAPI, Kafka consumer) only ever talk to EcgService.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ecg_stream.config.settings import settings
from ecg_stream.ecg_metrics.estimator import MetricsSnapshot, estimate
from ecg_stream.errors import StoreUnavailable
from ecg_stream.storage.kv_store import KeyValueStore, build_store
from ecg_stream.streaming.ecg_window import RollingWindow
from ecg_stream.streaming.validation import validate_payload
from ecg_stream.utils.logging_utils import get_logger

logger = get_logger(module_name="ecg_ingest", logfile_name="ingest.log")


@dataclass(frozen=True)
class IngestResult:
    stored_total: int
    snapshot: MetricsSnapshot

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "stored_total": self.stored_total,
            "derived": self.snapshot.derived(),
        }


class MetricsPublisher:
    """Overwrites the single latest-metrics record."""

    def __init__(self, store: KeyValueStore, key: Optional[str] = None) -> None:
        self.store = store
        self.key: str = key or settings.window.metrics_key

    def publish(self, snapshot: MetricsSnapshot) -> None:
        try:
            self.store.set(self.key, snapshot.to_dict())
        except StoreUnavailable:
            raise
        except Exception as e:
            logger.error("Metrics publish failed for key '%s'", self.key, exc_info=True)
            raise StoreUnavailable(f"Metrics publish failed: {e}") from e

    def latest(self) -> Optional[Dict[str, Any]]:
        try:
            return self.store.get(self.key)
        except StoreUnavailable:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Metrics read failed: {e}") from e


class EcgService:
    def __init__(self, store: KeyValueStore, capacity: Optional[int] = None) -> None:
        self.store = store
        self.window = RollingWindow(store, capacity=capacity)
        self.publisher = MetricsPublisher(store)

    def ingest(self, payload: Any) -> IngestResult:
        """
        Store a sample or batch and refresh the derived heart-rate metrics.

        Raises:
            EmptyBatch / InvalidFormat:
                Bad payload; raised before the store is touched.
            StoreUnavailable:
                Window append failed (nothing published), or the metrics
                publish failed after the window was already updated.
        """
        points = validate_payload(payload)

        latest = self.window.append(points)
        snapshot = estimate(latest or points)

        self.publisher.publish(snapshot)

        logger.info(
            "Ingested %d samples -> window=%d bpm=%d status=%s peaks=%d",
            len(points),
            len(latest),
            snapshot.bpm,
            snapshot.status.value,
            len(snapshot.peaks),
        )
        return IngestResult(stored_total=len(latest), snapshot=snapshot)

    def query_window(self) -> List[Any]:
        """Current window contents, oldest first ([] if none yet)."""
        return self.window.snapshot()

    def latest_metrics(self) -> Optional[Dict[str, Any]]:
        """Last published snapshot record, or None before the first ingestion."""
        return self.publisher.latest()


# Global service instance used by the API and the Kafka consumer.
# Backend comes from settings.store.backend ("memory" or "json").
GLOBAL_ECG_SERVICE = EcgService(store=build_store())
