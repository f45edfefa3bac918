# Consumes ECG sample batches from Kafka and feeds them into the ingestion service.
"""
Kafka ECG consumer.

Responsibilities:
    - Subscribe to the configured ECG topic.
    - Deserialize JSON messages (one sample object or an array of samples).
    - Route each message through EcgService.ingest(), the same path the HTTP
      endpoint uses, so window updates stay atomic.
    - Run in a resilient infinite loop with automatic reconnect.

Configuration:
    - Kafka connection and topic: ecg_stream.config.settings.settings.kafka
    - Service instance: ecg_stream.ecg_metrics.service_ecg.GLOBAL_ECG_SERVICE
"""

import json
import threading
import time
from typing import Any, Optional

from kafka import KafkaConsumer

from ecg_stream.config.settings import settings
from ecg_stream.ecg_metrics.service_ecg import GLOBAL_ECG_SERVICE, EcgService, IngestResult
from ecg_stream.errors import StoreUnavailable, ValidationError
from ecg_stream.utils.logging_utils import get_logger

# Centralized config
KAFKA_BOOTSTRAP: str = settings.kafka.bootstrap_servers
KAFKA_TOPIC: str = settings.kafka.ecg_topic
KAFKA_GROUP_ID: str = settings.kafka.group_id

RECONNECT_DELAY_S: float = 2.0

logger = get_logger(module_name="ecg_consumer", logfile_name="consumer.log")

# Single background consumer thread handle
_consumer_thread: Optional[threading.Thread] = None


def _deserialize(raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None


def handle_message(data: Any, service: Optional[EcgService] = None) -> Optional[IngestResult]:
    """
    Ingest one decoded Kafka message.

    Invalid payloads and store failures are logged and skipped; the consumer
    loop keeps running. Returns the ingestion result, or None when skipped.
    """
    service = service or GLOBAL_ECG_SERVICE

    try:
        return service.ingest(data)
    except ValidationError as e:
        logger.warning("Skipped invalid message (%s): %r", e, data)
    except StoreUnavailable as e:
        logger.error("Store unavailable, message dropped: %s", e)
    return None


def _run_consumer_forever(service: Optional[EcgService] = None) -> None:
    """
    Blocking loop that continuously consumes ECG messages from Kafka.

    Behaviour:
        - Creates a KafkaConsumer inside a retry loop.
        - On any connection-level exception (broker down, network, restart),
          waits RECONNECT_DELAY_S and reconnects.
    """
    while True:
        consumer: Optional[KafkaConsumer] = None

        try:
            consumer = KafkaConsumer(
                KAFKA_TOPIC,
                bootstrap_servers=KAFKA_BOOTSTRAP,
                group_id=KAFKA_GROUP_ID,
                auto_offset_reset="latest",
                enable_auto_commit=True,
                value_deserializer=_deserialize,
            )

            logger.info(
                "Listening on topic='%s' (bootstrap=%s, group_id=%s)",
                KAFKA_TOPIC,
                KAFKA_BOOTSTRAP,
                KAFKA_GROUP_ID,
            )

            for msg in consumer:
                handle_message(msg.value, service=service)

        except Exception as e:
            logger.error("Consumer error: %r (retrying in %.0fs)", e, RECONNECT_DELAY_S)
            time.sleep(RECONNECT_DELAY_S)

        finally:
            if consumer is not None:
                try:
                    consumer.close()
                except Exception:
                    logger.warning("Kafka consumer close() failed", exc_info=True)


def start_consumer_background(service: Optional[EcgService] = None) -> None:
    """
    Starts the Kafka ECG consumer in a daemon thread, if not already running.

    Called once from the FastAPI startup hook when settings.kafka.enabled.
    """
    global _consumer_thread

    if _consumer_thread is not None and _consumer_thread.is_alive():
        return

    t = threading.Thread(target=_run_consumer_forever, args=(service,), daemon=True)
    t.start()
    _consumer_thread = t
    logger.info("Background consumer thread started (daemon=%s)", t.daemon)


if __name__ == "__main__":
    # Standalone: block in the consumer loop.
    _run_consumer_forever()
