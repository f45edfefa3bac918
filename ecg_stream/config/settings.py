# ecg_stream/config/settings.py
"""
Central application configuration for the ECG realtime service.

All constants and parameters live here:
    - File paths (data, logs)
    - Rolling window capacity and record keys
    - Peak detection / BPM classification parameters
    - Store backend selection
    - Kafka and API connection settings
    - Device simulator defaults

Read it from anywhere with:
    from ecg_stream.config.settings import settings
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


# Project root: .../<repo>
BASE_DIR = Path(__file__).resolve().parents[2]


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class PathSettings:
    """
    File and directory paths.

    Environment variables:
        ECG_DATA_DIR
        ECG_LOG_DIR
    """

    base_dir: Path = BASE_DIR
    data_dir: Path = Path(os.getenv("ECG_DATA_DIR", str(BASE_DIR / "data")))
    log_dir: Path = Path(os.getenv("ECG_LOG_DIR", str(BASE_DIR / "logs")))


@dataclass(frozen=True)
class WindowSettings:
    """
    Rolling window of the most recent ECG samples.

    Environment variables:
        ECG_WINDOW_KEY
        ECG_METRICS_KEY
    """

    # Maximum number of samples kept in the window
    capacity: int = 300

    window_key: str = os.getenv("ECG_WINDOW_KEY", "ecg_latest")
    metrics_key: str = os.getenv("ECG_METRICS_KEY", "ecg_metrics")


@dataclass(frozen=True)
class EstimatorSettings:
    """
    R-peak detection and heart rate classification parameters.
    """

    # Below this window length no estimate is attempted
    min_samples: int = 10

    # Peak threshold relative to the window maximum
    threshold_ratio: float = 0.7

    # Minimum index distance between two accepted peaks (exclusive)
    refractory_samples: int = 50

    # bpm > tachycardia_bpm -> tachycardia, 0 < bpm < bradycardia_bpm -> bradycardia
    tachycardia_bpm: int = 100
    bradycardia_bpm: int = 60


@dataclass(frozen=True)
class StoreSettings:
    """
    Key-value store backend.

    Environment variables:
        ECG_STORE_BACKEND   ("memory" or "json")
        ECG_STORE_PATH
    """

    backend: str = os.getenv("ECG_STORE_BACKEND", "memory")
    json_path: Path = Path(
        os.getenv("ECG_STORE_PATH", str(BASE_DIR / "data" / "ecg_store.json"))
    )


@dataclass(frozen=True)
class KafkaSettings:
    """
    Kafka connection settings.

    Environment variables:
        KAFKA_BOOTSTRAP
        KAFKA_ECG_TOPIC
        KAFKA_GROUP_ID
        ECG_KAFKA_ENABLED
    """

    bootstrap_servers: str = os.getenv("KAFKA_BOOTSTRAP", "localhost:9092")
    ecg_topic: str = os.getenv("KAFKA_ECG_TOPIC", "ecg-stream")
    group_id: str = os.getenv("KAFKA_GROUP_ID", "ecg-consumer")

    # Start the background consumer together with the API
    enabled: bool = _env_flag("ECG_KAFKA_ENABLED")


@dataclass(frozen=True)
class ApiSettings:
    """
    FastAPI service settings.
    """

    host: str = os.getenv("ECG_API_HOST", "127.0.0.1")
    port: int = int(os.getenv("ECG_API_PORT", "8000"))
    base_url: str = os.getenv("ECG_API_BASE_URL", "http://127.0.0.1:8000")


@dataclass(frozen=True)
class ProducerSettings:
    """
    Synthetic ECG device defaults.
    """

    # Sampling rate (Hz); 250 Hz -> 4 ms between samples
    fs_hz: float = 250.0
    bpm: float = 72.0
    batch_size: int = 25


@dataclass(frozen=True)
class AppSettings:
    paths: PathSettings = field(default_factory=PathSettings)
    window: WindowSettings = field(default_factory=WindowSettings)
    estimator: EstimatorSettings = field(default_factory=EstimatorSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    kafka: KafkaSettings = field(default_factory=KafkaSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    producer: ProducerSettings = field(default_factory=ProducerSettings)


# Single global config object
settings = AppSettings()
