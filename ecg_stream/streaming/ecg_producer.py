# Synthetic single-lead ECG device (batch streaming)
"""
Streams a synthetic ECG waveform in batches, the way the IoT sensor does.

Sinks:
    kafka -> settings.kafka.ecg_topic (picked up by ecg_consumer)
    http  -> POST {settings.api.base_url}/submitEcgData

Each sample is {"timestamp": ISO-8601 UTC, "ecg_value": float, "status": "normal"}.

Usage:
    python -m ecg_stream.streaming.ecg_producer --sink http --bpm 75
"""

import argparse
import json
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import requests
from kafka import KafkaProducer

# --- ensure project root is on sys.path when run as a script ---
ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from ecg_stream.config.settings import settings
from ecg_stream.utils.logging_utils import get_logger

logger = get_logger(module_name="ecg_producer", logfile_name="producer.log")

# (offset within beat as fraction of the RR period, amplitude, width in s)
_WAVES = (
    (0.10, 0.10, 0.025),   # P
    (0.23, -0.12, 0.006),  # Q
    (0.25, 1.00, 0.008),   # R
    (0.27, -0.20, 0.007),  # S
    (0.45, 0.30, 0.040),   # T
)


def synth_ecg(
    n: int,
    fs: float,
    bpm: float,
    start_index: int = 0,
    baseline: float = 0.0,
    noise_std: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Gaussian-bump PQRST model sampled at `fs` Hz.

    `start_index` lets consecutive batches continue the same waveform.
    """
    if fs <= 0 or bpm <= 0:
        raise ValueError("fs and bpm must be positive")

    period_s = 60.0 / bpm
    t = (np.arange(n) + start_index) / fs
    phase = np.mod(t, period_s)

    signal = np.full(n, baseline, dtype=np.float64)
    for offset, amplitude, width in _WAVES:
        signal += amplitude * np.exp(-(((phase - offset * period_s) / width) ** 2))

    if noise_std > 0:
        rng = rng or np.random.default_rng()
        signal += rng.normal(0.0, noise_std, size=n)
    return signal


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_samples(
    values: np.ndarray,
    start_time: datetime,
    fs: float,
    start_index: int = 0,
    status: str = "normal",
) -> List[Dict[str, Any]]:
    """Wrap raw values into device samples with evenly spaced timestamps."""
    step = timedelta(seconds=1.0 / fs)
    return [
        {
            "timestamp": _iso(start_time + step * (start_index + i)),
            "ecg_value": round(float(v), 4),
            "status": status,
        }
        for i, v in enumerate(values)
    ]


class KafkaSink:
    def __init__(self, bootstrap: Optional[str] = None, topic: Optional[str] = None) -> None:
        self.topic = topic or settings.kafka.ecg_topic
        self.producer = KafkaProducer(
            bootstrap_servers=bootstrap or settings.kafka.bootstrap_servers,
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            acks=1,
        )

    def send(self, batch: List[Dict[str, Any]]) -> None:
        self.producer.send(self.topic, batch)

    def close(self) -> None:
        try:
            self.producer.flush()
        finally:
            self.producer.close()


class HttpSink:
    def __init__(self, base_url: Optional[str] = None, timeout: float = 5.0) -> None:
        self.url = (base_url or settings.api.base_url).rstrip("/") + "/submitEcgData"
        self.timeout = timeout
        self.session = requests.Session()

    def send(self, batch: List[Dict[str, Any]]) -> None:
        resp = self.session.post(self.url, json=batch, timeout=self.timeout)
        if not resp.ok:
            logger.warning("POST %s -> %d %s", self.url, resp.status_code, resp.text)
            return
        logger.info("POST %s -> %s", self.url, resp.json().get("derived"))

    def close(self) -> None:
        self.session.close()


def build_sink(name: str):
    if name == "kafka":
        return KafkaSink()
    if name == "http":
        return HttpSink()
    raise ValueError(f"Unknown sink: {name!r}")


def run(
    sink,
    bpm: float,
    fs: float,
    batch_size: int,
    duration_s: Optional[float] = None,
    noise_std: float = 0.0,
    realtime: bool = True,
) -> int:
    """
    Stream batches to `sink` until `duration_s` of signal has been sent
    (forever if None). Returns the number of samples sent.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    start_time = datetime.now(timezone.utc)
    total_samples = None if duration_s is None else int(duration_s * fs)
    rng = np.random.default_rng()
    sent = 0

    try:
        while total_samples is None or sent < total_samples:
            n = batch_size if total_samples is None else min(batch_size, total_samples - sent)
            values = synth_ecg(n, fs=fs, bpm=bpm, start_index=sent, noise_std=noise_std, rng=rng)
            batch = make_samples(values, start_time=start_time, fs=fs, start_index=sent)

            try:
                sink.send(batch)
            except requests.RequestException as e:
                logger.error("Send failed: %r", e)

            sent += n
            if realtime:
                time.sleep(n / fs)
    finally:
        sink.close()
        logger.info("Producer stopped after %d samples.", sent)

    return sent


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Synthetic ECG device")
    parser.add_argument("--sink", choices=("kafka", "http"), default="kafka")
    parser.add_argument("--bpm", type=float, default=settings.producer.bpm)
    parser.add_argument("--fs", type=float, default=settings.producer.fs_hz)
    parser.add_argument("--batch-size", type=int, default=settings.producer.batch_size)
    parser.add_argument("--duration", type=float, default=None, help="Seconds of signal to send")
    parser.add_argument("--noise", type=float, default=0.0, help="Gaussian noise std")
    args = parser.parse_args(argv)

    logger.info(
        "Producing ECG to sink=%s bpm=%.1f fs=%.1f batch=%d",
        args.sink,
        args.bpm,
        args.fs,
        args.batch_size,
    )
    run(
        build_sink(args.sink),
        bpm=args.bpm,
        fs=args.fs,
        batch_size=args.batch_size,
        duration_s=args.duration,
        noise_std=args.noise,
    )


if __name__ == "__main__":
    main()
