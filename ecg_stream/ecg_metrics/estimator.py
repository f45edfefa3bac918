# ecg_stream/ecg_metrics/estimator.py
# Pure heart-rate estimation from a window of raw ECG samples.

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from ecg_stream.config.settings import EstimatorSettings, settings
from ecg_stream.utils.logging_utils import get_logger

logger = get_logger(module_name="ecg_estimator", logfile_name="ingest.log")


class HeartStatus(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    NORMAL = "normal"
    TACHYCARDIA = "tachycardia"
    BRADYCARDIA = "bradycardia"


@dataclass(frozen=True)
class Peak:
    """R-wave candidate accepted by the detector."""

    index: int
    time: Any


@dataclass(frozen=True)
class MetricsSnapshot:
    timestamp: str
    bpm: int
    status: HeartStatus
    peaks: List[Peak] = field(default_factory=list, compare=False)

    def derived(self) -> Dict[str, Any]:
        """The {bpm, status} pair returned to the device."""
        return {"bpm": self.bpm, "status": self.status.value}

    def to_dict(self) -> Dict[str, Any]:
        """Record layout stored under the metrics key."""
        return {"timestamp": self.timestamp, "bpm": self.bpm, "status": self.status.value}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_ecg_value(value: Any) -> float:
    """Float value of a sample's ecg_value, NaN if it is not a finite number."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        v = float(value)
    except (TypeError, ValueError):
        return math.nan
    return v if math.isfinite(v) else math.nan


def ecg_values(window: Sequence[Any]) -> np.ndarray:
    """Converts the window's ecg_value fields to a 1D float array (NaN for junk)."""
    return np.array(
        [
            _coerce_ecg_value(s.get("ecg_value")) if isinstance(s, Mapping) else math.nan
            for s in window
        ],
        dtype=np.float64,
    )


def detect_peaks(
    window: Sequence[Any],
    threshold_ratio: Optional[float] = None,
    refractory_samples: Optional[int] = None,
) -> List[Peak]:
    """
    Local maxima above threshold_ratio * max(ecg_value), at most one per
    refractory period.

    A sample i (1 <= i <= len-2) is a candidate when its value is above the
    threshold and strictly above both neighbours. Candidates are accepted in
    order, skipping any that are not more than `refractory_samples` indices
    after the last accepted peak.
    """
    cfg = settings.estimator
    ratio = cfg.threshold_ratio if threshold_ratio is None else threshold_ratio
    refractory = cfg.refractory_samples if refractory_samples is None else refractory_samples

    values = ecg_values(window)
    if values.size < 3 or np.all(np.isnan(values)):
        return []

    threshold = float(np.nanmax(values)) * ratio

    prev = values[:-2]
    curr = values[1:-1]
    nxt = values[2:]
    # NaN compares False, so unparseable samples never become peaks
    mask = (curr > threshold) & (curr > prev) & (curr > nxt)
    candidates = np.nonzero(mask)[0] + 1

    peaks: List[Peak] = []
    for i in candidates:
        i = int(i)
        if not peaks or i - peaks[-1].index > refractory:
            sample = window[i]
            peaks.append(Peak(index=i, time=sample.get("timestamp")))
    return peaks


def _to_epoch_ms(ts: Any) -> float:
    # Lists, dicts etc. would make pandas return an index or a frame
    if not isinstance(ts, (str, datetime)):
        raise ValueError(f"Unsupported timestamp type: {type(ts).__name__}")
    parsed = pd.to_datetime(ts, utc=True)
    if pd.isna(parsed):
        raise ValueError(f"Unparseable timestamp: {ts!r}")
    return parsed.value / 1e6


def bpm_from_peaks(peaks: Sequence[Peak]) -> int:
    """
    Average beat rate between the first and last accepted peak.

    Returns 0 with fewer than two peaks, a non-positive time span, or
    timestamps that cannot be parsed.
    """
    if len(peaks) < 2:
        return 0

    try:
        first_ms = _to_epoch_ms(peaks[0].time)
        last_ms = _to_epoch_ms(peaks[-1].time)
    except (TypeError, ValueError, OverflowError) as e:
        logger.warning("Error calculating BPM from peak timestamps: %r", e)
        return 0

    duration_ms = last_ms - first_ms
    if not duration_ms > 0:
        return 0

    avg_interval_ms = duration_ms / (len(peaks) - 1)
    # Half-up rounding (x.5 -> x+1), not banker's rounding
    return int(math.floor(60000.0 / avg_interval_ms + 0.5))


def classify_bpm(bpm: int, cfg: Optional[EstimatorSettings] = None) -> HeartStatus:
    """
    Coarse rhythm label. bpm == 0 (no usable peaks) is reported as normal.
    """
    cfg = cfg or settings.estimator
    if bpm > cfg.tachycardia_bpm:
        return HeartStatus.TACHYCARDIA
    if 0 < bpm < cfg.bradycardia_bpm:
        return HeartStatus.BRADYCARDIA
    return HeartStatus.NORMAL


def estimate(window: Optional[Sequence[Any]], now: Optional[str] = None) -> MetricsSnapshot:
    """
    Heart rate and status for the current window.

    Args:
        window:
            Ordered samples, oldest first.
        now:
            Timestamp to stamp the snapshot with (ISO-8601). Defaults to the
            current UTC time.

    Returns:
        MetricsSnapshot. Windows shorter than settings.estimator.min_samples
        yield bpm=0 / insufficient_data without running peak detection.
    """
    cfg = settings.estimator
    stamp = now or _utc_now_iso()
    window = list(window or [])

    if len(window) < cfg.min_samples:
        return MetricsSnapshot(timestamp=stamp, bpm=0, status=HeartStatus.INSUFFICIENT_DATA)

    peaks = detect_peaks(window)
    bpm = bpm_from_peaks(peaks)

    return MetricsSnapshot(timestamp=stamp, bpm=bpm, status=classify_bpm(bpm, cfg), peaks=peaks)
