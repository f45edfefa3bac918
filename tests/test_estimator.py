from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from ecg_stream.ecg_metrics.estimator import (
    HeartStatus,
    bpm_from_peaks,
    classify_bpm,
    detect_peaks,
    estimate,
    Peak,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _iso(ts):
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_window(values, step_ms=4.0):
    return [
        {
            "timestamp": _iso(T0 + timedelta(milliseconds=step_ms * i)),
            "ecg_value": float(v),
            "status": "normal",
        }
        for i, v in enumerate(values)
    ]


def spikes(n, peak_indexes, height=1.0, base=0.1):
    values = np.full(n, base)
    values[list(peak_indexes)] = height
    return values


def cosine_crests(n, period_samples, first_crest):
    i = np.arange(n)
    return np.cos(2.0 * np.pi * (i - first_crest) / period_samples)


def test_nine_samples_is_insufficient():
    snap = estimate(make_window(spikes(9, [2, 6])))
    assert snap.bpm == 0
    assert snap.status == HeartStatus.INSUFFICIENT_DATA
    assert snap.derived() == {"bpm": 0, "status": "insufficient_data"}


def test_empty_window_is_insufficient():
    assert estimate([]).status == HeartStatus.INSUFFICIENT_DATA
    assert estimate(None).status == HeartStatus.INSUFFICIENT_DATA


def test_two_peaks_600ms_apart_is_100_bpm_normal():
    # 150 samples at 4 ms between the peaks -> 600 ms
    window = make_window(spikes(200, [10, 160], height=0.9))
    snap = estimate(window)
    assert [p.index for p in snap.peaks] == [10, 160]
    assert snap.bpm == 100
    assert snap.status == HeartStatus.NORMAL


def test_short_batch_peaks_are_refractory_suppressed():
    # 12 samples, peaks 600 ms apart in time but only 6 indexes apart
    window = make_window(spikes(12, [2, 8], height=0.9), step_ms=100.0)
    snap = estimate(window)
    assert len(snap.peaks) == 1
    assert snap.bpm == 0
    assert snap.status == HeartStatus.NORMAL


def test_peaks_closer_than_refractory_give_zero_normal():
    window = make_window(spikes(60, [5, 30, 54]))
    snap = estimate(window)
    assert [p.index for p in snap.peaks] == [5]
    assert snap.bpm == 0
    assert snap.status == HeartStatus.NORMAL


def test_refractory_boundary_is_exclusive():
    assert [p.index for p in detect_peaks(make_window(spikes(80, [5, 55])))] == [5]
    assert [p.index for p in detect_peaks(make_window(spikes(80, [5, 56])))] == [5, 56]


@pytest.mark.parametrize(
    "period_samples, step_ms, first_crest, expected_bpm, expected_status",
    [
        (200, 4.0, 50, 75, HeartStatus.NORMAL),         # 800 ms period
        (125, 4.0, 20, 120, HeartStatus.TACHYCARDIA),   # 500 ms period
        (150, 10.0, 10, 40, HeartStatus.BRADYCARDIA),   # 1500 ms period
    ],
)
def test_sinusoid_period_gives_expected_bpm(
    period_samples, step_ms, first_crest, expected_bpm, expected_status
):
    window = make_window(cosine_crests(300, period_samples, first_crest), step_ms=step_ms)
    snap = estimate(window)

    crests = list(range(first_crest, 299, period_samples))
    assert [p.index for p in snap.peaks] == crests
    assert snap.bpm == round(60000 / (period_samples * step_ms))
    assert snap.bpm == expected_bpm
    assert snap.status == expected_status


def test_peak_records_sample_timestamp():
    window = make_window(spikes(100, [20, 90]))
    peaks = detect_peaks(window)
    assert peaks[0] == Peak(index=20, time=window[20]["timestamp"])


def test_threshold_is_relative_to_window_max():
    values = spikes(120, [10, 100], height=1.0)
    values[60] = 0.65  # local max but below 0.7 * 1.0
    assert [p.index for p in detect_peaks(make_window(values))] == [10, 100]


def test_non_numeric_values_do_not_crash():
    window = make_window(spikes(120, [10, 110]))
    window[3]["ecg_value"] = "abc"
    window[4]["ecg_value"] = None
    window[5]["ecg_value"] = {"nested": 1}
    window[6] = "not even a mapping"
    window[50]["ecg_value"] = "0.2"

    snap = estimate(window)
    assert [p.index for p in snap.peaks] == [10, 110]
    assert snap.bpm == 150
    assert snap.status == HeartStatus.TACHYCARDIA


def test_all_values_unusable():
    window = make_window(np.zeros(20))
    for s in window:
        s["ecg_value"] = "n/a"
    snap = estimate(window)
    assert snap.peaks == []
    assert snap.bpm == 0
    assert snap.status == HeartStatus.NORMAL


def test_bad_peak_timestamp_degrades_to_zero():
    window = make_window(spikes(120, [10, 110]))
    window[110]["timestamp"] = "yesterday-ish"
    snap = estimate(window)
    assert len(snap.peaks) == 2
    assert snap.bpm == 0
    assert snap.status == HeartStatus.NORMAL


@pytest.mark.parametrize(
    "bad_ts",
    [["2026-01-01T00:00:01Z"], {"iso": "2026-01-01T00:00:01Z"}, 1767225601000, None],
)
def test_non_string_peak_timestamp_degrades_to_zero(bad_ts):
    window = make_window(spikes(120, [10, 110]))
    window[110]["timestamp"] = bad_ts
    snap = estimate(window)
    assert len(snap.peaks) == 2
    assert snap.bpm == 0
    assert snap.status == HeartStatus.NORMAL


def test_non_increasing_peak_times_give_zero():
    window = make_window(spikes(120, [10, 110]))
    window[110]["timestamp"] = window[10]["timestamp"]
    assert estimate(window).bpm == 0


def test_bpm_rounds_half_up():
    # 960 ms between peaks -> 62.5 bpm -> 63
    window = make_window(spikes(70, [2, 62]), step_ms=16.0)
    assert estimate(window).bpm == 63


def test_bpm_from_peaks_needs_two():
    assert bpm_from_peaks([]) == 0
    assert bpm_from_peaks([Peak(index=3, time="2026-01-01T00:00:00Z")]) == 0


@pytest.mark.parametrize(
    "bpm, status",
    [
        (0, HeartStatus.NORMAL),
        (1, HeartStatus.BRADYCARDIA),
        (59, HeartStatus.BRADYCARDIA),
        (60, HeartStatus.NORMAL),
        (100, HeartStatus.NORMAL),
        (101, HeartStatus.TACHYCARDIA),
    ],
)
def test_classify_bpm(bpm, status):
    assert classify_bpm(bpm) == status


def test_snapshot_record_layout():
    snap = estimate(make_window(spikes(200, [10, 160])), now="2026-01-01T12:00:01.000Z")
    assert snap.to_dict() == {
        "timestamp": "2026-01-01T12:00:01.000Z",
        "bpm": 100,
        "status": "normal",
    }
