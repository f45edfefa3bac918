import pytest

from ecg_stream.errors import EmptyBatch, InvalidFormat
from ecg_stream.streaming.validation import (
    BatchSamples,
    SingleSample,
    classify_payload,
    validate_payload,
)


def _sample(i=0, value=0.5):
    return {"timestamp": f"2026-01-01T00:00:00.{i:03d}Z", "ecg_value": value, "status": "normal"}


def test_classify_single_and_batch():
    assert isinstance(classify_payload(_sample()), SingleSample)
    assert isinstance(classify_payload([_sample()]), BatchSamples)
    parsed = classify_payload(42)
    assert isinstance(parsed, BatchSamples)
    assert len(parsed.samples) == 0


def test_single_object_becomes_one_element_batch():
    points = validate_payload(_sample(value=0.7))
    assert points == [_sample(value=0.7)]


def test_batch_keeps_arrival_order():
    batch = [_sample(i, value=i / 10) for i in range(5)]
    points = validate_payload(batch)
    assert [p["ecg_value"] for p in points] == [0.0, 0.1, 0.2, 0.3, 0.4]


@pytest.mark.parametrize("payload", [[], None, "not a sample", ()])
def test_empty_payload_rejected(payload):
    with pytest.raises(EmptyBatch) as exc:
        validate_payload(payload)
    assert str(exc.value) == "No data provided"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"ecg_value": 0.3},
        {"timestamp": "", "ecg_value": 0.3},
        {"timestamp": "2026-01-01T00:00:00Z"},
        [{"status": "normal"}, _sample()],
        ["garbage", _sample()],
    ],
)
def test_first_sample_missing_fields_rejected(payload):
    with pytest.raises(InvalidFormat):
        validate_payload(payload)


def test_null_ecg_value_counts_as_present():
    points = validate_payload({"timestamp": "2026-01-01T00:00:00Z", "ecg_value": None})
    assert len(points) == 1


def test_only_first_sample_is_checked():
    batch = [_sample(), {"status": "noisy"}, {"ecg_value": "x"}]
    points = validate_payload(batch)
    assert len(points) == 3
    assert points[1] == {"status": "noisy"}


def test_returned_samples_are_copies():
    original = _sample()
    points = validate_payload([original])
    points[0]["ecg_value"] = 99
    assert original["ecg_value"] == 0.5
