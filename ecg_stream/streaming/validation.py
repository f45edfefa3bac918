# ecg_stream/streaming/validation.py
"""
Incoming ECG payload normalization.

A device may POST (or publish to Kafka) either one sample object or an array
of sample objects:

    {"timestamp": "2026-01-01T00:00:00.000Z", "ecg_value": 0.42, "status": "normal"}
    [{...}, {...}, ...]

The shape is resolved once here; everything downstream works with a flat,
ordered list of sample dicts.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Union

from ecg_stream.errors import EmptyBatch, InvalidFormat

Sample = Dict[str, Any]


@dataclass(frozen=True)
class SingleSample:
    sample: Mapping[str, Any]


@dataclass(frozen=True)
class BatchSamples:
    samples: Sequence[Any]


Payload = Union[SingleSample, BatchSamples]


def classify_payload(payload: Any) -> Payload:
    """
    Decide whether a decoded JSON body is one sample or a batch.

    Lists and tuples are batches, mappings are single samples. Anything else
    (None, numbers, strings) becomes an empty batch.
    """
    if isinstance(payload, (list, tuple)):
        return BatchSamples(samples=payload)
    if isinstance(payload, Mapping):
        return SingleSample(sample=payload)
    return BatchSamples(samples=())


def _as_list(parsed: Payload) -> List[Any]:
    if isinstance(parsed, SingleSample):
        return [parsed.sample]
    return list(parsed.samples)


def validate_payload(payload: Any) -> List[Sample]:
    """
    Turn a decoded payload into a non-empty list of samples.

    Only the first sample is checked for the required fields; the rest of the
    batch is accepted as sent.

    Raises:
        EmptyBatch:
            The payload holds no samples.
        InvalidFormat:
            The first sample has no (truthy) "timestamp" or no "ecg_value".
    """
    points = _as_list(classify_payload(payload))

    if not points:
        raise EmptyBatch()

    first = points[0]
    if not isinstance(first, Mapping):
        raise InvalidFormat()
    if not first.get("timestamp") or "ecg_value" not in first:
        raise InvalidFormat()

    # Shallow copies: the window owns its samples from here on
    return [dict(p) if isinstance(p, Mapping) else p for p in points]
