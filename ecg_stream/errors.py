# ecg_stream/errors.py
"""
Exception hierarchy for the ECG service.

    EcgStreamError
        ValidationError      -> client input problems (HTTP 400, never retried)
            EmptyBatch
            InvalidFormat
        StoreUnavailable     -> backend problems (HTTP 500, safe to retry)

A zero or "insufficient_data" heart rate is a normal estimator output and has
no exception type.
"""


class EcgStreamError(Exception):
    """Base class for every error raised by ecg_stream."""


class ValidationError(EcgStreamError):
    """Incoming payload rejected before any store access."""


class EmptyBatch(ValidationError):
    def __init__(self, message: str = "No data provided") -> None:
        super().__init__(message)


class InvalidFormat(ValidationError):
    def __init__(
        self,
        message: str = "Invalid data format. Expected {timestamp, ecg_value, status}",
    ) -> None:
        super().__init__(message)


class StoreUnavailable(EcgStreamError):
    """Key-value backend could not complete a read or write."""
