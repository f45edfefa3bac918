import os
import tempfile

# Log files go to a throwaway directory; must be set before ecg_stream imports
os.environ.setdefault("ECG_LOG_DIR", tempfile.mkdtemp(prefix="ecg-test-logs-"))
os.environ.setdefault("ECG_STORE_BACKEND", "memory")

import pytest

from ecg_stream.ecg_metrics.service_ecg import EcgService
from ecg_stream.errors import StoreUnavailable
from ecg_stream.storage.kv_store import InMemoryStore


class FlakyStore(InMemoryStore):
    """In-memory store whose writes can be switched off per operation."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_transaction = False
        self.fail_set = False
        self.set_calls = 0

    def transaction(self, key, transform):
        if self.fail_transaction:
            raise StoreUnavailable("backend down")
        return super().transaction(key, transform)

    def set(self, key, value):
        self.set_calls += 1
        if self.fail_set:
            raise StoreUnavailable("backend down")
        super().set(key, value)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def service(store):
    return EcgService(store=store)
