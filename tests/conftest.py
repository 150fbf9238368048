"""
Pytest configuration and shared fixtures.
"""

import os

import pytest

# keep the global logger from writing log files into the working directory
os.environ.setdefault("STALE_ENTITIES_LOG_FILE", "0")

from stale_entities.detector import StaleDetector
from stale_entities.dispatcher import BatchDispatcher
from stale_entities.logger import StructuredLogger
from stale_entities.queue_store import QueueStore
from stale_entities.registry import JobRegistry
from stale_entities.storage import ImportedKeyStore


class RecordingConsumer:
    """Consumer that remembers every batch it was handed."""

    def __init__(self, fail: bool = False, raises: Exception = None):
        self.calls = []
        self.fail = fail
        self.raises = raises

    def __call__(self, job_id, entity_ids):
        self.calls.append((job_id, list(entity_ids)))
        if self.raises is not None:
            raise self.raises
        return not self.fail


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "stale.db"


@pytest.fixture
def quiet_logger():
    """Logger with no handlers and fresh metrics."""
    return StructuredLogger(name="stale_entities.test", enable_file=False, enable_console=False)


@pytest.fixture
def store(db_path):
    queue = QueueStore(db_path, max_retries=1, retry_delay=0)
    yield queue
    queue.dispose()


@pytest.fixture
def imported_store(db_path):
    keys = ImportedKeyStore(db_path, max_retries=1, retry_delay=0)
    yield keys
    keys.dispose()


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def detector(registry, store, imported_store, quiet_logger):
    return StaleDetector(registry, store, imported_keys=imported_store, logger=quiet_logger)


@pytest.fixture
def dispatcher(registry, store, quiet_logger):
    return BatchDispatcher(registry, store, batch_size=20, time_limit=None, logger=quiet_logger)


@pytest.fixture
def recording_consumer():
    return RecordingConsumer()


@pytest.fixture
def scenario_keys():
    """Previous import produced keys 1..25; the source now only has 1, 2, 3."""
    return set(range(1, 26)), {1, 2, 3}
