"""
Wiring of registry, stores, detector and dispatcher from Settings.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .config import Settings, load_settings
from .detector import StaleDetector
from .dispatcher import BatchDispatcher
from .logger import StructuredLogger, get_logger
from .queue_store import QueueStore
from .registry import JobRegistry
from .storage import ImportedKeyStore


@dataclass
class StaleEntities:
    """Everything a host application needs, built against one database."""

    settings: Settings
    registry: JobRegistry
    queue: QueueStore
    imported_keys: ImportedKeyStore
    detector: StaleDetector
    dispatcher: BatchDispatcher
    logger: StructuredLogger

    def record_import(self, job_id: str, keys) -> int:
        """Import pipeline notification: keys produced by the latest successful run."""
        return self.imported_keys.record_import(job_id, keys)

    def detect_and_enqueue(self, job_id: str, current_source_keys: Iterable[Any], previous_imported_keys) -> List[str]:
        return self.detector.detect_and_enqueue(job_id, current_source_keys, previous_imported_keys)

    def reconcile(self, job_id: str, current_source_keys: Iterable[Any]) -> List[str]:
        return self.detector.reconcile(job_id, current_source_keys)

    def run_tick(self) -> Dict[str, Any]:
        return self.dispatcher.run_tick()

    def metrics(self) -> Dict[str, Any]:
        return self.logger.get_metrics()

    def log_metrics_summary(self) -> None:
        self.logger.log_metrics_summary()

    def close(self) -> None:
        """Log the run's metrics summary and release database connections."""
        self.log_metrics_summary()
        self.queue.dispose()
        self.imported_keys.dispose()


def create_service(
    settings: Optional[Settings] = None,
    registry: Optional[JobRegistry] = None,
    logger: Optional[StructuredLogger] = None,
) -> StaleEntities:
    """
    Build the stale entity subsystem.

    Args:
        settings: Settings to use (default: load_settings())
        registry: Existing registry to share (default: a new empty one)
        logger: Logger to use (default: global logger)

    Returns:
        StaleEntities with all components wired to the same database
    """
    settings = settings or load_settings()
    registry = registry or JobRegistry()
    logger = logger or get_logger()

    queue = QueueStore(
        settings.db_path,
        max_retries=settings.store_max_retries,
        retry_delay=settings.store_retry_delay,
    )
    imported_keys = ImportedKeyStore(
        settings.db_path,
        max_retries=settings.store_max_retries,
        retry_delay=settings.store_retry_delay,
    )
    detector = StaleDetector(registry, queue, imported_keys=imported_keys, logger=logger)
    dispatcher = BatchDispatcher(
        registry,
        queue,
        batch_size=settings.batch_size,
        time_limit=settings.time_limit,
        alert_after_attempts=settings.alert_after_attempts,
        max_batches_per_tick=settings.max_batches_per_tick,
        logger=logger,
    )
    logger.debug("Stale entities service created", db_path=str(settings.db_path))
    return StaleEntities(
        settings=settings,
        registry=registry,
        queue=queue,
        imported_keys=imported_keys,
        detector=detector,
        dispatcher=dispatcher,
        logger=logger,
    )
