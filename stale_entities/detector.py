"""
Stale-set detection for watched import jobs.

A key is stale when the job's previous import produced it and the current
source no longer contains it. Stale entity ids are pushed into the job's queue
once per pass; jobs with refresh=True get a clean queue first.
"""

from typing import Any, Iterable, List, Optional

from .errors import StoreUnavailable
from .logger import StructuredLogger, get_logger
from .normalize import KeySource, key_map, normalize_keys, sort_keys
from .queue_store import QueueStore
from .registry import JobRegistry
from .storage import ImportedKeyStore


def compute_stale(current_source_keys: Iterable[Any], previous_imported_keys: KeySource) -> List[str]:
    """
    Entity ids whose source key was imported before but is gone now.

    Args:
        current_source_keys: Keys seen in the latest import run
        previous_imported_keys: Keys of the previous run, or a mapping
            source key -> entity id

    Returns:
        Stale entity ids in natural ascending order of their source keys
    """
    previous = key_map(previous_imported_keys)
    current = normalize_keys(current_source_keys)
    stale_keys = sort_keys(set(previous) - current)
    return [previous[key] for key in stale_keys]


class StaleDetector:
    """Computes stale keys for registered jobs and queues them."""

    def __init__(
        self,
        registry: JobRegistry,
        store: QueueStore,
        imported_keys: Optional[ImportedKeyStore] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.registry = registry
        self.store = store
        self.imported_keys = imported_keys
        self.logger = logger or get_logger()

    def detect_and_enqueue(
        self,
        job_id: str,
        current_source_keys: Iterable[Any],
        previous_imported_keys: KeySource,
    ) -> List[str]:
        """
        Queue the job's stale entity ids.

        Args:
            job_id: Registered job id
            current_source_keys: Complete set of keys seen in the latest run
            previous_imported_keys: Previously recorded imported keys

        Returns:
            Entity ids added to the queue by this pass

        Raises:
            UnknownJob: If job_id is not registered
            StoreUnavailable: If the queue backend failed
        """
        job = self.registry.get(job_id)
        stale = compute_stale(current_source_keys, previous_imported_keys)

        try:
            with self.store.locked(job_id):
                if job.refresh:
                    added = self.store.replace(job_id, stale)
                else:
                    added = self.store.enqueue_many(job_id, stale)
        except StoreUnavailable as e:
            self.logger.record_store_error(job_id, type(e).__name__)
            self.logger.error("Detection failed", job_id=job_id, error=str(e))
            raise

        self.logger.record_detection(job_id, len(added))
        self.logger.info(
            f"Detection complete for {job_id}: {len(stale)} stale, {len(added)} queued",
            job_id=job_id,
            refresh=job.refresh,
            stale=len(stale),
            queued=len(added),
            already_pending=len(stale) - len(added) if not job.refresh else 0,
        )
        return added

    def reconcile(self, job_id: str, current_source_keys: Iterable[Any]) -> List[str]:
        """
        Run a detection pass against the job's recorded imported key set.

        The imported key set is left untouched; the import pipeline replaces
        it through ImportedKeyStore.record_import() after its run.
        """
        self.registry.get(job_id)
        if self.imported_keys is None:
            raise RuntimeError("reconcile() needs an ImportedKeyStore")
        previous = self.imported_keys.imported_keys(job_id)
        return self.detect_and_enqueue(job_id, current_source_keys, previous)
