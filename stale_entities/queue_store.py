"""
Per-job durable FIFO of stale entity ids.

Entries live in the stale_queue table and survive restarts. Each job has its
own re-entrant lock; every operation on a job holds it, and the detector and
dispatcher hold it across a whole detection pass or batch so the two never
interleave for the same job.
"""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from sqlalchemy import func

from .database import QueueItem, SQLiteStore
from .normalize import dedupe
from .schema import ensure_job_id

# SQLite caps bound parameters per statement
IN_CLAUSE_CHUNK = 500


def _chunks(items: List[str], size: int = IN_CLAUSE_CHUNK) -> Iterator[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class QueueStore(SQLiteStore):
    """Durable, ordered, de-duplicated queue of stale entity ids per job."""

    def __init__(self, db_path: Path, max_retries: int = 3, retry_delay: float = 0.1):
        super().__init__(db_path, max_retries=max_retries, retry_delay=retry_delay)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def job_lock(self, job_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, job_id: str):
        """Hold the job's lock for a sequence of operations."""
        with self.job_lock(job_id):
            yield

    # Writes

    def enqueue(self, job_id: str, entity_id) -> bool:
        """Append entity_id unless already pending. Returns True if added."""
        return bool(self.enqueue_many(job_id, [entity_id]))

    def enqueue_many(self, job_id: str, entity_ids: Iterable) -> List[str]:
        """
        Append entity ids in order, skipping ones already pending.

        Returns:
            The entity ids actually added, in insertion order
        """
        ensure_job_id(job_id)
        ids = dedupe(entity_ids)
        with self.locked(job_id):
            return self._run(job_id, lambda session: self._insert(session, job_id, ids))

    def replace(self, job_id: str, entity_ids: Iterable) -> List[str]:
        """Clear the job's queue and enqueue entity_ids in one transaction."""
        ensure_job_id(job_id)
        ids = dedupe(entity_ids)

        def operation(session):
            session.query(QueueItem).filter(QueueItem.job_id == job_id).delete(
                synchronize_session=False
            )
            return self._insert(session, job_id, ids)

        with self.locked(job_id):
            return self._run(job_id, operation)

    def remove(self, job_id: str, entity_ids: Iterable) -> int:
        """Remove the named entries. Entries not present are ignored."""
        ensure_job_id(job_id)
        ids = dedupe(entity_ids)

        def operation(session):
            removed = 0
            for chunk in _chunks(ids):
                removed += session.query(QueueItem).filter(
                    QueueItem.job_id == job_id,
                    QueueItem.entity_id.in_(chunk),
                ).delete(synchronize_session=False)
            return removed

        with self.locked(job_id):
            return self._run(job_id, operation)

    def clear(self, job_id: str) -> int:
        """Drop every pending entry of the job. Returns the number removed."""
        ensure_job_id(job_id)
        with self.locked(job_id):
            return self._run(
                job_id,
                lambda session: session.query(QueueItem)
                .filter(QueueItem.job_id == job_id)
                .delete(synchronize_session=False),
            )

    def record_failure(self, job_id: str, entity_ids: Iterable) -> int:
        """Increment the delivery attempt counter of the named entries."""
        ensure_job_id(job_id)
        ids = dedupe(entity_ids)

        def operation(session):
            updated = 0
            for chunk in _chunks(ids):
                updated += session.query(QueueItem).filter(
                    QueueItem.job_id == job_id,
                    QueueItem.entity_id.in_(chunk),
                ).update(
                    {QueueItem.attempts: QueueItem.attempts + 1},
                    synchronize_session=False,
                )
            return updated

        with self.locked(job_id):
            return self._run(job_id, operation)

    # Reads

    def peek_batch(self, job_id: str, n: int) -> List[str]:
        """Return up to n oldest entity ids without removing them."""
        ensure_job_id(job_id)
        if n < 1:
            raise ValueError(f"Batch size must be positive, got {n}")

        def operation(session):
            rows = (
                session.query(QueueItem.entity_id)
                .filter(QueueItem.job_id == job_id)
                .order_by(QueueItem.item_id)
                .limit(n)
                .all()
            )
            return [row.entity_id for row in rows]

        with self.locked(job_id):
            return self._run(job_id, operation)

    def pending(self, job_id: str) -> List[str]:
        """All pending entity ids of the job in FIFO order."""
        ensure_job_id(job_id)

        def operation(session):
            rows = (
                session.query(QueueItem.entity_id)
                .filter(QueueItem.job_id == job_id)
                .order_by(QueueItem.item_id)
                .all()
            )
            return [row.entity_id for row in rows]

        with self.locked(job_id):
            return self._run(job_id, operation)

    def size(self, job_id: str) -> int:
        ensure_job_id(job_id)
        with self.locked(job_id):
            return self._run(
                job_id,
                lambda session: session.query(QueueItem)
                .filter(QueueItem.job_id == job_id)
                .count(),
            )

    def is_empty(self, job_id: str) -> bool:
        return self.size(job_id) == 0

    def attempts(self, job_id: str, entity_ids: Optional[Iterable] = None) -> Dict[str, int]:
        """Failed delivery attempts per pending entity id."""
        ensure_job_id(job_id)
        ids = dedupe(entity_ids) if entity_ids is not None else None

        def operation(session):
            query = session.query(QueueItem.entity_id, QueueItem.attempts).filter(
                QueueItem.job_id == job_id
            )
            if ids is not None:
                query = query.filter(QueueItem.entity_id.in_(ids))
            return {row.entity_id: row.attempts for row in query.order_by(QueueItem.item_id)}

        with self.locked(job_id):
            return self._run(job_id, operation)

    def job_ids(self) -> Dict[str, int]:
        """Jobs with pending entries, mapped to their queue length."""

        def operation(session):
            rows = (
                session.query(QueueItem.job_id, func.count(QueueItem.item_id))
                .group_by(QueueItem.job_id)
                .order_by(QueueItem.job_id)
                .all()
            )
            return {job_id: count for job_id, count in rows}

        return self._run(None, operation)

    @staticmethod
    def _insert(session, job_id: str, ids: List[str]) -> List[str]:
        existing = set()
        for chunk in _chunks(ids):
            rows = session.query(QueueItem.entity_id).filter(
                QueueItem.job_id == job_id,
                QueueItem.entity_id.in_(chunk),
            )
            existing.update(row.entity_id for row in rows)

        added = [entity_id for entity_id in ids if entity_id not in existing]
        for entity_id in added:
            session.add(QueueItem(job_id=job_id, entity_id=entity_id))
        session.flush()
        return added
