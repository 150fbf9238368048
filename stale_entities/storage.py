"""
Imported key sets per job.

The import pipeline calls record_import() after each successful run with the
keys that run produced; the detector reads the previous set back when it
reconciles the next run.
"""

from pathlib import Path
from typing import Dict

from .database import ImportedKey, SQLiteStore
from .normalize import KeySource, key_map
from .schema import ensure_job_id


class ImportedKeyStore(SQLiteStore):
    """Source key -> entity id mapping for each job's latest import."""

    def __init__(self, db_path: Path, max_retries: int = 3, retry_delay: float = 0.1):
        super().__init__(db_path, max_retries=max_retries, retry_delay=retry_delay)

    def record_import(self, job_id: str, keys: KeySource) -> int:
        """
        Replace the job's imported key set.

        Args:
            job_id: Import job id
            keys: Keys produced by the run, or a mapping source key -> entity id

        Returns:
            Number of keys recorded
        """
        ensure_job_id(job_id)
        mapping = key_map(keys)

        def operation(session):
            session.query(ImportedKey).filter(ImportedKey.job_id == job_id).delete(
                synchronize_session=False
            )
            for source_key, entity_id in mapping.items():
                session.add(ImportedKey(job_id=job_id, source_key=source_key, entity_id=entity_id))
            return len(mapping)

        return self._run(job_id, operation)

    def imported_keys(self, job_id: str) -> Dict[str, str]:
        """Return the job's last recorded source key -> entity id mapping."""
        ensure_job_id(job_id)

        def operation(session):
            rows = session.query(ImportedKey.source_key, ImportedKey.entity_id).filter(
                ImportedKey.job_id == job_id
            )
            return {row.source_key: row.entity_id for row in rows}

        return self._run(job_id, operation)

    def forget(self, job_id: str) -> int:
        """Drop the job's imported key set."""
        ensure_job_id(job_id)
        return self._run(
            job_id,
            lambda session: session.query(ImportedKey)
            .filter(ImportedKey.job_id == job_id)
            .delete(synchronize_session=False),
        )
