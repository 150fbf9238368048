"""
Registry of watched import jobs and their consumers.

Only registered jobs are watched: an importer nobody registered gets no queue
and no detection pass. Consumers are plain callables invoked as
consumer(job_id, entity_ids) for every batch of the job, in the order they
were added.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Set

from .errors import UnknownJob
from .schema import ensure_job_id, info_to_jobs

Consumer = Callable[[str, List[str]], Any]
InfoHook = Callable[[Dict[str, Dict[str, Any]]], Any]


@dataclass(frozen=True)
class Job:
    """One watched import job."""

    job_id: str
    refresh: bool = False


class JobRegistry:
    """Watched jobs in registration order, plus per-job consumer lists."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._consumers: Dict[str, List[Consumer]] = {}
        self._lock = threading.Lock()

    # Jobs

    def register(self, job_id: str, refresh: bool = False) -> Job:
        """
        Watch job_id. Re-registering replaces the refresh flag in place.

        Raises:
            InvalidJobId: If job_id is empty or malformed
        """
        ensure_job_id(job_id)
        job = Job(job_id=job_id, refresh=bool(refresh))
        with self._lock:
            self._jobs[job_id] = job
        return job

    def unregister(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def register_info(self, info: Dict[str, Dict[str, Any]]) -> List[Job]:
        """
        Register every job of an importer info mapping.

        Example:
            registry.register_info({
                "my_importer": {"importer_id": "my_importer", "refresh": True},
            })
        """
        entries = info_to_jobs(info)
        return [self.register(entry["job_id"], entry["refresh"]) for entry in entries]

    def collect(self, info_hooks: Iterable[InfoHook]) -> List[Job]:
        """
        Let each hook alter a shared info mapping, then register the result.

        Hooks run in order and may add, change or delete entries; later hooks
        see what earlier ones left.
        """
        info: Dict[str, Dict[str, Any]] = {}
        for hook in info_hooks:
            hook(info)
        return self.register_info(info)

    def get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJob(job_id)
        return job

    def is_watched(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def jobs(self) -> List[Job]:
        """Watched jobs in registration order."""
        with self._lock:
            return list(self._jobs.values())

    def list_watched_jobs(self) -> Set[Job]:
        with self._lock:
            return set(self._jobs.values())

    # Consumers

    def add_consumer(self, job_id: str, consumer: Consumer) -> None:
        ensure_job_id(job_id)
        if not callable(consumer):
            raise TypeError(f"Consumer for {job_id!r} must be callable")
        with self._lock:
            self._consumers.setdefault(job_id, []).append(consumer)

    def remove_consumer(self, job_id: str, consumer: Consumer) -> bool:
        with self._lock:
            consumers = self._consumers.get(job_id, [])
            if consumer not in consumers:
                return False
            consumers.remove(consumer)
            if not consumers:
                del self._consumers[job_id]
            return True

    def consumers(self, job_id: str) -> List[Consumer]:
        with self._lock:
            return list(self._consumers.get(job_id, []))
