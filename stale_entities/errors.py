"""
Error types raised by the stale entity subsystem.

Validation errors (InvalidJobId, UnknownJob) terminate a single call.
ConsumerFailure and StoreUnavailable are isolated per job by the dispatcher.
"""

from typing import List, Optional


class StaleEntitiesError(Exception):
    """Base class for all stale entity errors."""
    pass


class InvalidJobId(StaleEntitiesError, ValueError):
    """Raised when a job id is empty or malformed."""

    def __init__(self, job_id, errors: Optional[List[str]] = None):
        self.job_id = job_id
        self.errors = errors or []
        detail = "; ".join(self.errors) if self.errors else "invalid job id"
        super().__init__(f"Invalid job id {job_id!r}: {detail}")


class UnknownJob(StaleEntitiesError, KeyError):
    """Raised when detection or dispatch is requested for an unregistered job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(job_id)

    def __str__(self) -> str:
        return f"Job {self.job_id!r} is not registered"


class ConsumerFailure(StaleEntitiesError):
    """Raised when a consumer raised or returned failure for a batch."""

    def __init__(self, job_id: str, consumer: str, entity_ids: List[str], reason: str = ""):
        self.job_id = job_id
        self.consumer = consumer
        self.entity_ids = list(entity_ids)
        self.reason = reason
        self.result: Optional[dict] = None  # partial dispatch result, set by the dispatcher
        message = f"Consumer {consumer} failed for job {job_id!r} ({len(self.entity_ids)} entities)"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StoreUnavailable(StaleEntitiesError):
    """Raised when the queue backend cannot be reached for a job."""

    def __init__(self, job_id: Optional[str], reason: str = ""):
        self.job_id = job_id
        self.reason = reason
        message = f"Store unavailable for job {job_id!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
