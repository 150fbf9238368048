"""
Batch delivery of queued stale entities to consumers.

Each scheduler tick drains every watched job's queue in batches. A batch is
removed only after every consumer of the job accepted it; if one fails, the
whole batch stays queued and is delivered again on the next tick, so
consumers must tolerate seeing the same ids twice.
"""

import time
from typing import Any, Dict, List, Optional

from .config import DEFAULT_BATCH_SIZE, DEFAULT_TIME_LIMIT
from .errors import ConsumerFailure, StoreUnavailable, UnknownJob
from .logger import StructuredLogger, get_logger
from .queue_store import QueueStore
from .registry import Consumer, JobRegistry

# Per-job dispatch outcomes reported by run_tick()
STATUS_OK = "ok"
STATUS_IDLE = "idle"
STATUS_NO_CONSUMERS = "no_consumers"
STATUS_DEFERRED = "deferred"
STATUS_CONSUMER_FAILURE = "consumer_failure"
STATUS_STORE_UNAVAILABLE = "store_unavailable"


def consumer_name(consumer: Consumer) -> str:
    name = getattr(consumer, "__qualname__", None) or getattr(consumer, "__name__", None)
    if name is None:
        name = type(consumer).__name__
    module = getattr(consumer, "__module__", None)
    return f"{module}.{name}" if module else name


class BatchDispatcher:
    """Drains job queues in fixed-size batches and fans them out to consumers."""

    def __init__(
        self,
        registry: JobRegistry,
        store: QueueStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        time_limit: Optional[float] = DEFAULT_TIME_LIMIT,
        alert_after_attempts: Optional[int] = None,
        max_batches_per_tick: Optional[int] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Args:
            registry: Watched jobs and their consumers
            store: Queue store holding the stale entity ids
            batch_size: Maximum entity ids handed to consumers per call
            time_limit: Seconds after which a tick starts no new batch (None = no limit)
            alert_after_attempts: Log an alert once a batch failed this many times
            max_batches_per_tick: Batches per job and tick before deferring (None = drain)
            logger: Logger to use (default: global logger)
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if max_batches_per_tick is not None and max_batches_per_tick < 1:
            raise ValueError(f"max_batches_per_tick must be positive, got {max_batches_per_tick}")
        self.registry = registry
        self.store = store
        self.batch_size = batch_size
        self.time_limit = time_limit
        self.alert_after_attempts = alert_after_attempts
        self.max_batches_per_tick = max_batches_per_tick
        self.logger = logger or get_logger()

    def run_tick(self) -> Dict[str, Any]:
        """
        Deliver pending batches for every watched job.

        Failures are isolated per job: a failing consumer or an unavailable
        store stops only that job for this tick.

        Returns:
            Summary with per-job results and the tick duration
        """
        started = time.monotonic()
        deadline = started + self.time_limit if self.time_limit is not None else None
        results: Dict[str, Dict[str, Any]] = {}

        for job in self.registry.jobs():
            try:
                results[job.job_id] = self.dispatch_job(job.job_id, deadline=deadline)
            except ConsumerFailure as e:
                results[job.job_id] = self._failure_result(e, STATUS_CONSUMER_FAILURE)
            except StoreUnavailable as e:
                self.logger.record_store_error(job.job_id, type(e).__name__)
                self.logger.error(
                    f"Store unavailable, skipping {job.job_id} for this tick",
                    job_id=job.job_id,
                    error=str(e),
                )
                results[job.job_id] = self._failure_result(e, STATUS_STORE_UNAVAILABLE)
            except UnknownJob:
                # unregistered while the tick was running
                continue

        summary = {
            "jobs": results,
            "batches": sum(r["batches"] for r in results.values()),
            "delivered": sum(r["delivered"] for r in results.values()),
            "failed_jobs": sorted(
                job_id for job_id, r in results.items()
                if r["status"] in (STATUS_CONSUMER_FAILURE, STATUS_STORE_UNAVAILABLE)
            ),
            "duration": round(time.monotonic() - started, 3),
        }
        self.logger.info(
            f"Tick complete: {summary['delivered']} entities in {summary['batches']} batches",
            jobs=len(results),
            failed_jobs=summary["failed_jobs"],
            duration=summary["duration"],
        )
        return summary

    def dispatch_job(self, job_id: str, deadline: Optional[float] = None) -> Dict[str, Any]:
        """
        Drain one job's queue.

        Args:
            job_id: Registered job id
            deadline: time.monotonic() value after which no new batch starts

        Returns:
            Result with status, batches delivered and entities delivered

        Raises:
            UnknownJob: If job_id is not registered
            ConsumerFailure: If a consumer failed; the batch stays queued
            StoreUnavailable: If the queue backend failed
        """
        self.registry.get(job_id)
        consumers = self.registry.consumers(job_id)
        result = {"status": STATUS_IDLE, "batches": 0, "delivered": 0, "error": None}

        if not consumers:
            if not self.store.is_empty(job_id):
                self.logger.debug("No consumers registered, leaving queue intact", job_id=job_id)
                result["status"] = STATUS_NO_CONSUMERS
            return result

        with self.store.locked(job_id):
            while True:
                batch = self.store.peek_batch(job_id, self.batch_size)
                if not batch:
                    break
                out_of_time = deadline is not None and time.monotonic() >= deadline
                out_of_batches = (
                    self.max_batches_per_tick is not None
                    and result["batches"] >= self.max_batches_per_tick
                )
                if out_of_time or out_of_batches:
                    self.logger.info(
                        f"Tick budget used, deferring {job_id}",
                        job_id=job_id,
                        remaining=self.store.size(job_id),
                        reason="time_limit" if out_of_time else "max_batches",
                    )
                    result["status"] = STATUS_DEFERRED
                    return result

                self._deliver(job_id, batch, consumers, result)
                self.store.remove(job_id, batch)
                self.logger.record_batch_success(job_id, len(batch))
                result["status"] = STATUS_OK
                result["batches"] += 1
                result["delivered"] += len(batch)
                self.logger.debug(
                    "Batch delivered",
                    job_id=job_id,
                    size=len(batch),
                    first=batch[0],
                    last=batch[-1],
                )

        return result

    def _deliver(self, job_id: str, batch: List[str], consumers: List[Consumer], result: Dict[str, Any]):
        """Invoke every consumer with the batch; raise ConsumerFailure on the first failure."""
        self.logger.record_batch_attempt(job_id)

        for consumer in consumers:
            name = consumer_name(consumer)
            try:
                outcome = consumer(job_id, list(batch))
            except Exception as e:
                failure = ConsumerFailure(job_id, name, batch, f"{type(e).__name__}: {e}")
                self._on_failure(failure, result)
                raise failure from e

            if outcome is False:
                failure = ConsumerFailure(job_id, name, batch, "returned failure")
                self._on_failure(failure, result)
                raise failure

    def _on_failure(self, failure: ConsumerFailure, result: Dict[str, Any]):
        job_id = failure.job_id
        self.logger.record_consumer_failure(job_id, type(failure).__name__)
        failure.result = dict(result, status=STATUS_CONSUMER_FAILURE, error=str(failure))

        self.store.record_failure(job_id, failure.entity_ids)
        self.logger.error(
            "Consumer failed, batch left in queue for retry",
            job_id=job_id,
            consumer=failure.consumer,
            reason=failure.reason,
            size=len(failure.entity_ids),
        )

        if self.alert_after_attempts is not None:
            attempts = self.store.attempts(job_id, failure.entity_ids)
            worst = max(attempts.values(), default=0)
            if worst >= self.alert_after_attempts:
                self.logger.critical(
                    f"Batch for {job_id} has failed {worst} times",
                    job_id=job_id,
                    attempts=worst,
                    first=failure.entity_ids[0],
                    threshold=self.alert_after_attempts,
                )

    @staticmethod
    def _failure_result(error: Exception, status: str) -> Dict[str, Any]:
        partial = getattr(error, "result", None)  # only ConsumerFailure carries one
        if partial:
            return dict(partial, status=status, error=str(error))
        return {"status": status, "batches": 0, "delivered": 0, "error": str(error)}
