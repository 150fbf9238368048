"""
Structured logging system for stale entity reconciliation.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for monitoring detection and delivery health.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for detection passes and batch delivery.
    """

    def __init__(
        self,
        name: str = "stale_entities",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        # Metrics tracking
        self.metrics = {
            "detection_passes": 0,
            "stale_detected": 0,
            "batches_dispatched": 0,
            "entities_delivered": 0,
            "consumer_failures": 0,
            "store_errors": 0,
            "errors_by_type": {},
            "job_delivery_rate": {},
        }

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"stale_entities_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_detection(self, job_id: str, stale_count: int):
        """Record a detection pass and the number of stale keys it queued."""
        self.metrics["detection_passes"] += 1
        self.metrics["stale_detected"] += stale_count

    def record_batch_attempt(self, job_id: str):
        """Record a delivery attempt for one batch of a job."""
        if job_id not in self.metrics["job_delivery_rate"]:
            self.metrics["job_delivery_rate"][job_id] = {
                "attempts": 0,
                "successes": 0
            }
        self.metrics["job_delivery_rate"][job_id]["attempts"] += 1

    def record_batch_success(self, job_id: str, size: int):
        """Record a batch delivered to all consumers and removed."""
        self.metrics["batches_dispatched"] += 1
        self.metrics["entities_delivered"] += size
        if job_id in self.metrics["job_delivery_rate"]:
            self.metrics["job_delivery_rate"][job_id]["successes"] += 1

    def record_consumer_failure(self, job_id: str, error_type: str):
        """Record a batch left in the queue because a consumer failed."""
        self.metrics["consumer_failures"] += 1
        self._record_error_type(error_type)

    def record_store_error(self, job_id: str, error_type: str):
        """Record a store failure that aborted work for a job."""
        self.metrics["store_errors"] += 1
        self._record_error_type(error_type)

    def _record_error_type(self, error_type: str):
        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        # Calculate success rates
        metrics_copy = self.metrics.copy()
        for job_id, stats in metrics_copy["job_delivery_rate"].items():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(
                    stats["successes"] / stats["attempts"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Stale Entity Metrics ===")
        self.info(
            f"Detection passes: {metrics['detection_passes']} "
            f"({metrics['stale_detected']} stale keys queued)"
        )
        self.info(
            f"Batches delivered: {metrics['batches_dispatched']} "
            f"({metrics['entities_delivered']} entities)"
        )
        self.info(
            f"Failures: {metrics['consumer_failures']} consumer, "
            f"{metrics['store_errors']} store"
        )

        if metrics["job_delivery_rate"]:
            self.info("Job Delivery Rates:")
            for job_id, stats in metrics["job_delivery_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {job_id}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "stale_entities",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Level, log directory and file output default to the values from
    config.load_log_settings() when not given.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        from .config import load_log_settings

        log_level, log_dir, log_to_file = load_log_settings()
        kwargs.setdefault("log_dir", log_dir)
        kwargs.setdefault("enable_file", log_to_file)
        _global_logger = StructuredLogger(
            name=name, level=level or log_level, **kwargs
        )

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
