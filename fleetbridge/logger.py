"""
Structured logging system for fleetbridge.

Provides centralized logging with console and file outputs, and
metrics tracking for monitoring work-order saga health.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for remote API usage and saga outcomes.
    """

    def __init__(
        self,
        name: str = "fleetbridge",
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
        self.logger.handlers.clear()

        self.metrics = {
            "api_calls": 0,
            "sagas_attempted": 0,
            "sagas_completed": 0,
            "sagas_failed": 0,
            "sagas_disambiguated": 0,
            "errors_by_type": {},
            "failures_by_step": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"fleetbridge_{datetime.now().strftime('%Y%m%d')}.log"
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

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_api_call(self):
        """Increment remote API call counter."""
        self.metrics["api_calls"] += 1

    def record_saga_attempt(self):
        self.metrics["sagas_attempted"] += 1

    def record_saga_completed(self):
        self.metrics["sagas_completed"] += 1

    def record_saga_disambiguation(self):
        self.metrics["sagas_disambiguated"] += 1

    def record_saga_failure(self, step: str, error_type: str):
        """Record a saga that stopped at `step` because of `error_type`."""
        self.metrics["sagas_failed"] += 1

        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

        steps = self.metrics["failures_by_step"]
        steps[step] = steps.get(step, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics, with the saga completion rate."""
        metrics_copy = self.metrics.copy()
        attempted = metrics_copy["sagas_attempted"]
        metrics_copy["completion_rate"] = (
            round(metrics_copy["sagas_completed"] / attempted, 3) if attempted else 0
        )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Work Order Session Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(
            f"Sagas: {metrics['sagas_completed']}/{metrics['sagas_attempted']} completed, "
            f"{metrics['sagas_disambiguated']} need a vehicle choice, "
            f"{metrics['sagas_failed']} failed"
        )

        if metrics["failures_by_step"]:
            self.info("Failures by step:")
            for step, count in metrics["failures_by_step"].items():
                self.info(f"  {step}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "fleetbridge",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level; defaults to FLEETBRIDGE_LOG_LEVEL or INFO
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        level = level or os.getenv("FLEETBRIDGE_LOG_LEVEL", "INFO")
        if "log_dir" not in kwargs and os.getenv("FLEETBRIDGE_LOG_DIR"):
            kwargs["log_dir"] = Path(os.environ["FLEETBRIDGE_LOG_DIR"])
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
