"""
Tests for logger functionality.
"""

import pytest
from pathlib import Path
from fleetbridge.logger import StructuredLogger, get_logger, reset_logger


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_logger_creation(self, tmp_path):
        """Logger should be created with default settings."""
        logger = StructuredLogger(
            name="test",
            level="INFO",
            log_dir=tmp_path,
            enable_console=False,
        )

        assert logger.logger.name == "test"
        assert logger.metrics["api_calls"] == 0
        assert logger.metrics["sagas_attempted"] == 0

    def test_log_methods(self, tmp_path):
        """All log level methods should work."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")

    def test_context_is_serialized(self, tmp_path):
        """Context values that are not JSON types are written with str()."""
        logger = StructuredLogger(
            name="test-context",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Created work order", work_order_id=555, path=Path("a/b"))

        log_content = next(tmp_path.glob("*.log")).read_text()
        assert '"work_order_id": 555' in log_content
        assert '"path": "a/b"' in log_content

    def test_saga_metrics(self, tmp_path):
        """Saga outcomes should be tracked per step and per error type."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.record_api_call()
        logger.record_api_call()
        assert logger.metrics["api_calls"] == 2

        for _ in range(4):
            logger.record_saga_attempt()
        logger.record_saga_completed()
        logger.record_saga_disambiguation()
        logger.record_saga_failure("uploading_document", "ExternalApiError")
        logger.record_saga_failure("uploading_document", "MalformedResponse")

        metrics = logger.get_metrics()

        assert metrics["sagas_attempted"] == 4
        assert metrics["sagas_completed"] == 1
        assert metrics["sagas_disambiguated"] == 1
        assert metrics["sagas_failed"] == 2
        assert metrics["failures_by_step"] == {"uploading_document": 2}
        assert metrics["errors_by_type"]["ExternalApiError"] == 1
        assert metrics["completion_rate"] == pytest.approx(0.25)

    def test_completion_rate_without_attempts(self, tmp_path):
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)
        assert logger.get_metrics()["completion_rate"] == 0

    def test_metrics_summary(self, tmp_path):
        logger = StructuredLogger(name="test-summary", log_dir=tmp_path, enable_console=False)
        logger.record_saga_attempt()
        logger.record_saga_failure("creating_work_order", "ExternalApiError")

        logger.log_metrics_summary()

        log_content = next(tmp_path.glob("*.log")).read_text()
        assert "creating_work_order: 1" in log_content

    def test_log_file_creation(self, tmp_path):
        """Log file should be created in specified directory."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Test message")

        log_files = list(tmp_path.glob("fleetbridge_*.log"))
        assert len(log_files) == 1
        assert "Test message" in log_files[0].read_text()


class TestGlobalLogger:
    """Test global logger singleton."""

    def test_get_logger_singleton(self, tmp_path):
        """get_logger should return same instance."""
        reset_logger()

        logger1 = get_logger(name="fleetbridge-test", log_dir=tmp_path, enable_console=False)
        logger2 = get_logger()

        assert logger1 is logger2
        reset_logger()

    def test_reset_logger(self, tmp_path):
        """reset_logger should create new instance."""
        reset_logger()

        logger1 = get_logger(name="fleetbridge-test", log_dir=tmp_path, enable_console=False)
        logger1.record_api_call()

        reset_logger()

        logger2 = get_logger(name="fleetbridge-test", log_dir=tmp_path, enable_console=False)

        assert logger2 is not logger1
        assert logger2.metrics["api_calls"] == 0
        reset_logger()

    def test_level_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FLEETBRIDGE_LOG_LEVEL", "WARNING")
        reset_logger()

        logger = get_logger(name="fleetbridge-test", log_dir=tmp_path, enable_console=False)

        assert logger.logger.level == 30
        reset_logger()
