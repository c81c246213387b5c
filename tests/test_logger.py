"""
Tests for logging infrastructure.

Verifies logger configuration, file creation, and naming.
"""

import logging
from unittest.mock import patch

import pytest

import src.scribeflow.utils.logger as logger_module
from src.scribeflow.utils.logger import get_logger, shutdown_logging


@pytest.fixture
def isolated_logging(tmp_path):
    """Re-initialize the app logger against a temporary log directory."""
    shutdown_logging()
    with patch("src.scribeflow.utils.logger.get_log_dir", return_value=tmp_path):
        yield tmp_path
    shutdown_logging()
    get_logger()


class TestLoggerConfiguration:
    """Tests for logger setup and configuration."""

    def test_get_logger_returns_logger(self):
        assert isinstance(get_logger("test"), logging.Logger)

    def test_root_logger_singleton(self):
        assert get_logger() is get_logger("scribeflow")

    def test_package_prefix_is_normalized(self):
        logger = get_logger("src.scribeflow.core.jobs.ledger")
        assert logger.name == "scribeflow.core.jobs.ledger"
        assert get_logger("src.scribeflow") is get_logger()

    def test_logger_writes_to_file(self, isolated_logging):
        logger = get_logger("src.scribeflow.core.jobs.orchestrator")
        logger.info("Test message")
        for handler in logging.getLogger("scribeflow").handlers:
            handler.flush()

        content = (isolated_logging / "scribeflow.log").read_text(encoding="utf-8")
        assert "Test message" in content
        assert "scribeflow.core.jobs.orchestrator - INFO" in content

    def test_root_does_not_propagate(self, isolated_logging):
        get_logger()
        assert logging.getLogger("scribeflow").propagate is False

    def test_shutdown_releases_handlers(self, isolated_logging):
        get_logger()
        shutdown_logging()

        assert logging.getLogger("scribeflow").handlers == []
        assert logger_module._logger_instance is None
