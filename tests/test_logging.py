"""Tests for logging setup."""

import json
import logging
from pathlib import Path

import pytest
import structlog

from vaultbets.common.config import LoggingConfig
from vaultbets.common.logging import get_logger, run_context, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    for name in ("vaultbets", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.NOTSET)
    structlog.reset_defaults()


class TestSetupLogging:
    """Test structlog configuration."""

    def test_file_gets_json_with_context(self, temp_dir: Path, restore_logging):
        log_file = temp_dir / "vaultbets.log"
        setup_logging(LoggingConfig(level="INFO", format="console", log_file=str(log_file)))

        logger = get_logger("vaultbets.test")
        with run_context(job="daily_generation"):
            logger.info("tips_published", count=3)
        logger.debug("hidden")
        logger.info("after_run")

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert [line["event"] for line in lines] == ["tips_published", "after_run"]
        assert lines[0]["job"] == "daily_generation"
        assert lines[0]["count"] == 3
        assert lines[0]["level"] == "info"
        assert "job" not in lines[1]

    def test_unknown_level(self, restore_logging):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging(LoggingConfig(level="LOUD"))

    def test_quiets_http_loggers(self, restore_logging):
        setup_logging(LoggingConfig(level="DEBUG"))
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("vaultbets").level == logging.DEBUG
