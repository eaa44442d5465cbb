"""
Tests for logging setup.
"""

import logging
from pathlib import Path
from typing import Any, List

import pytest
from loguru import logger

from jumpgate.infrastructure.config.models import LoggingConfig
from jumpgate.infrastructure.logging.setup import (
    NO_SESSION,
    InterceptHandler,
    setup_logging,
)


@pytest.fixture
def records() -> Any:
    captured: List[Any] = []
    yield captured
    logger.remove()


def _capture(records: List[Any]) -> None:
    logger.add(lambda message: records.append(message.record), level="DEBUG")


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_file_sink_writes_session_field(self, tmp_path: Path, records: List[Any]) -> None:
        config = LoggingConfig(log_directory=str(tmp_path), console_enabled=False)

        setup_logging(config)
        logger.bind(session="abc123").info("hello")
        logger.remove()

        content = (tmp_path / "jumpgate.log").read_text()
        assert "abc123" in content
        assert "hello" in content

    def test_default_session_extra(self, tmp_path: Path, records: List[Any]) -> None:
        setup_logging(LoggingConfig(log_directory=str(tmp_path),
                                    console_enabled=False, file_enabled=False))
        _capture(records)

        logger.info("no session")

        assert records[-1]["extra"]["session"] == NO_SESSION

    def test_creates_log_directory(self, tmp_path: Path, records: List[Any]) -> None:
        log_dir = tmp_path / "nested" / "logs"

        setup_logging(LoggingConfig(log_directory=str(log_dir), console_enabled=False))

        assert log_dir.is_dir()

    def test_standard_logging_is_intercepted(self, tmp_path: Path, records: List[Any]) -> None:
        setup_logging(LoggingConfig(log_directory=str(tmp_path), level="DEBUG",
                                    console_enabled=False, file_enabled=False))
        _capture(records)

        logging.getLogger("asyncssh").warning("from asyncssh")

        assert any(r["message"] == "from asyncssh" for r in records)
        assert any(isinstance(h, InterceptHandler) for h in logging.getLogger().handlers)

    def test_asyncssh_quiet_unless_debug(self, tmp_path: Path, records: List[Any]) -> None:
        setup_logging(LoggingConfig(log_directory=str(tmp_path), level="INFO",
                                    console_enabled=False, file_enabled=False))

        assert logging.getLogger("asyncssh").level == logging.WARNING
