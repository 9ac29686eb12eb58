"""Tests for loguru sink configuration."""

from __future__ import annotations

import pytest
from loguru import logger

from utils.logging_config import configure_logging


@pytest.fixture(autouse=True)
def _drop_sinks():
    yield
    logger.remove()


def test_configure_logging_writes_to_file(tmp_path):
    log_file = configure_logging(tmp_path / "logs", level="DEBUG")

    logger.debug("resolver started")
    logger.complete()

    assert log_file is not None
    assert log_file.parent == tmp_path / "logs"
    assert "resolver started" in log_file.read_text(encoding="utf-8")


def test_unwritable_logs_dir_falls_back_to_console(tmp_path):
    blocker = tmp_path / "logs"
    blocker.write_text("not a directory", encoding="utf-8")

    assert configure_logging(blocker) is None
