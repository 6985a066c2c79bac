"""Tests for logging setup."""

import logging

import pytest

from mnemo.core.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_mnemo_logger():
    yield
    logger = logging.getLogger("mnemo")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def test_get_logger_is_child():
    assert get_logger("memory.store").name == "mnemo.memory.store"


def test_setup_is_repeatable():
    setup_logging()
    logger = setup_logging(level=logging.WARNING)
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING


def test_file_output(tmp_path):
    log_file = tmp_path / "logs" / "mnemo.log"
    setup_logging(level=logging.DEBUG, log_file=log_file)

    get_logger("test").debug("hello file")
    for handler in logging.getLogger("mnemo").handlers:
        handler.flush()

    assert "hello file" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING
