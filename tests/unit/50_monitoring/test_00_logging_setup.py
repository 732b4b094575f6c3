import logging

import pytest

from ses_dispatcher.logger import LOG_FORMAT, configure_logging, get_logger


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        yield root
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)


def test_get_logger_reuses_existing_logger():
    logger = get_logger("SesDispatcherTest")
    assert logger is get_logger("SesDispatcherTest")
    assert get_logger().name == "SesDispatcher"


def test_get_logger_does_not_add_handlers():
    logger = get_logger("SesDispatcherNoHandlers")
    assert logger.handlers == []


def test_configure_logging_explicit_level(restore_root_logging):
    configure_logging("debug")

    assert restore_root_logging.level == logging.DEBUG
    assert restore_root_logging.handlers[0].formatter._fmt == LOG_FORMAT


def test_configure_logging_level_from_environment(monkeypatch, restore_root_logging):
    monkeypatch.setenv("SESD_LOG_LEVEL", "warning")
    configure_logging()
    assert restore_root_logging.level == logging.WARNING


def test_configure_logging_is_idempotent(restore_root_logging):
    configure_logging("info")
    configure_logging("info")
    assert len(restore_root_logging.handlers) == 1


def test_unknown_level_defaults_to_info(restore_root_logging):
    configure_logging("chatty")
    assert restore_root_logging.level == logging.INFO
