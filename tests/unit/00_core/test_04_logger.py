# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
import logging
from contextlib import contextmanager

from bounce_hook.logger import LOG_FORMAT, configure_logging, get_logger


@contextmanager
def configured(level):
    root = logging.getLogger()
    handlers, old_level = root.handlers[:], root.level
    try:
        configure_logging(level)
        yield root
    finally:
        root.handlers[:] = handlers
        root.setLevel(old_level)


def test_get_logger_reuses_existing_logger():
    logger = get_logger("worker")
    handler_count = len(logger.handlers)

    same_logger = get_logger("worker")
    assert logger is same_logger
    assert len(same_logger.handlers) == handler_count


def test_configure_logging_sets_level_and_format():
    with configured("debug") as root:
        assert root.level == logging.DEBUG
        assert root.handlers[0].formatter._fmt == LOG_FORMAT


def test_unknown_level_falls_back_to_info():
    with configured("chatty") as root:
        assert root.level == logging.INFO
