# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for bounce-hook.

Handlers, level and format are configured once by the CLI entry point
(``configure_logging``). Modules only ask for a named logger::

    from bounce_hook.logger import get_logger

    logger = get_logger("worker")
    logger.info("Worker started")
"""

from __future__ import annotations

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "BounceHook") -> logging.Logger:
    """Return the standard library logger for ``name``.

    No handlers are attached here; that is the entry point's job.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging to stderr. Unknown level names fall back to INFO."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        force=True,
    )
