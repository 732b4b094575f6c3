# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the SES dispatcher.

Handlers, level and format are configured once by the entry points
(:mod:`ses_dispatcher.server` and :mod:`ses_dispatcher.cli`) through
:func:`configure_logging`. Library modules only ask for a named logger.

Example:
    Typical usage in a module::

        from ses_dispatcher.logger import get_logger

        logger = get_logger("SesClient")
        logger.info("Client opened")
"""

import logging
import os

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "SesDispatcher") -> logging.Logger:
    """Retrieve a logger instance.

    Does not configure handlers or formatters; that responsibility lies
    with the application entry point.

    Args:
        name: The logger name. Defaults to "SesDispatcher".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for an entry point.

    The level comes from ``level`` or the ``SESD_LOG_LEVEL`` environment
    variable (default INFO). ``force=True`` replaces handlers installed by
    earlier calls so reconfiguring never duplicates output.
    """
    log_level = (level or os.getenv("SESD_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )
