#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import logging
import sys
from typing import IO

# Just for reference, the predefined logging levels:
#
# Python         added here
# -------------------------
# CRITICAL 50
# ERROR    40
# WARNING  30                 <= default level
# INFO     20
#                VERBOSE  15
# DEBUG    10
#
# The diagnostic log is not the health report. Findings go to the report
# sink, this logger only tells the operator what the program is doing.

# Additional log level between INFO and DEBUG, used for the tool invocations.
VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("dbhealth")


def get_formatter(format_str: str = "%(asctime)s [%(levelno)s] [%(name)s] %(message)s") -> logging.Formatter:
    """Returns a new message formater instance that uses the standard
    log format by default. You can also set another format if you like."""
    return logging.Formatter(format_str)


def clear_console_logging() -> None:
    logger.handlers[:] = []
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.WARNING)


# Set default logging handler to avoid "No handler found" warnings.
clear_console_logging()


def setup_console_logging(level: int = logging.WARNING) -> None:
    """Write log messages to stderr without date/time or logger name

    stdout is reserved for the mirrored findings of the report.
    """
    setup_logging_handler(sys.stderr, get_formatter("%(levelname)s: %(message)s"))
    logger.setLevel(level)


def setup_logging_handler(stream: IO[str], formatter: logging.Formatter | None = None) -> None:
    if formatter is None:
        formatter = get_formatter()

    handler = logging.StreamHandler(stream=stream)
    handler.setFormatter(formatter)

    del logger.handlers[:]  # Remove all previously existing handlers
    logger.addHandler(handler)


def verbosity_to_log_level(verbosity: int) -> int:
    """Values for "verbosity":

      0: enables WARNING and above
      1: enables VERBOSE and above
      2: enables DEBUG and above (ALL messages)
    """
    if verbosity < 0:
        raise ValueError(verbosity)
    if verbosity == 0:
        return logging.WARNING
    if verbosity == 1:
        return VERBOSE
    return logging.DEBUG
