#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""User-defined exceptions of the health check"""

__all__ = [
    "HCBailOut",
    "HCException",
    "HCGeneralException",
    "HCTimeout",
    "ToolExecutionError",
    "ToolNotFoundError",
]


# never used directly in the code. Just some wrapper to make all of our
# exceptions handleable with one call
class HCException(Exception):
    pass


class HCGeneralException(HCException):
    pass


# This is raised to print an error message and then end the program.
# The program should catch this at top level and exit with code 1.
class HCBailOut(HCException):
    pass


class HCTimeout(HCException):
    """Raise when an external tool did not finish within its deadline."""


class ToolNotFoundError(HCException):
    """The administration tool is not available in the PATH of the instance.

    Checks depending on the tool are skipped, not failed.
    """

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"{tool_name} not found in PATH")
        self.tool_name = tool_name


class ToolExecutionError(HCGeneralException):
    pass
