#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""This module contains constants and functions for neat output formating
on ttys while being compatible when the command is not attached to a TTY"""

import itertools
import sys
from collections.abc import Iterable

from dbhealth.state import Severity

# The colors depend on sys.stdout at the time reinit() is called. Call it
# again after redirecting sys.stdout.

red = ""
green = ""
yellow = ""
blue = ""
bold = ""
normal = ""
severities: dict[Severity, str] = {}


def reinit() -> None:
    global red, green, yellow, blue, bold, normal, severities
    if sys.stdout.isatty():
        red = "\033[31m"
        green = "\033[32m"
        yellow = "\033[33m"
        blue = "\033[34m"
        bold = "\033[1m"
        normal = "\033[0m"
    else:
        red = ""
        green = ""
        yellow = ""
        blue = ""
        bold = ""
        normal = ""
    severities = {
        Severity.INFO: blue,
        Severity.OK: green,
        Severity.WARNING: yellow,
        Severity.CRITICAL: red + bold,
    }


reinit()

TableRow = list[str]
TableColors = TableRow


def print_table(
    headers: TableRow, colors: TableColors, rows: Iterable[TableRow], indent: str = ""
) -> None:
    rows = list(rows)
    num_columns = len(headers)
    lengths = _column_lengths(headers, rows, num_columns)
    dashes = ["-" * l for l in lengths]
    fmt = _row_template(lengths, colors, indent)
    for row in itertools.chain([headers, dashes], rows):
        sys.stdout.write(fmt % tuple(row[:num_columns]))


def _column_lengths(headers: TableRow, rows: Iterable[TableRow], num_columns: int) -> list[int]:
    lengths = [len(h) for h in headers]
    for row in rows:
        for index, column in enumerate(row[:num_columns]):
            lengths[index] = max(len(column), lengths[index])
    return lengths


def _row_template(lengths: list[int], colors: TableColors, indent: str) -> str:
    fmt = indent
    sep = ""
    for l, c in zip(lengths, colors):
        fmt += c + sep + "%-" + str(l) + "s" + normal
        sep = " "
    fmt += "\n"
    return fmt
