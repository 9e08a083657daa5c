#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Utility module for the interactive output of the health check"""

import sys
from contextlib import suppress
from typing import IO

from dbhealth import tty
from dbhealth.state import Severity


def output(text: str, *args: object, stream: IO[str] | None = None) -> None:
    if args:
        text = text % args
    if stream is None:
        stream = sys.stdout

    with suppress(IOError):
        # Suppress broken pipe due to, e.g., | head.
        stream.write(text)
        stream.flush()


def severity_tag(severity: Severity) -> str:
    return f"{tty.severities[severity]}[{severity.name:<8}]{tty.normal}"


def finding(severity: Severity, text: str, stream: IO[str] | None = None) -> None:
    # One write per line, parallel workers share the stream
    output("%s %s\n", severity_tag(severity), text, stream=stream)


def banner(*lines: str, stream: IO[str] | None = None) -> None:
    rule = "=" * 52
    output("%s\n", "\n".join([rule, *(f" {line}" for line in lines), rule]), stream=stream)


def error(text: str, *args: object) -> None:
    output("%s\n" % text, *args, stream=sys.stderr)
