#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Classification of measured values and configuration settings"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from dbhealth.parser import normalize_policy
from dbhealth.state import Result, Severity

Warn = None | int | float
Crit = None | int | float
Levels = tuple[Warn, Crit]

_INTEGER = re.compile(r"^[+-]?\d+$")


def parse_int(raw: str | None) -> int | None:
    """Return the integer value or None if raw is not a well formed integer

    >>> parse_int(" 42 ")
    42
    >>> parse_int("4.2") is None
    True
    >>> parse_int("") is None
    True
    """
    if raw is None or not _INTEGER.match(raw.strip()):
        return None
    return int(raw)


def parse_leading_int(raw: str | None) -> int | None:
    """Integer in the first token, e.g. "0 seconds (computed 1 second ago)"

    >>> parse_leading_int("0 seconds (computed 1 second ago)")
    0
    >>> parse_leading_int("(unknown)") is None
    True
    """
    if raw is None or not (tokens := raw.split()):
        return None
    return parse_int(tokens[0])


def _levelsinfo(warn: Warn, crit: Crit, render_func: Callable[[float], str]) -> str:
    warn_str = "never" if warn is None else render_func(warn)
    crit_str = "never" if crit is None else render_func(crit)
    return f" (warn/crit at {warn_str}/{crit_str})"


def check_levels(
    value: int | float,
    levels: Levels | None,
    label: str,
    unit: str = "",
) -> Result:
    """Check a value against upper levels

    levels:  None or (None, None) -> no level checking.
             (warn, crit) -> value >= crit is CRITICAL, value >= warn is WARNING.
             Either of them may be None.
    """

    def render_func(x: float) -> str:
        return f"{x:g}{unit}"

    infotext = f"{label}: {render_func(value)}"
    warn, crit = levels if levels else (None, None)

    if crit is not None and value >= crit:
        return Result(Severity.CRITICAL, infotext + _levelsinfo(warn, crit, render_func))
    if warn is not None and value >= warn:
        return Result(Severity.WARNING, infotext + _levelsinfo(warn, crit, render_func))
    return Result(Severity.OK, infotext)


def invalid_values(label: str, **raw: str | None) -> Result:
    details = ", ".join(f"{k}={'<absent>' if v is None else repr(v)}" for k, v in raw.items())
    return Result.critical(f"{label} values invalid ({details})")


@dataclass(frozen=True)
class PolicyCheckResult:
    expected: str
    actual: str | None

    @property
    def match(self) -> bool:
        return self.actual == self.expected


def compare_policy(actual_line: str | None, expected: str) -> PolicyCheckResult:
    return PolicyCheckResult(
        expected=normalize_policy(expected),
        actual=None if actual_line is None else normalize_policy(actual_line),
    )


def check_policy(actual_line: str | None, expected: str, label: str) -> Result:
    """Compare a configuration statement literally against the baseline

    The comparison ignores case and whitespace, nothing else: the statement
    is not interpreted.
    """
    policy = compare_policy(actual_line, expected)
    if policy.actual is None:
        return Result.critical(f"{label} not configured")
    if policy.match:
        return Result.ok(f"{label} correct")
    return Result.critical(f"{label} mismatch: {actual_line}")
