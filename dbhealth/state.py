#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from __future__ import annotations

import dataclasses
import enum

__all__ = ["Result", "Severity", "worst_severity"]


class Severity(enum.IntEnum):
    """Severity of a finding

    The integer values reflect the order of "badness", so unlike the
    monitoring states a plain `max` is the worst aggregation.
    """

    INFO = -1
    OK = 0
    WARNING = 1
    CRITICAL = 2

    @property
    def short(self) -> str:
        return {
            Severity.INFO: "INFO",
            Severity.OK: "OK",
            Severity.WARNING: "WARN",
            Severity.CRITICAL: "CRIT",
        }[self]


def worst_severity(*severities: Severity, default: Severity = Severity.INFO) -> Severity:
    """Return the worst of all given severities

    >>> worst_severity(Severity.OK, Severity.WARNING)
    <Severity.WARNING: 1>
    >>> worst_severity()
    <Severity.INFO: -1>
    """
    return max(severities, default=default)


@dataclasses.dataclass(frozen=True)
class Result:
    """Outcome of one classification step

    Results carry no timestamp: classifying the same tool output twice
    yields equal results. The report turns them into findings.
    """

    severity: Severity
    summary: str

    @classmethod
    def info(cls, summary: str) -> Result:
        return cls(Severity.INFO, summary)

    @classmethod
    def ok(cls, summary: str) -> Result:
        return cls(Severity.OK, summary)

    @classmethod
    def warning(cls, summary: str) -> Result:
        return cls(Severity.WARNING, summary)

    @classmethod
    def critical(cls, summary: str) -> Result:
        return cls(Severity.CRITICAL, summary)
