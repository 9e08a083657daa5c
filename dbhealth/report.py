#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""The append only record of one health check run"""

from __future__ import annotations

import collections
import dataclasses
import datetime
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import IO

from dbhealth import console
from dbhealth.state import Result, Severity, worst_severity

LOGGER = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclasses.dataclass(frozen=True)
class Finding:
    severity: Severity
    category: str
    message: str
    timestamp: datetime.datetime

    @property
    def text(self) -> str:
        return f"[{self.category}] {self.message}" if self.category else self.message

    def as_record(self) -> str:
        return f"{self.timestamp.strftime(TIMESTAMP_FORMAT)} | {self.severity.name} | {self.text}"


def record_path(output_dir: Path, sid: str, started: datetime.datetime) -> Path:
    return output_dir / f"db_health_{sid}_{started.strftime('%Y%m%d_%H%M%S')}.log"


class Report:
    """Findings of one instance, in the order they were generated

    Every finding is written to the record file right away and mirrored to
    the console. There is no way to change or remove a finding.
    """

    def __init__(
        self,
        sid: str,
        path: Path,
        record: IO[str],
        started: datetime.datetime,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
        stream: IO[str] | None = None,
    ) -> None:
        self.sid = sid
        self.path = path
        self.started = started
        self._record = record
        self._clock = clock
        self._stream = stream
        self._findings: list[Finding] = []
        self.aborted = False
        self.skipped = False

    @classmethod
    def create(
        cls,
        sid: str,
        output_dir: Path,
        started: datetime.datetime | None = None,
        stream: IO[str] | None = None,
    ) -> Report:
        started = datetime.datetime.now() if started is None else started
        output_dir.mkdir(parents=True, exist_ok=True)
        path = record_path(output_dir, sid, started)
        LOGGER.debug("[%s] Writing report to %s", sid, path)
        # Single writer per file: each instance has its own record
        record = path.open("a", encoding="utf-8")  # pylint: disable=consider-using-with
        return cls(sid, path, record, started, stream=stream)

    def __enter__(self) -> Report:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if not self._record.closed:
            self._record.close()

    @property
    def findings(self) -> tuple[Finding, ...]:
        return tuple(self._findings)

    @property
    def worst_severity(self) -> Severity:
        return worst_severity(*(f.severity for f in self._findings))

    def counts(self) -> collections.Counter[Severity]:
        return collections.Counter(f.severity for f in self._findings)

    def add(self, category: str, result: Result) -> Finding:
        finding = Finding(
            severity=result.severity,
            category=category,
            message=result.summary,
            timestamp=self._clock(),
        )
        self._findings.append(finding)
        self._record.write(finding.as_record() + "\n")
        self._record.flush()
        console.finding(finding.severity, f"{self.sid}: {finding.text}", stream=self._stream)
        return finding

    def add_all(self, category: str, results: Iterable[Result]) -> list[Finding]:
        return [self.add(category, result) for result in results]

    def info(self, category: str, message: str) -> Finding:
        return self.add(category, Result.info(message))
