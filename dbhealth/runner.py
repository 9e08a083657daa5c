#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Orchestration of the health check of one or many instances

Every check is isolated: whatever happens in one of them ends up as a
finding of that check and the remaining checks still run.
"""

import datetime
import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import as_completed, ThreadPoolExecutor
from pathlib import Path
from typing import IO

from dbhealth import console
from dbhealth.checks import CHECKS, CheckContext, CheckFunction, describe_instance
from dbhealth.config import Config
from dbhealth.discovery import Instance, resolve_install_path
from dbhealth.exceptions import HCException, ToolNotFoundError
from dbhealth.report import Report, TIMESTAMP_FORMAT
from dbhealth.state import Result
from dbhealth.tools import ExecutionContext

LOGGER = logging.getLogger(__name__)


def _failure(category: str, exc: Exception) -> Result:
    if isinstance(exc, ToolNotFoundError):
        return Result.warning(f"{exc} - skipping {category} check")
    if isinstance(exc, HCException):
        return Result.critical(f"{category} check failed: {exc}")
    return Result.critical(f"{category} check failed: internal error ({exc})")


def _describe(report: Report, execution: ExecutionContext, config: Config) -> Instance:
    try:
        instance, result = describe_instance(execution, config)
    except Exception as e:  # pylint: disable=broad-except
        if not isinstance(e, HCException):
            LOGGER.exception("[%s] Unexpected error while describing the instance", execution.sid)
        report.add("Instance", _failure("Instance", e))
        return Instance(execution.sid, execution.oracle_home)
    report.add("Instance", result)
    return instance


def run_check(report: Report, category: str, function: CheckFunction, ctx: CheckContext) -> None:
    LOGGER.debug("[%s] Running %s check", report.sid, category)
    try:
        # Findings produced before a failure are kept
        report.add_all(category, function(ctx))
    except Exception as e:  # pylint: disable=broad-except
        if not isinstance(e, HCException):
            LOGGER.exception("[%s] Unexpected error in %s check", report.sid, category)
        report.add(category, _failure(category, e))


def _run_checks(report: Report, execution: ExecutionContext, config: Config) -> None:
    try:
        ctx = CheckContext(execution, config, _describe(report, execution, config))
        for check in CHECKS:
            run_check(report, check.category, check.function, ctx)
    except Exception as e:  # pylint: disable=broad-except
        LOGGER.exception("[%s] Health check aborted", report.sid)
        report.aborted = True
        report.add("", Result.critical(f"Health check aborted: {e}"))


def run_health_check(
    sid: str,
    config: Config,
    oratab: Path,
    environ: dict[str, str] | None = None,
    stream: IO[str] | None = None,
) -> Report:
    """Run all checks against one instance

    Without a known installation the report holds a single CRITICAL finding
    and is marked as skipped.
    """
    started = datetime.datetime.now()
    with Report.create(sid, config.output_dir, started=started, stream=stream) as report:
        console.banner(
            f"Oracle Health Check - {sid}",
            f"Started: {started.strftime(TIMESTAMP_FORMAT)}",
            stream=stream,
        )
        if (oracle_home := resolve_install_path(sid, oratab)) is None:
            report.skipped = True
            report.add("", Result.critical(f"ORACLE_HOME not found for SID={sid}"))
        else:
            _run_checks(report, ExecutionContext.for_instance(sid, oracle_home, environ), config)
            report.info("", "Health check completed")
        report.info("", f"Log file: {report.path}")
    return report


def run_all(
    sids: Iterable[str],
    config: Config,
    oratab: Path,
    stream: IO[str] | None = None,
) -> Sequence[Report]:
    """Check the instances in parallel, one worker per instance at a time

    The reports are returned in the order of their SIDs.
    """
    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        futures = [
            executor.submit(run_health_check, sid, config, oratab, stream=stream) for sid in sids
        ]
        reports = [future.result() for future in as_completed(futures)]
    return sorted(reports, key=lambda r: r.sid)
