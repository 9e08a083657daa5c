#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Command line interface of the health check

Exit codes:
    0  the health check completed, whatever the findings are
    1  usage error, instance not running, oratab not found, or the requested
       instance has no known installation
    2  unexpected internal failure
"""

import argparse
import logging
import sys
from collections.abc import Sequence

from dbhealth import console, log, tty
from dbhealth.config import config_path, read_config
from dbhealth.discovery import find_oratab, is_instance_running, list_running_instances
from dbhealth.exceptions import HCBailOut
from dbhealth.report import Report
from dbhealth.runner import run_all, run_health_check
from dbhealth.state import Severity

LOGGER = logging.getLogger("dbhealth")


def _parse_arguments(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dbhealth",
        description="Health check of the running Oracle database instances",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("-d", "--database", metavar="SID", help="Check a single instance")
    target.add_argument("--all", action="store_true", help="Check all running instances")
    parser.add_argument("-c", "--config", metavar="PATH", help="Path to the configuration file")
    parser.add_argument(
        "-o", "--output-dir", metavar="PATH", help="Directory for the report files"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Verbose mode (use multiple times for more output)",
    )
    if not argv:
        parser.print_usage(sys.stderr)
        raise SystemExit(1)
    return parser.parse_args(argv)


def _print_summary(reports: Sequence[Report]) -> None:
    rows = []
    for report in reports:
        counts = report.counts()
        rows.append(
            [
                report.sid,
                report.worst_severity.name,
                *(str(counts[s]) for s in (Severity.CRITICAL, Severity.WARNING, Severity.OK)),
                str(report.path),
            ]
        )
    console.output("\n")
    tty.print_table(
        ["SID", "WORST", "CRIT", "WARN", "OK", "LOG FILE"],
        [tty.bold, "", "", "", "", ""],
        rows,
    )


def _run(args: argparse.Namespace) -> int:
    config = read_config(config_path(args.config), output_dir=args.output_dir)
    oratab = find_oratab(config.oratab_candidates)

    if args.all:
        if not (sids := sorted(list_running_instances())):
            console.output("No running instances found\n")
            return 0
        reports = run_all(sids, config, oratab)
    else:
        if not is_instance_running(args.database):
            console.error("[ERROR] SID %s not running", args.database)
            return 1
        reports = [run_health_check(args.database, config, oratab)]

    _print_summary(reports)
    if any(r.aborted for r in reports):
        return 2
    # A single instance without a known installation is an error of the call
    return 1 if not args.all and reports[0].skipped else 0


def main(argv: Sequence[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    try:
        args = _parse_arguments(argv)
    except SystemExit as e:
        # argparse exits with 2 on usage errors
        return 0 if e.code == 0 else 1

    log.setup_console_logging(log.verbosity_to_log_level(args.verbose))
    tty.reinit()

    try:
        return _run(args)
    except HCBailOut as e:
        console.error("[ERROR] %s", e)
        return 1
    except KeyboardInterrupt:
        console.error("Interrupted")
        return 2
    except Exception:  # pylint: disable=broad-except
        LOGGER.exception("Unexpected error")
        return 2


if __name__ == "__main__":
    sys.exit(main())
