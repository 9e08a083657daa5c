#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""The health checks of one instance

A check is a function taking the CheckContext and yielding results. It may
raise an HCException, the runner turns that into a finding of the check.
"""

import logging
import os
import platform
import re
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass

import psutil

from dbhealth.config import Config
from dbhealth.dataguard import (
    check_configuration_status,
    StandbyTarget,
    validate_standby,
)
from dbhealth.discovery import Instance
from dbhealth.exceptions import HCTimeout, ToolExecutionError
from dbhealth.levels import check_levels, check_policy, invalid_values, parse_int
from dbhealth.parser import (
    parse_archivelog_deletion_policy,
    parse_broker_configuration,
    parse_connect_identifier,
    parse_meminfo,
    parse_sqlplus_rows,
    parse_validation_report,
)
from dbhealth.state import Result
from dbhealth.tools import command_script, ExecutionContext, invoke, query_value, run_sql, Tool

LOGGER = logging.getLogger(__name__)

DATABASE_SQL = "select name||'|'||database_role||'|'||cdb from v$database;"
RAC_SQL = "select case when count(*)>1 then 'YES' else 'NO' end from gv$instance;"
TABLESPACE_SQL = (
    "select tablespace_name||'|'||round(used_percent) from dba_tablespace_usage_metrics"
    " order by tablespace_name;"
)
BLOCKING_SESSIONS_SQL = "select count(*) from v$session where blocking_session is not null;"
BROKER_START_SQL = "select value from v$parameter where name='dg_broker_start';"


@dataclass(frozen=True)
class CheckContext:
    execution: ExecutionContext
    config: Config
    instance: Instance

    @property
    def timeout(self) -> int:
        return self.config.tool_timeout

    def query(self, sql: str) -> str:
        return query_value(self.execution, sql, self.timeout)

    def query_rows(self, sql: str) -> list[list[str]]:
        return parse_sqlplus_rows(run_sql(self.execution, sql, self.timeout).raise_for_status().output)

    def dgmgrl(self, *commands: str) -> str:
        return invoke(Tool.DGMGRL, command_script(*commands), self.execution, self.timeout).raise_for_status().output


CheckFunction = Callable[[CheckContext], Iterable[Result]]


@dataclass(frozen=True)
class HealthCheck:
    category: str
    function: CheckFunction


#   .--Instance------------------------------------------------------------.


def describe_instance(execution: ExecutionContext, config: Config) -> tuple[Instance, Result]:
    rows = parse_sqlplus_rows(query_value(execution, DATABASE_SQL, config.tool_timeout))
    is_rac = query_value(execution, RAC_SQL, config.tool_timeout).upper() == "YES"
    match rows:
        case [[name, role, cdb]]:
            instance = Instance(
                sid=execution.sid,
                oracle_home=execution.oracle_home,
                db_name=name,
                role=role,
                is_cdb=cdb.upper() == "YES",
                is_rac=is_rac,
            )
        case _:
            return Instance(execution.sid, execution.oracle_home, is_rac=is_rac), invalid_values(
                "Database", v_database="; ".join("|".join(r) for r in rows)
            )
    return instance, Result.info(
        "DB=%s ROLE=%s CDB=%s RAC=%s"
        % (
            instance.db_name,
            instance.role,
            "YES" if instance.is_cdb else "NO",
            "YES" if instance.is_rac else "NO",
        )
    )


#   .--HugePages-----------------------------------------------------------.


def open_meminfo(path: os.PathLike) -> list[str]:
    """Wrapper around built-in open to be able to monkeypatch"""
    with open(path, encoding="utf-8") as f:
        return f.readlines()


def check_hugepages(ctx: CheckContext) -> Iterator[Result]:
    match platform.system():
        case "SunOS":
            yield Result.info("Solaris detected - HugePages not applicable")
            return
        case "Linux":
            pass
        case _:
            return

    meminfo = parse_meminfo(open_meminfo(ctx.config.meminfo_path))
    total = parse_int(meminfo.get("HugePages_Total"))
    free = parse_int(meminfo.get("HugePages_Free"))
    if total is None or free is None:
        yield invalid_values(
            "HugePages", total=meminfo.get("HugePages_Total"), free=meminfo.get("HugePages_Free")
        )
        return

    yield Result.info(f"HugePages Total={total} Free={free}")
    if total > 0 and total != free:
        yield Result.ok("HugePages in use")
    else:
        yield Result.warning("HugePages not properly used")


#   .--LMS-----------------------------------------------------------------.


def _process_name(proc: psutil.Process) -> str:
    cmdline = proc.info.get("cmdline")
    return cmdline[0] if cmdline else proc.info.get("name") or ""


def lms_threads(sid: str) -> Mapping[str, Sequence[int]]:
    """Thread ids of the lock manager server processes of the instance"""
    pattern = re.compile(rf"^ora_lms[0-9a-z]_{re.escape(sid)}$")
    processes: dict[str, list[int]] = {}
    for proc in psutil.process_iter(["name", "cmdline"]):
        try:
            name = _process_name(proc).strip()
            if "ASM" in name or not pattern.match(name):
                continue
            processes.setdefault(name, []).extend(t.id for t in proc.threads())
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return processes


def is_round_robin(thread_id: int) -> bool:
    try:
        return os.sched_getscheduler(thread_id) == os.SCHED_RR
    except OSError:
        return False


def check_lms(ctx: CheckContext) -> Iterator[Result]:
    if not ctx.instance.is_rac:
        return

    if not hasattr(os, "sched_getscheduler"):
        yield Result.info(f"{platform.system()} detected - LMS scheduling class not applicable")
        return

    if not (processes := lms_threads(ctx.execution.sid)):
        yield Result.critical("No LMS processes found")
        return

    for name, thread_ids in sorted(processes.items()):
        if any(is_round_robin(tid) for tid in thread_ids):
            yield Result.ok(f"LMS {name} has RR thread")
        else:
            yield Result.warning(f"LMS {name} missing RR thread")


#   .--Tablespaces---------------------------------------------------------.


def check_tablespaces(ctx: CheckContext) -> Iterator[Result]:
    if ctx.instance.is_standby:
        yield Result.info("Standby database - tablespace usage not checked")
        return

    if not (rows := ctx.query_rows(TABLESPACE_SQL)):
        yield Result.critical("Tablespace usage not available")
        return

    for row in rows:
        match row:
            case [name, raw_percent] if (percent := parse_int(raw_percent)) is not None:
                yield check_levels(percent, ctx.config.space_levels, f"Tablespace {name}", "%")
            case _:
                yield invalid_values("Tablespace usage", row="|".join(row))


def check_blocking_sessions(ctx: CheckContext) -> Iterator[Result]:
    raw = ctx.query(BLOCKING_SESSIONS_SQL)
    if (count := parse_int(raw)) is None:
        yield invalid_values("Blocking sessions", count=raw)
        return
    yield check_levels(count, ctx.config.blocking_session_levels, "Blocking sessions")


#   .--RMAN----------------------------------------------------------------.


def check_archivelog_deletion_policy(ctx: CheckContext) -> Iterator[Result]:
    invocation = invoke(
        Tool.RMAN, command_script("set echo off", "show all"), ctx.execution, ctx.timeout
    ).raise_for_status()
    yield check_policy(
        parse_archivelog_deletion_policy(invocation.output),
        ctx.config.expected_archivelog_deletion_policy,
        "RMAN ARCHIVELOG DELETION POLICY",
    )


#   .--Data Guard----------------------------------------------------------.


def standby_target(ctx: CheckContext, name: str) -> StandbyTarget:
    output = ctx.dgmgrl(f"show database '{name}' 'DGConnectIdentifier'")
    return StandbyTarget(name=name, connect_identifier=parse_connect_identifier(output))


def _check_standby(ctx: CheckContext, name: str) -> Iterator[Result]:
    # Every dgmgrl call fails on its own, the other standbys are still validated
    try:
        target = standby_target(ctx, name)
    except (ToolExecutionError, HCTimeout) as e:
        target = StandbyTarget(name)
        yield Result.warning(f"[{name}] Could not extract DGConnectIdentifier: {e}")
    else:
        if target.connect_identifier is None:
            yield Result.warning(f"[{name}] Could not extract DGConnectIdentifier")
        else:
            yield Result.info(f"[{name}] DGConnectIdentifier: {target.connect_identifier}")

    try:
        report = parse_validation_report(ctx.dgmgrl(f"validate database verbose '{name}'"))
    except (ToolExecutionError, HCTimeout) as e:
        yield Result.critical(f"[{name}] Validation failed: {e}")
        return

    yield from validate_standby(target, report)


def check_dataguard(ctx: CheckContext) -> Iterator[Result]:
    if ctx.query(BROKER_START_SQL).upper() != "TRUE":
        yield Result.info("Data Guard Broker not started - skipping")
        return

    configuration = parse_broker_configuration(ctx.dgmgrl("show configuration"))
    yield check_configuration_status(configuration)
    if not configuration.standbys:
        LOGGER.debug("[%s] No physical standby in the broker configuration", ctx.execution.sid)
        return

    for name in configuration.standbys:
        yield from _check_standby(ctx, name)


CHECKS: Sequence[HealthCheck] = (
    HealthCheck("HugePages", check_hugepages),
    HealthCheck("LMS", check_lms),
    HealthCheck("Tablespaces", check_tablespaces),
    HealthCheck("Blocking sessions", check_blocking_sessions),
    HealthCheck("RMAN", check_archivelog_deletion_policy),
    HealthCheck("DataGuard", check_dataguard),
)
