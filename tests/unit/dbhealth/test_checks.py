#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

# pylint: disable=redefined-outer-name

from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from tests.unit.dbhealth.tool_output import RMAN_SHOW_ALL, SHOW_CONFIGURATION, VALIDATE_DATABASE

from dbhealth import checks
from dbhealth.checks import (
    check_archivelog_deletion_policy,
    check_blocking_sessions,
    check_dataguard,
    check_hugepages,
    check_lms,
    check_tablespaces,
    CheckContext,
    describe_instance,
)
from dbhealth.config import Config
from dbhealth.discovery import Instance
from dbhealth.exceptions import ToolExecutionError, ToolNotFoundError
from dbhealth.state import Result, Severity
from dbhealth.tools import ExecutionContext, Tool, ToolInvocation


@pytest.fixture
def execution(oracle_home: Path) -> ExecutionContext:
    return ExecutionContext.for_instance("ORCL", oracle_home, {})


def _context(execution: ExecutionContext, config: Config, **instance) -> CheckContext:
    return CheckContext(execution, config, Instance("ORCL", execution.oracle_home, **instance))


def _fake_invoke(responses: Mapping[str, str | Exception]) -> Callable[..., ToolInvocation]:
    """Answer by the first key that is part of the script"""

    def invoke(tool: Tool, script: str, _context, _timeout) -> ToolInvocation:
        for marker, response in responses.items():
            if marker not in script:
                continue
            if isinstance(response, Exception):
                raise response
            return ToolInvocation(tool, script, response, ok=True, returncode=0)
        raise AssertionError(f"Unexpected {tool.value} script: {script!r}")

    return invoke


@pytest.fixture
def responses(monkeypatch) -> dict[str, str | Exception]:
    answers: dict[str, str | Exception] = {}
    monkeypatch.setattr("dbhealth.tools.invoke", _fake_invoke(answers))
    monkeypatch.setattr(checks, "invoke", _fake_invoke(answers))
    return answers


def test_describe_instance(responses, execution, config):
    responses.update({"v$database": "ORCL|PRIMARY|YES\n", "gv$instance": "YES\n"})
    instance, result = describe_instance(execution, config)
    assert instance == Instance("ORCL", execution.oracle_home, "ORCL", "PRIMARY", True, True)
    assert result == Result(Severity.INFO, "DB=ORCL ROLE=PRIMARY CDB=YES RAC=YES")


def test_describe_instance_invalid(responses, execution, config):
    responses.update({"v$database": "ORCL|PRIMARY\n", "gv$instance": "NO\n"})
    instance, result = describe_instance(execution, config)
    assert instance == Instance("ORCL", execution.oracle_home)
    assert result.severity is Severity.CRITICAL


@pytest.mark.parametrize(
    "total, free, expected",
    [
        ("512", "12", Severity.OK),
        ("512", "512", Severity.WARNING),
        ("0", "0", Severity.WARNING),
    ],
)
def test_check_hugepages(monkeypatch, execution, config, total, free, expected):
    monkeypatch.setattr(checks.platform, "system", lambda: "Linux")
    monkeypatch.setattr(
        checks,
        "open_meminfo",
        lambda _path: [f"HugePages_Total:   {total}\n", f"HugePages_Free:    {free}\n"],
    )
    results = list(check_hugepages(_context(execution, config)))
    assert results[0] == Result.info(f"HugePages Total={total} Free={free}")
    assert results[1].severity is expected


def test_check_hugepages_invalid(monkeypatch, execution, config):
    monkeypatch.setattr(checks.platform, "system", lambda: "Linux")
    monkeypatch.setattr(checks, "open_meminfo", lambda _path: ["MemTotal: 1024 kB\n"])
    assert list(check_hugepages(_context(execution, config))) == [
        Result.critical("HugePages values invalid (total=<absent>, free=<absent>)")
    ]


def test_check_hugepages_solaris(monkeypatch, execution, config):
    monkeypatch.setattr(checks.platform, "system", lambda: "SunOS")
    assert list(check_hugepages(_context(execution, config))) == [
        Result.info("Solaris detected - HugePages not applicable")
    ]


def test_check_lms_single_instance(monkeypatch, execution, config):
    monkeypatch.setattr(checks, "lms_threads", lambda _sid: pytest.fail("not RAC"))
    assert not list(check_lms(_context(execution, config, is_rac=False)))


def test_check_lms(monkeypatch, execution, config):
    monkeypatch.setattr(
        checks, "lms_threads", lambda _sid: {"ora_lms1_ORCL": [21, 22], "ora_lms0_ORCL": [11, 12]}
    )
    monkeypatch.setattr(checks, "is_round_robin", lambda tid: tid == 12)
    assert list(check_lms(_context(execution, config, is_rac=True))) == [
        Result.ok("LMS ora_lms0_ORCL has RR thread"),
        Result.warning("LMS ora_lms1_ORCL missing RR thread"),
    ]


def test_check_lms_without_scheduler_support(monkeypatch, execution, config):
    monkeypatch.delattr(checks.os, "sched_getscheduler", raising=False)
    monkeypatch.setattr(checks.platform, "system", lambda: "SunOS")
    monkeypatch.setattr(checks, "lms_threads", lambda _sid: pytest.fail("not supported"))
    assert list(check_lms(_context(execution, config, is_rac=True))) == [
        Result.info("SunOS detected - LMS scheduling class not applicable")
    ]


def test_check_lms_no_process(monkeypatch, execution, config):
    monkeypatch.setattr(checks, "lms_threads", lambda _sid: {})
    assert list(check_lms(_context(execution, config, is_rac=True))) == [
        Result.critical("No LMS processes found")
    ]


def test_check_tablespaces(responses, execution, config):
    responses["dba_tablespace_usage_metrics"] = "SYSAUX|85\nSYSTEM|45\nUSERS|90\nTEMP|\n"
    results = list(check_tablespaces(_context(execution, config, role="PRIMARY")))
    assert [r.severity for r in results] == [
        Severity.WARNING,
        Severity.OK,
        Severity.CRITICAL,
        Severity.CRITICAL,
    ]
    assert results[1] == Result.ok("Tablespace SYSTEM: 45%")


def test_check_tablespaces_standby(responses, execution, config):
    assert list(check_tablespaces(_context(execution, config, role="PHYSICAL STANDBY"))) == [
        Result.info("Standby database - tablespace usage not checked")
    ]


@pytest.mark.parametrize(
    "count, expected",
    [("0", Severity.OK), ("1", Severity.WARNING), ("7", Severity.WARNING), ("x", Severity.CRITICAL)],
)
def test_check_blocking_sessions(responses, execution, config, count, expected):
    responses["blocking_session"] = f"{count}\n"
    (result,) = check_blocking_sessions(_context(execution, config))
    assert result.severity is expected


def test_check_archivelog_deletion_policy(responses, execution, config):
    responses["show all"] = RMAN_SHOW_ALL
    assert list(check_archivelog_deletion_policy(_context(execution, config))) == [
        Result.ok("RMAN ARCHIVELOG DELETION POLICY correct")
    ]


def test_check_archivelog_deletion_policy_absent(responses, execution, config):
    responses["show all"] = "CONFIGURE RETENTION POLICY TO REDUNDANCY 1; # default\n"
    assert list(check_archivelog_deletion_policy(_context(execution, config))) == [
        Result.critical("RMAN ARCHIVELOG DELETION POLICY not configured")
    ]


def test_check_archivelog_deletion_policy_without_rman(responses, execution, config):
    responses["show all"] = ToolNotFoundError("rman")
    with pytest.raises(ToolNotFoundError):
        list(check_archivelog_deletion_policy(_context(execution, config)))


def test_check_dataguard_broker_not_started(responses, execution, config):
    responses["dg_broker_start"] = "FALSE\n"
    assert list(check_dataguard(_context(execution, config))) == [
        Result.info("Data Guard Broker not started - skipping")
    ]


def test_check_dataguard(responses, execution, config):
    responses.update(
        {
            "dg_broker_start": "TRUE\n",
            "show configuration": SHOW_CONFIGURATION,
            "'orcls' 'DGConnectIdentifier'": "  DGConnectIdentifier = 'orcls_tns'\n",
            "'orclt' 'DGConnectIdentifier'": "  DGConnectIdentifier = ''\n",
            "validate database verbose 'orcls'": VALIDATE_DATABASE,
            "validate database verbose 'orclt'": ToolExecutionError("dgmgrl failed: ORA-16525"),
        }
    )
    results = list(check_dataguard(_context(execution, config)))
    assert results[0] == Result.ok("DGBroker configuration SUCCESS")
    assert results[1] == Result.info("[orcls] DGConnectIdentifier: orcls_tns")
    # The failing second standby does not affect the first one
    assert all(r.severity is Severity.OK for r in results[2:8])
    assert results[8:] == [
        Result.warning("[orclt] Could not extract DGConnectIdentifier"),
        Result.critical("[orclt] Validation failed: dgmgrl failed: ORA-16525"),
    ]


def test_check_dataguard_without_standbys(responses, execution, config):
    responses.update(
        {
            "dg_broker_start": "TRUE\n",
            "show configuration": "  orcl - Primary database\nConfiguration Status:\nSUCCESS\n",
        }
    )
    assert list(check_dataguard(_context(execution, config))) == [
        Result.ok("DGBroker configuration SUCCESS")
    ]


def test_check_dataguard_without_dgmgrl(responses, execution, config):
    responses.update({"dg_broker_start": "TRUE\n", "show configuration": ToolNotFoundError("dgmgrl")})
    with pytest.raises(ToolNotFoundError):
        list(check_dataguard(_context(execution, config)))


def test_check_dataguard_connect_identifier_lookup_fails(responses, execution, config):
    responses.update(
        {
            "dg_broker_start": "TRUE\n",
            "show configuration": "orcls - Physical standby database\nConfiguration Status:\nSUCCESS\n",
            "'orcls' 'DGConnectIdentifier'": ToolExecutionError("dgmgrl failed: ORA-16541"),
            "validate database verbose 'orcls'": VALIDATE_DATABASE,
        }
    )
    results = list(check_dataguard(_context(execution, config)))
    assert results[:2] == [
        Result.ok("DGBroker configuration SUCCESS"),
        Result.warning("[orcls] Could not extract DGConnectIdentifier: dgmgrl failed: ORA-16541"),
    ]
    # Readiness, SRL, apply and transport are still checked
    assert results[2:] == [
        Result.ok("[orcls] Ready for Switchover"),
        Result.ok("[orcls] Ready for Failover"),
        Result.ok("[orcls] Thread 1 SRL OK (4 >= 4)"),
        Result.ok("[orcls] Thread 2 SRL OK (4 >= 4)"),
        Result.ok("[orcls] Apply running without lag"),
        Result.ok("[orcls] Transport OK"),
    ]
