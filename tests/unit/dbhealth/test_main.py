#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

# pylint: disable=redefined-outer-name

import datetime
import io
from pathlib import Path

import pytest

from dbhealth import main
from dbhealth.exceptions import HCBailOut
from dbhealth.report import Report
from dbhealth.state import Result


@pytest.fixture(autouse=True)
def environment(monkeypatch, tmp_path: Path, oratab: Path):
    monkeypatch.setenv("DBHEALTH_CONFIG", str(tmp_path / "missing.mk"))
    monkeypatch.setattr(main, "find_oratab", lambda _candidates: oratab)
    monkeypatch.setattr(main.log, "setup_console_logging", lambda _level: None)


def _report(tmp_path: Path, sid: str, *results: Result) -> Report:
    report = Report(
        sid,
        tmp_path / f"db_health_{sid}.log",
        io.StringIO(),
        datetime.datetime(2024, 3, 1),
        stream=io.StringIO(),
    )
    report.add_all("Test", results)
    return report


@pytest.mark.parametrize(
    "argv",
    [
        pytest.param([], id="no arguments"),
        pytest.param(["-d", "ORCL", "--all"], id="exclusive"),
        pytest.param(["--bogus"], id="unknown option"),
    ],
)
def test_usage_error(argv, capsys):
    assert main.main(argv) == 1
    assert "usage: dbhealth" in capsys.readouterr().err


def test_help(capsys):
    assert main.main(["--help"]) == 0
    assert "--database" in capsys.readouterr().out


def test_instance_not_running(monkeypatch, capsys):
    monkeypatch.setattr(main, "is_instance_running", lambda _sid: False)
    assert main.main(["-d", "ORCL"]) == 1
    assert "[ERROR] SID ORCL not running" in capsys.readouterr().err


def test_oratab_missing(monkeypatch, capsys):
    def find_oratab(_candidates):
        raise HCBailOut("oratab file not found")

    monkeypatch.setattr(main, "find_oratab", find_oratab)
    assert main.main(["-d", "ORCL"]) == 1
    assert "[ERROR] oratab file not found" in capsys.readouterr().err


def test_single_instance(monkeypatch, tmp_path: Path, capsys):
    calls = []

    def run_health_check(sid, config, oratab):
        calls.append((sid, config.output_dir, oratab))
        return _report(tmp_path, sid, Result.critical("bad"), Result.ok("good"))

    monkeypatch.setattr(main, "is_instance_running", lambda _sid: True)
    monkeypatch.setattr(main, "run_health_check", run_health_check)

    # Findings do not change the exit code
    assert main.main(["-d", "ORCL", "-o", str(tmp_path / "out")]) == 0
    assert calls == [("ORCL", tmp_path / "out", tmp_path / "oratab")]
    summary = capsys.readouterr().out.splitlines()
    assert summary[-3].split() == ["SID", "WORST", "CRIT", "WARN", "OK", "LOG", "FILE"]
    assert summary[-1].split() == ["ORCL", "CRITICAL", "1", "0", "1", str(tmp_path / "db_health_ORCL.log")]


def test_single_instance_without_install_path(monkeypatch, tmp_path: Path, capsys):
    monkeypatch.setattr(main, "is_instance_running", lambda _sid: True)
    assert main.main(["-d", "NOHOME", "-o", str(tmp_path / "out")]) == 1

    out = capsys.readouterr().out
    assert "[CRITICAL] NOHOME: ORACLE_HOME not found for SID=NOHOME" in out
    assert out.splitlines()[-1].split()[:2] == ["NOHOME", "CRITICAL"]


def test_all_instances_with_missing_install_path(monkeypatch, tmp_path: Path, capsys):
    monkeypatch.setattr(main, "list_running_instances", lambda: {"NOHOME"})
    assert main.main(["--all", "-o", str(tmp_path / "out")]) == 0
    assert "ORACLE_HOME not found for SID=NOHOME" in capsys.readouterr().out


def test_all_instances(monkeypatch, tmp_path: Path):
    def run_all(sids, _config, _oratab):
        return [_report(tmp_path, sid, Result.ok("good")) for sid in sids]

    monkeypatch.setattr(main, "list_running_instances", lambda: {"ORCL2", "ORCL"})
    monkeypatch.setattr(main, "run_all", run_all)
    assert main.main(["--all"]) == 0


def test_all_instances_none_running(monkeypatch, capsys):
    monkeypatch.setattr(main, "list_running_instances", set)
    assert main.main(["--all"]) == 0
    assert "No running instances found" in capsys.readouterr().out


def test_aborted_run(monkeypatch, tmp_path: Path):
    report = _report(tmp_path, "ORCL")
    report.aborted = True
    monkeypatch.setattr(main, "is_instance_running", lambda _sid: True)
    monkeypatch.setattr(main, "run_health_check", lambda *_args: report)
    assert main.main(["-d", "ORCL"]) == 2


def test_unexpected_error(monkeypatch):
    def run_health_check(*_args):
        raise RuntimeError("boom")

    monkeypatch.setattr(main, "is_instance_running", lambda _sid: True)
    monkeypatch.setattr(main, "run_health_check", run_health_check)
    assert main.main(["-d", "ORCL"]) == 2


def test_invalid_config(monkeypatch, tmp_path: Path, capsys):
    config_file = tmp_path / "dbhealth.mk"
    config_file.write_text("{'max_workers': 'many'}")
    monkeypatch.setattr(main, "is_instance_running", lambda _sid: True)
    assert main.main(["-d", "ORCL", "-c", str(config_file)]) == 1
    assert "Invalid configuration file" in capsys.readouterr().err
