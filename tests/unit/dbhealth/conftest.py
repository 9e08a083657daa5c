#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from pathlib import Path

import pytest

from dbhealth import tty
from dbhealth.config import Config


@pytest.fixture(autouse=True)
def plain_tty(monkeypatch):
    for name in ("red", "green", "yellow", "blue", "bold", "normal"):
        monkeypatch.setattr(tty, name, "")
    monkeypatch.setattr(tty, "severities", {s: "" for s in tty.severities})


@pytest.fixture(name="config")
def fixture_config(tmp_path: Path) -> Config:
    return Config(output_dir=tmp_path / "reports", tool_timeout=5, max_workers=2)


@pytest.fixture(name="oracle_home")
def fixture_oracle_home(tmp_path: Path) -> Path:
    home = tmp_path / "dbhome_1"
    (home / "bin").mkdir(parents=True)
    return home


@pytest.fixture(name="oratab")
def fixture_oratab(tmp_path: Path, oracle_home: Path) -> Path:
    oratab = tmp_path / "oratab"
    oratab.write_text(
        "# oratab\n"
        f"ORCL:{oracle_home}:Y\n"
        f"ORCL2:{oracle_home}:N\n"
        f"NOHOME:{tmp_path / 'missing'}:N\n"
        "+ASM:/u01/app/19.0.0/grid:N\n"
    )
    return oratab
