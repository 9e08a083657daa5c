#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Discovery of the running database instances and their installation"""

import logging
import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

import psutil

from dbhealth.exceptions import HCBailOut

LOGGER = logging.getLogger(__name__)

_PMON_PATTERN = re.compile(r"ora_pmon_(\S+)$")

# Storage grid (ASM) instances run a monitor as well, but are no databases
_EXCLUDE_MARKER = "ASM"

ProcessIter = Callable[..., Iterable[psutil.Process]]


@dataclass(frozen=True)
class Instance:
    sid: str
    oracle_home: Path
    db_name: str = ""
    role: str = ""
    is_cdb: bool = False
    is_rac: bool = False

    @property
    def is_standby(self) -> bool:
        return "STANDBY" in self.role.upper()


def _process_names(process_iter: ProcessIter) -> Iterator[str]:
    for proc in process_iter(["name", "cmdline"]):
        try:
            info = proc.info
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        # The monitor rewrites its argv. The process name may be truncated
        # by the kernel, so prefer the command line.
        if cmdline := info.get("cmdline"):
            yield cmdline[0]
        elif info.get("name"):
            yield info["name"]


def list_running_instances(process_iter: ProcessIter = psutil.process_iter) -> set[str]:
    sids = set()
    for name in _process_names(process_iter):
        if _EXCLUDE_MARKER in name:
            continue
        if match := _PMON_PATTERN.search(name.strip()):
            sids.add(match.group(1))
    LOGGER.debug("Running instances: %s", ", ".join(sorted(sids)) or "none")
    return sids


def is_instance_running(sid: str, process_iter: ProcessIter = psutil.process_iter) -> bool:
    return sid in list_running_instances(process_iter)


def find_oratab(candidates: Iterable[Path]) -> Path:
    for candidate in candidates:
        if candidate.is_file():
            LOGGER.debug("Using oratab %s", candidate)
            return candidate
    raise HCBailOut("oratab file not found")


def parse_oratab(lines: Iterable[str]) -> Mapping[str, str]:
    """
    Parser for the installation registry.

    Example for the oratab file:
    # comment
    ORCL:/u01/app/oracle/product/19.0.0/dbhome_1:Y
    +ASM:/u01/app/19.0.0/grid:N
    """
    homes: dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or ":" not in line:
            continue
        sid, home, *_rest = line.split(":")
        home = home.strip()
        if not home or home.startswith("#"):
            continue
        homes.setdefault(sid.strip(), home)
    return homes


def open_oratab(oratab: Path) -> list[str]:
    """Wrapper around built-in open to be able to monkeypatch"""
    with oratab.open(encoding="utf-8", errors="replace") as f:
        return f.readlines()


def resolve_install_path(sid: str, oratab: Path) -> Path | None:
    home = parse_oratab(open_oratab(oratab)).get(sid)
    if home is None:
        LOGGER.debug("No oratab entry for %s", sid)
        return None
    path = Path(home)
    if not path.is_dir():
        LOGGER.debug("ORACLE_HOME %s of %s does not exist", path, sid)
        return None
    return path
