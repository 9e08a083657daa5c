#!/usr/bin/env python3
# Copyright (C) 2024 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import ast
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from dbhealth.exceptions import HCBailOut

DEFAULT_CONFIG_PATH = Path("/etc/dbhealth/dbhealth.mk")

ORATAB_CANDIDATES = (
    Path("/etc/oratab"),
    Path("/var/opt/oracle/oratab"),  # Solaris
)

EXPECTED_ARCHIVELOG_DELETION_POLICY = (
    "CONFIGURE ARCHIVELOG DELETION POLICY TO APPLIED ON ALL STANDBY BACKED UP 1 TIMES TO DISK;"
)


class Config(BaseModel, frozen=True):
    oratab: Path | None = None
    output_dir: Path = Path("/tmp")
    space_levels: tuple[int, int] = (80, 90)
    blocking_session_levels: tuple[int | None, int | None] = (1, None)
    expected_archivelog_deletion_policy: str = EXPECTED_ARCHIVELOG_DELETION_POLICY
    tool_timeout: int = 300
    max_workers: int = 4
    meminfo_path: Path = Path("/proc/meminfo")

    @property
    def oratab_candidates(self) -> tuple[Path, ...]:
        return ORATAB_CANDIDATES if self.oratab is None else (self.oratab,)


DEFAULT_CONFIG = Config()


def config_path(explicit: str | None = None) -> Path:
    if explicit:
        return Path(explicit)
    return Path(os.environ.get("DBHEALTH_CONFIG", DEFAULT_CONFIG_PATH))


def _load_object_from_file(path: Path, default: Any) -> Any:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    if not content.strip():
        return default
    return ast.literal_eval(content)


def read_config(path: Path, **overrides: Any) -> Config:
    """Read the configuration from a file holding a python dict literal

    Example for the configuration file:
    {
        "output_dir": "/var/log/dbhealth",
        "space_levels": (85, 95),
        "max_workers": 2,
    }
    """
    try:
        raw_config = _load_object_from_file(path, default={})
    except (SyntaxError, ValueError, OSError) as e:
        raise HCBailOut(f"Cannot read configuration file {path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise HCBailOut(f"Invalid configuration file {path}: expected a dictionary")

    raw_config.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return Config.model_validate(raw_config)
    except ValidationError as e:
        raise HCBailOut(f"Invalid configuration file {path}: {e}") from e
