#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Invocation of the external administration tools

Every invocation gets the environment of exactly one instance passed
explicitly. The environment of the own process is never modified, so
instances can be checked in parallel.
"""

from __future__ import annotations

import enum
import logging
import os
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from dbhealth.exceptions import HCTimeout, ToolExecutionError, ToolNotFoundError
from dbhealth.log import VERBOSE

LOGGER = logging.getLogger(__name__)

# Variables which must never leak from the calling environment into an instance
_INSTANCE_VARIABLES = ("ORACLE_SID", "ORACLE_HOME", "LD_LIBRARY_PATH", "TNS_ADMIN", "TWO_TASK")

SQLPLUS_PREAMBLE = (
    "set pages 0 feed off head off verify off echo off trimspool on lines 32767\n"
    "whenever sqlerror exit failure\n"
)

# Error prefixes of the Oracle client tools
_ERROR_PREFIXES = ("ORA-", "SP2-", "ERROR:")


class Tool(enum.Enum):
    SQLPLUS = "sqlplus"
    RMAN = "rman"
    DGMGRL = "dgmgrl"

    @property
    def arguments(self) -> Sequence[str]:
        match self:
            case Tool.SQLPLUS:
                return ("-s", "/", "as", "sysdba")
            case Tool.RMAN:
                return ("target", "/")
            case _:
                return ("-silent", "/")


@dataclass(frozen=True)
class ExecutionContext:
    sid: str
    oracle_home: Path
    environ: Mapping[str, str] = field(repr=False)

    @classmethod
    def for_instance(
        cls, sid: str, oracle_home: Path, base_environ: Mapping[str, str] | None = None
    ) -> ExecutionContext:
        environ = {
            k: v
            for k, v in (os.environ if base_environ is None else base_environ).items()
            if k not in _INSTANCE_VARIABLES
        }
        environ.update(
            {
                "ORACLE_SID": sid,
                "ORACLE_HOME": str(oracle_home),
                "PATH": f"{oracle_home / 'bin'}:/usr/bin:/usr/sbin",
                "LD_LIBRARY_PATH": str(oracle_home / "lib"),
                "TNS_ADMIN": str(oracle_home / "network" / "admin"),
            }
        )
        return cls(sid=sid, oracle_home=oracle_home, environ=environ)

    @property
    def path(self) -> str:
        return self.environ["PATH"]

    def find_tool(self, tool: Tool) -> str | None:
        return shutil.which(tool.value, path=self.path)


@dataclass(frozen=True)
class ToolInvocation:
    tool: Tool
    script: str
    output: str
    ok: bool
    returncode: int | None = None
    error: str = ""
    timed_out: bool = False

    @property
    def lines(self) -> list[str]:
        return self.output.splitlines()

    def raise_for_status(self) -> ToolInvocation:
        if self.ok:
            return self
        if self.timed_out:
            raise HCTimeout(f"{self.tool.value}: {self.error}")
        raise ToolExecutionError(f"{self.tool.value} failed: {self.error}")


def _first_error_line(output: str) -> str | None:
    for line in output.splitlines():
        if line.strip().startswith(_ERROR_PREFIXES):
            return line.strip()
    return None


def invoke(tool: Tool, script: str, context: ExecutionContext, timeout: int) -> ToolInvocation:
    """Run the tool with the script on stdin in the environment of the instance

    Raises ToolNotFoundError when the tool is not installed. All other
    problems are reported by the returned invocation.
    """
    if (executable := context.find_tool(tool)) is None:
        raise ToolNotFoundError(tool.value)

    command = [executable, *tool.arguments]
    LOGGER.log(VERBOSE, "[%s] Calling %s", context.sid, subprocess.list2cmdline(command))
    start_time = time.monotonic()
    try:
        completed_process = subprocess.run(
            command,
            input=script,
            env=dict(context.environ),
            close_fds=True,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(tool.value) from e
    except subprocess.TimeoutExpired as e:
        LOGGER.warning("[%s] %s timed out after %d seconds", context.sid, tool.value, timeout)
        partial = e.stdout if isinstance(e.stdout, str) else ""
        return ToolInvocation(
            tool=tool,
            script=script,
            output=partial,
            ok=False,
            error=f"timed out after {timeout} seconds",
            timed_out=True,
        )

    duration = time.monotonic() - start_time
    LOGGER.debug(
        "[%s] %s exited with %d (%.2fs)",
        context.sid,
        tool.value,
        completed_process.returncode,
        duration,
    )

    if completed_process.returncode != 0:
        error = (
            _first_error_line(completed_process.stdout)
            or completed_process.stderr.strip()
            or f"exit code {completed_process.returncode}"
        )
        return ToolInvocation(
            tool=tool,
            script=script,
            output=completed_process.stdout,
            ok=False,
            returncode=completed_process.returncode,
            error=error,
        )

    return ToolInvocation(
        tool=tool,
        script=script,
        output=completed_process.stdout,
        ok=True,
        returncode=completed_process.returncode,
    )


def sql_script(sql: str) -> str:
    return f"{SQLPLUS_PREAMBLE}{sql.rstrip()}\nexit;\n"


def run_sql(context: ExecutionContext, sql: str, timeout: int) -> ToolInvocation:
    """Run one statement with SQL*Plus

    SQL*Plus reports some errors (e.g. a closed instance) with exit code 0,
    so error lines in the output fail the invocation as well.
    """
    invocation = invoke(Tool.SQLPLUS, sql_script(sql), context, timeout)
    if invocation.ok and (error := _first_error_line(invocation.output)):
        return ToolInvocation(
            tool=invocation.tool,
            script=invocation.script,
            output=invocation.output,
            ok=False,
            returncode=invocation.returncode,
            error=error,
        )
    return invocation


def query_value(context: ExecutionContext, sql: str, timeout: int) -> str:
    """Return the single value a query selects, stripped"""
    return run_sql(context, sql, timeout).raise_for_status().output.strip()


def command_script(*commands: str) -> str:
    return "".join(f"{command.rstrip(';')};\n" for command in (*commands, "exit"))
