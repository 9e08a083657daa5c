#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Parsers for the free text output of the administration tools

All parsers return raw strings. Nothing is converted or defaulted here, a
missing field is None and it is up to the classification to judge it.
"""

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import NamedTuple

_QUOTED = re.compile(r"'([^']*)'")
_THREAD_ROW = re.compile(r"^\s*\d+(\s|$)")


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def normalize_policy(text: str) -> str:
    return normalize_whitespace(text).upper()


def _starts_with(line: str, prefix: str) -> bool:
    return normalize_policy(line).startswith(normalize_policy(prefix))


def _contains(line: str, marker: str) -> bool:
    return normalize_policy(marker) in normalize_policy(line)


def find_line(lines: Iterable[str], prefix: str) -> str | None:
    """Return the first line starting with prefix (case insensitive), whitespace collapsed"""
    for line in lines:
        if _starts_with(line, prefix):
            return normalize_whitespace(line)
    return None


def field_value(line: str, delimiter: str = ":") -> str:
    if delimiter not in line:
        return ""
    return line.split(delimiter, 1)[1].strip()


def find_field(lines: Iterable[str], label: str) -> str | None:
    """Value of the first "label: value" line, None if there is no such line

    >>> find_field(["  Apply Lag:   0 seconds"], "Apply Lag")
    '0 seconds'
    """
    line = find_line(lines, f"{label}:")
    if line is None:
        return None
    return normalize_whitespace(line[len(normalize_whitespace(label)) + 1 :])


def extract_block(lines: Iterable[str], start: str, end: str) -> list[str]:
    """Return the lines from the start marker up to and including the end marker

    Without the end marker the block extends to the end of the text. Without
    the start marker the block is empty.
    """
    block: list[str] = []
    for line in lines:
        if not block:
            if _contains(line, start):
                block.append(line)
            continue
        block.append(line)
        if _contains(line, end):
            break
    return block


class Section(NamedTuple):
    name: str
    start: str
    end: str


class LineScanner:
    """Forward only scanner over the output of one tool call"""

    def __init__(self, text: str, sections: Sequence[Section] = ()) -> None:
        self.lines = text.splitlines()
        self._sections = {s.name: s for s in sections}

    def section(self, name: str) -> list[str]:
        section = self._sections[name]
        return extract_block(self.lines, section.start, section.end)

    def field(self, label: str, section: str | None = None) -> str | None:
        return find_field(self.lines if section is None else self.section(section), label)

    def line(self, prefix: str) -> str | None:
        return find_line(self.lines, prefix)


#   .--RMAN----------------------------------------------------------------.

ARCHIVELOG_DELETION_POLICY_PREFIX = "CONFIGURE ARCHIVELOG DELETION POLICY"


def parse_archivelog_deletion_policy(output: str) -> str | None:
    return LineScanner(output).line(ARCHIVELOG_DELETION_POLICY_PREFIX)


#   .--DGMGRL--------------------------------------------------------------.


@dataclass(frozen=True)
class BrokerConfiguration:
    status: str | None
    standbys: tuple[str, ...] = ()


def _configuration_status(lines: Sequence[str]) -> str | None:
    # DGMGRL prints the status below the label, older releases next to it
    for index, line in enumerate(lines):
        if not _starts_with(line, "Configuration Status:"):
            continue
        value = field_value(line)
        if not value:
            value = next((l.strip() for l in lines[index + 1 :] if l.strip()), "")
        return value.split()[0] if value else None
    return None


def parse_broker_configuration(output: str) -> BrokerConfiguration:
    """
    Example for the output of "show configuration":

    Configuration - dg_config

      Protection Mode: MaxPerformance
      Members:
      orcl  - Primary database
        orcls - Physical standby database

    Fast-Start Failover:  Disabled

    Configuration Status:
    SUCCESS   (status updated 36 seconds ago)
    """
    lines = output.splitlines()
    standbys: dict[str, None] = {}
    for line in lines:
        if _contains(line, "Physical standby database") and (tokens := line.split()):
            standbys.setdefault(tokens[0], None)
    return BrokerConfiguration(status=_configuration_status(lines), standbys=tuple(standbys))


def parse_connect_identifier(output: str) -> str | None:
    """
    Example for the output of "show database orcls 'DGConnectIdentifier'":

      DGConnectIdentifier = 'orcls'
    """
    for line in output.splitlines():
        if "DGCONNECTIDENTIFIER" not in line.upper():
            continue
        if match := _QUOTED.search(line):
            value = match.group(1).strip()
        else:
            value = field_value(line, "=")
        return value or None
    return None


class LogGroupRow(NamedTuple):
    thread: str
    online: str
    standby: str
    status: str


VALIDATION_SECTIONS = (
    Section(
        "log_groups",
        "Current Log File Groups Configuration:",
        "Future Log File Groups Configuration:",
    ),
    Section("apply", "Standby Apply-Related Information:", "Transport-Related Information:"),
    Section("transport", "Transport-Related Information:", "Log Files Cleared:"),
)


@dataclass(frozen=True)
class ValidationReport:
    switchover_ready: str | None
    failover_ready: str | None
    log_groups: tuple[LogGroupRow, ...] = ()
    apply_state: str | None = None
    apply_lag: str | None = None
    apply_delay: str | None = None
    transport_on: str | None = None
    gap_status: str | None = None
    transport_lag: str | None = None
    transport_status: str | None = None
    sections_found: frozenset[str] = field(default_factory=frozenset)


def parse_log_group_rows(block: Iterable[str]) -> tuple[LogGroupRow, ...]:
    rows = []
    for line in block:
        if not _THREAD_ROW.match(line):
            continue
        thread, online, standby, *status = line.split() + ["", ""]
        rows.append(LogGroupRow(thread, online, standby, " ".join(status).strip()))
    return tuple(rows)


def parse_validation_report(output: str) -> ValidationReport:
    """
    Parse the output of "validate database verbose <standby>"

    Example (shortened):

      Ready for Switchover:  Yes
      Ready for Failover:    Yes (Primary Running)

      Standby Apply-Related Information:
        Apply State:      Running
        Apply Lag:        0 seconds (computed 1 second ago)
        Apply Delay:      0 minutes

      Transport-Related Information:
        Transport On:      Yes
        Gap Status:        No Gap
        Transport Lag:     0 seconds (computed 1 second ago)
        Transport Status:  Success

      Current Log File Groups Configuration:
        Thread #  Online Redo Log Groups  Standby Redo Log Groups Status
                  (orcl)                  (orcls)
        1         3                       4                       Sufficient SRLs

      Future Log File Groups Configuration:
        ...
    """
    scanner = LineScanner(output, VALIDATION_SECTIONS)
    return ValidationReport(
        switchover_ready=scanner.field("Ready for Switchover"),
        failover_ready=scanner.field("Ready for Failover"),
        log_groups=parse_log_group_rows(scanner.section("log_groups")),
        apply_state=scanner.field("Apply State", "apply"),
        apply_lag=scanner.field("Apply Lag", "apply"),
        apply_delay=scanner.field("Apply Delay", "apply"),
        transport_on=scanner.field("Transport On", "transport"),
        gap_status=scanner.field("Gap Status", "transport"),
        transport_lag=scanner.field("Transport Lag", "transport"),
        transport_status=scanner.field("Transport Status", "transport"),
        sections_found=frozenset(s.name for s in VALIDATION_SECTIONS if scanner.section(s.name)),
    )


#   .--SQL*Plus / OS-------------------------------------------------------.


def parse_sqlplus_rows(output: str, separator: str = "|") -> list[list[str]]:
    return [
        [column.strip() for column in line.split(separator)]
        for line in output.splitlines()
        if line.strip()
    ]


def parse_meminfo(lines: Iterable[str]) -> Mapping[str, str]:
    """
    >>> parse_meminfo(["HugePages_Total:    1024", "Hugepagesize:       2048 kB"])
    {'HugePages_Total': '1024', 'Hugepagesize': '2048'}
    """
    meminfo = {}
    for line in lines:
        key, _sep, value = line.partition(":")
        if tokens := value.split():
            meminfo[key.strip()] = tokens[0]
    return meminfo
