#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Validation of a Data Guard replication topology

Every standby is evaluated on its own and every sub-check runs, regardless
of what an earlier one found.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from dbhealth.levels import invalid_values, parse_int, parse_leading_int
from dbhealth.parser import BrokerConfiguration, LogGroupRow, ValidationReport
from dbhealth.state import Result


@dataclass(frozen=True)
class StandbyTarget:
    name: str
    connect_identifier: str | None = None


@dataclass(frozen=True)
class LogGroupAdequacy:
    thread: str
    online: int
    standby: int

    @property
    def required(self) -> int:
        return self.online + 1

    @property
    def adequate(self) -> bool:
        return self.standby >= self.required


@dataclass(frozen=True)
class ApplyHealth:
    state: str
    lag: int
    delay: int

    @property
    def healthy(self) -> bool:
        return self.state.lower() == "running" and self.lag == 0 and self.delay == 0


@dataclass(frozen=True)
class TransportHealth:
    enabled: bool
    gap_status: str
    lag: int
    status: str

    def problems(self) -> Sequence[str]:
        return [
            problem
            for problem, failed in (
                ("transport off", not self.enabled),
                (f"gap status {self.gap_status}", self.gap_status.lower() != "no gap"),
                (f"lag {self.lag}", self.lag != 0),
                (f"status {self.status}", self.status.lower() != "success"),
            )
            if failed
        ]

    @property
    def healthy(self) -> bool:
        return not self.problems()


@dataclass(frozen=True)
class ReplicationHealth:
    target: StandbyTarget
    switchover_ready: bool
    failover_ready: bool
    log_groups: tuple[LogGroupAdequacy, ...]
    apply: ApplyHealth | None
    transport: TransportHealth | None


def _show(value: str | None) -> str:
    return "<absent>" if value is None else value


def is_switchover_ready(value: str | None) -> bool:
    return value is not None and value.strip().lower() == "yes"


def is_failover_ready(value: str | None) -> bool:
    # e.g. "Yes (Primary Running)"
    return value is not None and value.strip().lower().startswith("yes")


def log_group_adequacy(row: LogGroupRow) -> LogGroupAdequacy | None:
    online, standby = parse_int(row.online), parse_int(row.standby)
    if online is None or standby is None:
        return None
    return LogGroupAdequacy(thread=row.thread, online=online, standby=standby)


def apply_health(report: ValidationReport) -> ApplyHealth | None:
    lag, delay = parse_leading_int(report.apply_lag), parse_leading_int(report.apply_delay)
    if report.apply_state is None or lag is None or delay is None:
        return None
    return ApplyHealth(state=report.apply_state, lag=lag, delay=delay)


def transport_health(report: ValidationReport) -> TransportHealth | None:
    lag = parse_leading_int(report.transport_lag)
    if (
        report.transport_on is None
        or report.gap_status is None
        or report.transport_status is None
        or lag is None
    ):
        return None
    return TransportHealth(
        enabled=report.transport_on.strip().lower() == "yes",
        gap_status=report.gap_status,
        lag=lag,
        status=report.transport_status,
    )


def replication_health(target: StandbyTarget, report: ValidationReport) -> ReplicationHealth:
    return ReplicationHealth(
        target=target,
        switchover_ready=is_switchover_ready(report.switchover_ready),
        failover_ready=is_failover_ready(report.failover_ready),
        log_groups=tuple(
            adequacy
            for row in report.log_groups
            if (adequacy := log_group_adequacy(row)) is not None
        ),
        apply=apply_health(report),
        transport=transport_health(report),
    )


#   .--checks--------------------------------------------------------------.


def check_configuration_status(configuration: BrokerConfiguration) -> Result:
    if configuration.status is not None and configuration.status.lower() == "success":
        return Result.ok("DGBroker configuration SUCCESS")
    return Result.critical(f"DGBroker status: {_show(configuration.status)}")


def check_readiness(target: StandbyTarget, report: ValidationReport) -> list[Result]:
    # Switchover readiness is advisory, failover is the safety critical path
    return [
        (
            Result.ok(f"[{target.name}] Ready for Switchover")
            if is_switchover_ready(report.switchover_ready)
            else Result.warning(f"[{target.name}] Switchover: {_show(report.switchover_ready)}")
        ),
        (
            Result.ok(f"[{target.name}] Ready for Failover")
            if is_failover_ready(report.failover_ready)
            else Result.critical(f"[{target.name}] Failover: {_show(report.failover_ready)}")
        ),
    ]


def check_log_groups(target: StandbyTarget, report: ValidationReport) -> list[Result]:
    if not report.log_groups:
        return [Result.critical(f"[{target.name}] Log file groups configuration not found")]

    results = []
    for row in report.log_groups:
        adequacy = log_group_adequacy(row)
        if adequacy is None:
            results.append(
                invalid_values(
                    f"[{target.name}] Thread {row.thread} SRL",
                    online=row.online,
                    standby=row.standby,
                )
            )
        elif adequacy.adequate:
            results.append(
                Result.ok(
                    f"[{target.name}] Thread {row.thread} SRL OK"
                    f" ({adequacy.standby} >= {adequacy.required})"
                )
            )
        else:
            results.append(
                Result.critical(
                    f"[{target.name}] Thread {row.thread} SRL insufficient"
                    f" ({adequacy.standby} < {adequacy.required})"
                )
            )
    return results


def check_apply(target: StandbyTarget, report: ValidationReport) -> Result:
    if (apply := apply_health(report)) is None:
        return invalid_values(
            f"[{target.name}] Apply",
            state=report.apply_state,
            lag=report.apply_lag,
            delay=report.apply_delay,
        )
    if apply.healthy:
        return Result.ok(f"[{target.name}] Apply running without lag")
    return Result.critical(
        f"[{target.name}] Apply issue: state={apply.state} lag={apply.lag} delay={apply.delay}"
    )


def check_transport(target: StandbyTarget, report: ValidationReport) -> Result:
    if (transport := transport_health(report)) is None:
        return invalid_values(
            f"[{target.name}] Transport",
            on=report.transport_on,
            gap=report.gap_status,
            lag=report.transport_lag,
            status=report.transport_status,
        )
    if transport.healthy:
        return Result.ok(f"[{target.name}] Transport OK")
    return Result.critical(
        f"[{target.name}] Transport issue: {', '.join(transport.problems())}"
    )


def validate_standby(target: StandbyTarget, report: ValidationReport) -> list[Result]:
    return [
        *check_readiness(target, report),
        *check_log_groups(target, report),
        check_apply(target, report),
        check_transport(target, report),
    ]
