"""Data models for diagnostic outcomes and batch reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pg_index_health.catalog import Diagnostic
from pg_index_health.connection import HostIdentity


@dataclass(frozen=True)
class HostFailure:
    """One host that did not contribute to a diagnostic's result."""

    host: HostIdentity
    reason: str
    timed_out: bool = False

    def __str__(self):
        kind = "timed out" if self.timed_out else "failed"
        return f"{self.host} {kind}: {self.reason}"


@dataclass(frozen=True)
class PartialClusterFailure:
    """Attached to a result that only some of the targeted hosts contributed to."""

    failed_hosts: tuple[HostFailure, ...]
    contributing_hosts: tuple[HostIdentity, ...] = ()

    def __str__(self):
        return "; ".join(str(f) for f in self.failed_hosts)


@dataclass
class CheckResult:
    diagnostic: Diagnostic
    findings: list = field(default_factory=list)
    error: str | None = None
    degraded: PartialClusterFailure | None = None
    host_failures: list[HostFailure] = field(default_factory=list)

    @property
    def check_name(self) -> str:
        return self.diagnostic.name

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def passed(self) -> bool:
        return not self.findings and not self.failed

    @property
    def status(self) -> str:
        if self.failed:
            return "failed"
        if self.degraded is not None:
            return "degraded"
        return "ok"


@dataclass
class BatchReport:
    database: str
    hosts: list[HostIdentity]
    timestamp: datetime
    primary: HostIdentity | None = None
    schema_name: str = "public"
    pg_version: str = ""
    results: list[CheckResult] = field(default_factory=list)

    @property
    def findings(self) -> list:
        all_findings = []
        for r in self.results:
            all_findings.extend(r.findings)
        return all_findings

    @property
    def checks_total(self) -> int:
        return len(self.results)

    @property
    def checks_passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def checks_failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @property
    def checks_degraded(self) -> int:
        return sum(1 for r in self.results if r.degraded is not None)

    def result_for(self, name: str) -> CheckResult:
        for r in self.results:
            if r.check_name == name:
                return r
        raise KeyError(name)
