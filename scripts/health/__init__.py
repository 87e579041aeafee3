"""
scripts/health — Composable probe modules for the cluster tooling.

Every probe returns ProbeResult values; preflight.py, launch.py and verify.py
collect them into RunReport objects and report.py folds those into an outcome.

Usage:
    from scripts.health import ProbeResult, RunReport, Category, Severity
    from scripts.health.network import probe_tcp
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class Category(str, Enum):
    PREREQUISITE = "prerequisite"
    CONTAINER = "container"
    NETWORK = "network"
    DATABASE = "database"
    RESOURCE = "resource"


class Severity(str, Enum):
    BLOCKING = "blocking"
    ADVISORY = "advisory"


class ProbeKind(str, Enum):
    """Failure taxonomy. Passing results carry no kind."""

    ENVIRONMENT = "EnvironmentError"
    RESOURCE = "ResourceError"
    PORT_CONFLICT = "PortConflict"
    CONFIG_MISSING = "ConfigMissing"
    SERVICE_MISSING = "ServiceMissing"
    SERVICE_NOT_RUNNING = "ServiceNotRunning"
    SERVICE_UNHEALTHY = "ServiceUnhealthy"
    SERVICE_UNREACHABLE = "ServiceUnreachable"
    DATABASE_NOT_READY = "DatabaseNotReady"
    SCHEMA_UNINITIALIZED = "SchemaUninitialized"


class Phase(str, Enum):
    PREREQUISITES = "prerequisites"
    LAUNCH = "launch"
    VERIFICATION = "verification"


@dataclass(frozen=True)
class ProbeResult:
    category: Category
    name: str
    severity: Severity
    passed: bool
    message: str
    remediation: str | None = None
    kind: ProbeKind | None = None
    detail: str | None = None

    @property
    def is_blocking_failure(self) -> bool:
        return not self.passed and self.severity is Severity.BLOCKING

    @property
    def is_advisory_failure(self) -> bool:
        return not self.passed and self.severity is Severity.ADVISORY

    def key(self) -> tuple[str, str, str, bool]:
        """Identity used when comparing runs: (category, name, severity, passed)."""
        return (self.category.value, self.name, self.severity.value, self.passed)

    def __str__(self) -> str:
        if self.passed:
            status = "PASS"
        elif self.severity is Severity.BLOCKING:
            status = "FAIL"
        else:
            status = "WARN"
        line = f"  [{status}] {self.name}: {self.message}"
        if self.detail and not self.passed:
            line += f"\n         {self.detail}"
        return line


def passed(category: Category, name: str, severity: Severity, message: str) -> ProbeResult:
    return ProbeResult(category, name, severity, True, message)


def failed(
    category: Category,
    name: str,
    severity: Severity,
    kind: ProbeKind,
    message: str,
    remediation: str | None = None,
    detail: str | None = None,
) -> ProbeResult:
    return ProbeResult(
        category,
        name,
        severity,
        False,
        message,
        remediation=remediation,
        kind=kind,
        detail=detail,
    )


@dataclass
class RunReport:
    """Results of one phase. add() may be called from several probe threads."""

    phase: Phase
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    _results: list[ProbeResult] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, result: ProbeResult) -> None:
        with self._lock:
            self._results.append(result)

    def extend(self, results: list[ProbeResult]) -> None:
        with self._lock:
            self._results.extend(results)

    @property
    def results(self) -> tuple[ProbeResult, ...]:
        with self._lock:
            return tuple(self._results)

    @property
    def blocking(self) -> list[ProbeResult]:
        return [r for r in self.results if r.is_blocking_failure]

    @property
    def advisory(self) -> list[ProbeResult]:
        return [r for r in self.results if r.is_advisory_failure]

    @property
    def passed(self) -> bool:
        return not self.blocking

    def keys(self) -> list[tuple[str, str, str, bool]]:
        return sorted(r.key() for r in self.results)
