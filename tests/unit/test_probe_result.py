"""Unit tests for the ProbeResult value type and the RunReport sink."""

from __future__ import annotations

import dataclasses
import threading

import pytest

from scripts.health import (
    Category,
    Phase,
    ProbeKind,
    ProbeResult,
    RunReport,
    Severity,
    failed,
    passed,
)


def test_probe_result_is_immutable():
    result = passed(Category.NETWORK, "gateway tcp", Severity.BLOCKING, "ok")
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.severity = Severity.ADVISORY  # type: ignore[misc]


def test_failed_result_carries_kind_and_remediation():
    result = failed(
        Category.DATABASE,
        "postgres readiness",
        Severity.BLOCKING,
        ProbeKind.DATABASE_NOT_READY,
        "not accepting connections",
        remediation="restart the service",
    )
    assert result.passed is False
    assert result.is_blocking_failure
    assert not result.is_advisory_failure
    assert result.kind is ProbeKind.DATABASE_NOT_READY
    assert result.remediation == "restart the service"


def test_passing_blocking_probe_is_not_a_blocking_failure():
    result = passed(Category.CONTAINER, "gateway container", Severity.BLOCKING, "running")
    assert not result.is_blocking_failure
    assert result.kind is None


def test_str_marks_status():
    ok = passed(Category.RESOURCE, "Free disk space", Severity.ADVISORY, "10GB free")
    warn = failed(Category.RESOURCE, "Free disk space", Severity.ADVISORY, ProbeKind.RESOURCE, "low")
    fail = failed(
        Category.NETWORK,
        "gateway tcp",
        Severity.BLOCKING,
        ProbeKind.SERVICE_UNREACHABLE,
        "refused",
        detail="[Errno 111] Connection refused",
    )
    assert "[PASS]" in str(ok)
    assert "[WARN]" in str(warn)
    assert "[FAIL]" in str(fail)
    assert "Connection refused" in str(fail)


def test_run_report_splits_blocking_and_advisory():
    report = RunReport(Phase.VERIFICATION)
    report.add(passed(Category.CONTAINER, "a", Severity.BLOCKING, "ok"))
    report.add(failed(Category.NETWORK, "b", Severity.ADVISORY, ProbeKind.SERVICE_UNHEALTHY, "500"))
    assert report.passed
    assert [r.name for r in report.advisory] == ["b"]
    report.add(failed(Category.NETWORK, "c", Severity.BLOCKING, ProbeKind.SERVICE_UNREACHABLE, "x"))
    assert not report.passed
    assert [r.name for r in report.blocking] == ["c"]


def test_run_report_concurrent_appends_are_not_lost():
    report = RunReport(Phase.VERIFICATION)

    def worker(idx: int) -> None:
        for n in range(200):
            report.add(passed(Category.NETWORK, f"w{idx}-{n}", Severity.ADVISORY, "ok"))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(report.results) == 1600


def test_keys_ignore_message_and_order():
    first = RunReport(Phase.VERIFICATION)
    second = RunReport(Phase.VERIFICATION)
    a = passed(Category.CONTAINER, "a", Severity.BLOCKING, "running since 10:00")
    b = failed(Category.DATABASE, "b", Severity.ADVISORY, ProbeKind.SCHEMA_UNINITIALIZED, "empty")
    first.extend([a, b])
    second.extend([b, ProbeResult(a.category, a.name, a.severity, a.passed, "running since 10:05")])
    assert first.keys() == second.keys()
