"""Unit tests for scripts/report.py outcome classification and rendering."""

from __future__ import annotations

import orjson

from scripts.health import Category, Phase, ProbeKind, RunReport, Severity, failed, passed
from scripts.report import Outcome, aggregate, classify, exit_code, write_report


def _report(phase: Phase, *results) -> RunReport:
    report = RunReport(phase)
    report.extend(list(results))
    return report


OK = passed(Category.CONTAINER, "gateway container", Severity.BLOCKING, "mcp-gateway-1 is running")
WARN = failed(
    Category.DATABASE,
    "postgres schema",
    Severity.ADVISORY,
    ProbeKind.SCHEMA_UNINITIALIZED,
    "no tables in schema 'public'",
    remediation="initialize the schema",
)
FAIL = failed(
    Category.NETWORK,
    "gateway tcp localhost:8811",
    Severity.BLOCKING,
    ProbeKind.SERVICE_UNREACHABLE,
    "not reachable at localhost:8811",
    remediation="restart the gateway service and inspect its logs",
)


class TestClassify:
    def test_no_results_is_success(self):
        assert classify([]) is Outcome.SUCCESS

    def test_passing_only_is_success(self):
        assert classify([OK]) is Outcome.SUCCESS

    def test_advisory_failure_degrades(self):
        assert classify([OK, WARN]) is Outcome.DEGRADED

    def test_any_blocking_failure_fails(self):
        assert classify([OK, WARN, FAIL]) is Outcome.FAILED

    def test_exit_codes(self):
        assert exit_code(Outcome.SUCCESS) == 0
        assert exit_code(Outcome.DEGRADED) == 0
        assert exit_code(Outcome.FAILED) == 1


def test_aggregate_spans_phases():
    outcome, _ = aggregate([_report(Phase.PREREQUISITES, OK), _report(Phase.VERIFICATION, FAIL)])
    assert outcome is Outcome.FAILED


def test_aggregate_is_deterministic():
    reports = [_report(Phase.VERIFICATION, OK, WARN)]
    assert aggregate(reports) == aggregate(reports)


def test_failed_summary_lists_remediation_and_hides_endpoints():
    _, rendered = aggregate(
        [_report(Phase.VERIFICATION, OK, FAIL)], endpoints={"gateway": "tcp://localhost:8811"}
    )
    assert "Outcome: FAILED" in rendered
    assert "Blocking (1):" in rendered
    assert "fix: restart the gateway service" in rendered
    assert "Access endpoints" not in rendered


def test_degraded_summary_lists_warnings_and_endpoints():
    _, rendered = aggregate(
        [_report(Phase.VERIFICATION, OK, WARN)],
        endpoints={"gateway": "tcp://localhost:8811", "inspector": "http://localhost:5173"},
    )
    assert "Outcome: DEGRADED" in rendered
    assert "Warnings (1):" in rendered
    assert "Access endpoints:" in rendered
    assert "http://localhost:5173" in rendered
    assert "━━━ Verification ━━━" in rendered


def test_empty_phase_renders_placeholder():
    _, rendered = aggregate([_report(Phase.LAUNCH)])
    assert "(no checks ran)" in rendered
    assert "All checks passed" in rendered


def test_write_report_json(tmp_path):
    path = write_report(
        tmp_path / "build" / "run_report.json",
        [_report(Phase.VERIFICATION, OK, FAIL)],
        Outcome.FAILED,
    )
    payload = orjson.loads(path.read_bytes())
    assert payload["outcome"] == "FAILED"
    results = payload["phases"][0]["results"]
    assert payload["phases"][0]["phase"] == "verification"
    assert [r["kind"] for r in results] == [None, "ServiceUnreachable"]
    assert results[1]["severity"] == "blocking"
