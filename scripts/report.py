"""
scripts/report.py — Fold RunReports into one outcome and an operator summary.

aggregate() is pure: no I/O, deterministic for a given list of reports.
  FAILED    any failing blocking result
  DEGRADED  only failing advisory results
  SUCCESS   no failing results
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import orjson

from scripts.health import Phase, ProbeResult, RunReport

LINE = "╔══════════════════════════════════════════════════════════╗"
LINE_END = "╚══════════════════════════════════════════════════════════╝"

PHASE_LABELS = {
    Phase.PREREQUISITES: "Prerequisites",
    Phase.LAUNCH: "Launch",
    Phase.VERIFICATION: "Verification",
}


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    DEGRADED = "DEGRADED"
    FAILED = "FAILED"


def classify(results: list[ProbeResult]) -> Outcome:
    if any(r.is_blocking_failure for r in results):
        return Outcome.FAILED
    if any(r.is_advisory_failure for r in results):
        return Outcome.DEGRADED
    return Outcome.SUCCESS


def exit_code(outcome: Outcome) -> int:
    return 1 if outcome is Outcome.FAILED else 0


def _render_phase(report: RunReport) -> list[str]:
    lines = [f"\n━━━ {PHASE_LABELS[report.phase]} ━━━"]
    lines.extend(str(r) for r in report.results)
    if not report.results:
        lines.append("  (no checks ran)")
    return lines


def aggregate(
    reports: list[RunReport],
    endpoints: dict[str, str] | None = None,
) -> tuple[Outcome, str]:
    """Return (outcome, rendered summary) for every result across reports."""
    results = [r for report in reports for r in report.results]
    outcome = classify(results)
    blocking = [r for r in results if r.is_blocking_failure]
    advisory = [r for r in results if r.is_advisory_failure]
    passed_count = sum(1 for r in results if r.passed)

    lines: list[str] = []
    for report in reports:
        lines.extend(_render_phase(report))

    lines.append("")
    lines.append(LINE)
    lines.append(f"  Outcome: {outcome.value}  ({passed_count}/{len(results)} checks passed)")
    lines.append(LINE_END)

    if blocking:
        lines.append(f"\nBlocking ({len(blocking)}):")
        for r in blocking:
            lines.append(f"  ✗ {r.name}: {r.message}")
            if r.remediation:
                lines.append(f"      fix: {r.remediation}")
    if advisory:
        lines.append(f"\nWarnings ({len(advisory)}):")
        for r in advisory:
            lines.append(f"  ! {r.name}: {r.message}")

    if outcome is not Outcome.FAILED and endpoints:
        lines.append("\nAccess endpoints:")
        width = max(len(name) for name in endpoints)
        for name in sorted(endpoints):
            lines.append(f"  {name.ljust(width)}  {endpoints[name]}")

    if outcome is Outcome.SUCCESS:
        lines.append("\nAll checks passed ✓")
    elif outcome is Outcome.DEGRADED:
        lines.append("\nCluster usable with warnings, see [WARN] lines above")
    else:
        lines.append("\nFAILED: see [FAIL] lines above and re-run after applying the fixes")

    return outcome, "\n".join(lines)


def report_payload(reports: list[RunReport], outcome: Outcome) -> dict:
    return {
        "outcome": outcome.value,
        "phases": [
            {
                "phase": report.phase.value,
                "timestamp": report.timestamp.isoformat(),
                "results": [
                    {
                        "category": r.category.value,
                        "name": r.name,
                        "severity": r.severity.value,
                        "passed": r.passed,
                        "message": r.message,
                        "remediation": r.remediation,
                        "kind": r.kind.value if r.kind else None,
                    }
                    for r in report.results
                ],
            }
            for report in reports
        ],
    }


def write_report(path: str | Path, reports: list[RunReport], outcome: Outcome) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        orjson.dumps(report_payload(reports, outcome), option=orjson.OPT_INDENT_2)
    )
    return path
