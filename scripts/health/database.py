"""
scripts/health/database.py — Database readiness and schema checks.

Calls docker compose exec to run pg_isready and psql inside the database
container, the same way the broker checks exec into the broker container.
"""

from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING

from scripts.health import Category, ProbeKind, ProbeResult, Severity, failed, passed

if TYPE_CHECKING:
    from scripts.service_catalog import DatabaseProbe


def run_checks(
    service: str,
    probe: DatabaseProbe,
    compose_args: list[str],
    timeout_seconds: float,
) -> list[ProbeResult]:
    """Readiness first; the schema listing only runs against a ready database."""
    ready = _check_ready(service, probe, compose_args, timeout_seconds)
    if not ready.passed:
        return [ready]
    return [ready, _check_schema(service, probe, compose_args, timeout_seconds)]


def _check_ready(
    service: str, probe: DatabaseProbe, compose_args: list[str], timeout_seconds: float
) -> ProbeResult:
    name = f"{service} readiness"
    remediation = f"restart the database service and inspect logs: docker compose logs {probe.service}"
    try:
        result = subprocess.run(
            compose_args
            + ["exec", "-T", probe.service, "pg_isready", "-U", probe.user, "-d", probe.database],
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        return failed(
            Category.DATABASE,
            name,
            Severity.BLOCKING,
            ProbeKind.DATABASE_NOT_READY,
            f"timed out ({timeout_seconds:g}s)",
            remediation=remediation,
        )
    except Exception as e:  # noqa: BLE001
        return failed(
            Category.DATABASE,
            name,
            Severity.BLOCKING,
            ProbeKind.DATABASE_NOT_READY,
            f"error: {e}",
            remediation=remediation,
        )

    if result.returncode != 0:
        return failed(
            Category.DATABASE,
            name,
            Severity.BLOCKING,
            ProbeKind.DATABASE_NOT_READY,
            "not accepting connections (pg_isready returned non-zero)",
            remediation=remediation,
            detail=(result.stdout + "\n" + result.stderr).strip()[:500] or None,
        )
    return passed(Category.DATABASE, name, Severity.BLOCKING, "accepting connections")


def _check_schema(
    service: str, probe: DatabaseProbe, compose_args: list[str], timeout_seconds: float
) -> ProbeResult:
    name = f"{service} schema"
    remediation = "initialize the schema (run the migrations) or recreate the volume with --clean"
    query = (
        "SELECT table_name FROM information_schema.tables "
        f"WHERE table_schema = '{probe.schema_name}' ORDER BY table_name"
    )
    try:
        result = subprocess.run(
            compose_args
            + [
                "exec",
                "-T",
                probe.service,
                "psql",
                "-U",
                probe.user,
                "-d",
                probe.database,
                "-tAc",
                query,
            ],
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        return failed(
            Category.DATABASE,
            name,
            Severity.ADVISORY,
            ProbeKind.SCHEMA_UNINITIALIZED,
            f"schema listing timed out ({timeout_seconds:g}s)",
            remediation=remediation,
        )
    except Exception as e:  # noqa: BLE001
        return failed(
            Category.DATABASE,
            name,
            Severity.ADVISORY,
            ProbeKind.SCHEMA_UNINITIALIZED,
            f"error: {e}",
            remediation=remediation,
        )

    if result.returncode != 0:
        return failed(
            Category.DATABASE,
            name,
            Severity.ADVISORY,
            ProbeKind.SCHEMA_UNINITIALIZED,
            "schema listing failed",
            remediation=remediation,
            detail=result.stderr.strip()[:500] or None,
        )

    tables = {line.strip() for line in result.stdout.splitlines() if line.strip()}
    if not tables:
        return failed(
            Category.DATABASE,
            name,
            Severity.ADVISORY,
            ProbeKind.SCHEMA_UNINITIALIZED,
            f"no tables in schema '{probe.schema_name}'",
            remediation=remediation,
        )
    missing = sorted(set(probe.expected_tables) - tables)
    if missing:
        return failed(
            Category.DATABASE,
            name,
            Severity.ADVISORY,
            ProbeKind.SCHEMA_UNINITIALIZED,
            f"missing table(s): {', '.join(missing)}",
            remediation=remediation,
        )
    return passed(
        Category.DATABASE, name, Severity.ADVISORY, f"{len(tables)} table(s) in '{probe.schema_name}'"
    )
