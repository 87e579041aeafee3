"""
scripts/health/resources.py — Host disk and memory checks.

Disk uses shutil.disk_usage on the working directory; memory uses
psutil.virtual_memory().available so page cache counts as free.
"""

from __future__ import annotations

import shutil

import psutil

from scripts.health import Category, ProbeKind, ProbeResult, Severity, failed, passed

GIB = 1024**3


def check_disk(
    min_gb: float,
    severity: Severity,
    category: Category,
    path: str = ".",
) -> ProbeResult:
    name = "Free disk space"
    try:
        free_gb = shutil.disk_usage(path).free / GIB
    except OSError as e:
        return failed(
            category,
            name,
            severity,
            ProbeKind.RESOURCE,
            f"could not read disk usage for {path}",
            detail=str(e),
        )
    if free_gb < min_gb:
        return failed(
            category,
            name,
            severity,
            ProbeKind.RESOURCE,
            f"{free_gb:.1f}GB free, need at least {min_gb:g}GB",
            remediation="free disk space (docker system prune removes unused images)",
        )
    return passed(category, name, severity, f"{free_gb:.1f}GB free (min {min_gb:g}GB)")


def check_memory(min_gb: float) -> ProbeResult:
    name = "Available memory"
    try:
        available_gb = psutil.virtual_memory().available / GIB
    except Exception as e:  # noqa: BLE001
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.ADVISORY,
            ProbeKind.RESOURCE,
            f"error: {e}",
        )
    if available_gb < min_gb:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.ADVISORY,
            ProbeKind.RESOURCE,
            f"{available_gb:.1f}GB available, {min_gb:g}GB recommended",
            remediation="close memory-heavy applications or raise the runtime's memory limit",
        )
    return passed(
        Category.PREREQUISITE,
        name,
        Severity.ADVISORY,
        f"{available_gb:.1f}GB available (min {min_gb:g}GB)",
    )
