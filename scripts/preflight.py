#!/usr/bin/env python3
"""
scripts/preflight.py — Can this machine run the cluster?

Runs a fixed battery of read-only host checks. No check short-circuits
another, so a missing runtime still reports ports, disk and memory.

  Check                      Severity on failure
  container runtime          blocking
  compose tool               blocking
  shell/tooling version      advisory
  required ports free        advisory
  free disk space            blocking
  available memory           advisory

Usage:
    python3 scripts/preflight.py         # reads .env from repo root
    cluster-preflight                    # installed entry point

Importable (used by the launcher):
    from scripts.preflight import validate
    report = validate(cfg)
"""

from __future__ import annotations

import pathlib
import re
import subprocess
import sys

_ROOT = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(_ROOT))

from config.settings import Settings, load_settings  # noqa: E402
from scripts.health import (  # noqa: E402
    Category,
    Phase,
    ProbeKind,
    ProbeResult,
    RunReport,
    Severity,
    failed,
    passed,
)
from scripts.health import network as health_network  # noqa: E402
from scripts.health import resources as health_resources  # noqa: E402
from scripts.health import runtime as health_runtime  # noqa: E402
from scripts.report import aggregate, exit_code  # noqa: E402

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def _parse_version(text: str) -> tuple[int, ...] | None:
    match = _VERSION_RE.search(text)
    if not match:
        return None
    return tuple(int(part) for part in match.groups() if part is not None)


def check_shell_version(cfg: Settings) -> ProbeResult:
    tool = cfg.SHELL_VERSION_COMMAND[0]
    name = f"{tool} version"
    remediation = f"upgrade {tool} to {cfg.MIN_SHELL_VERSION} or newer"
    try:
        result = subprocess.run(
            cfg.SHELL_VERSION_COMMAND,
            capture_output=True,
            text=True,
            timeout=cfg.COMMAND_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.ADVISORY,
            ProbeKind.ENVIRONMENT,
            f"'{tool}' not found on PATH",
            remediation=remediation,
        )
    except Exception as e:  # noqa: BLE001
        return failed(
            Category.PREREQUISITE, name, Severity.ADVISORY, ProbeKind.ENVIRONMENT, f"error: {e}"
        )

    version = _parse_version(result.stdout + result.stderr)
    if version is None:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.ADVISORY,
            ProbeKind.ENVIRONMENT,
            "could not determine version",
            remediation=remediation,
        )
    shown = ".".join(str(p) for p in version)
    if version < cfg.min_shell_version_tuple:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.ADVISORY,
            ProbeKind.ENVIRONMENT,
            f"{shown} is below minimum {cfg.MIN_SHELL_VERSION}",
            remediation=remediation,
        )
    return passed(Category.PREREQUISITE, name, Severity.ADVISORY, f"{shown} (min {cfg.MIN_SHELL_VERSION})")


def validate(cfg: Settings | None = None) -> RunReport:
    """Run every prerequisite check and return the prerequisites RunReport."""
    if cfg is None:
        cfg = load_settings()

    report = RunReport(Phase.PREREQUISITES)
    report.add(health_runtime.check_runtime(cfg))
    report.add(health_runtime.check_compose(cfg))
    report.add(check_shell_version(cfg))
    for port in cfg.REQUIRED_PORTS:
        report.add(health_network.check_port_free(port))
    report.add(
        health_resources.check_disk(cfg.MIN_DISK_GB, Severity.BLOCKING, Category.PREREQUISITE)
    )
    report.add(health_resources.check_memory(cfg.MIN_MEMORY_GB))
    return report


def main() -> None:
    try:
        cfg = load_settings()
    except ValueError as exc:
        print(f"ERROR: invalid configuration\n{exc}", file=sys.stderr)
        sys.exit(1)

    outcome, rendered = aggregate([validate(cfg)])
    print(rendered)
    sys.exit(exit_code(outcome))


if __name__ == "__main__":
    main()
