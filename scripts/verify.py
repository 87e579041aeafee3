#!/usr/bin/env python3
"""
scripts/verify.py — Is the cluster healthy right now?

Probes every descriptor in config/services.yml concurrently:
  container liveness   blocking
  HTTP health          advisory
  TCP reachability     blocking
  database readiness   blocking   (schema presence: advisory)
  free disk            advisory   (once per run)

Every probe is observational and carries its own timeout, so total wall time
is bounded by the slowest probe rather than the sum.

Usage:
    python3 scripts/verify.py          # reads .env from repo root
    cluster-verify                     # installed entry point
"""

from __future__ import annotations

import pathlib
import subprocess
import sys
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

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
)
from scripts.health import database as health_database  # noqa: E402
from scripts.health import network as health_network  # noqa: E402
from scripts.health import resources as health_resources  # noqa: E402
from scripts.health import runtime as health_runtime  # noqa: E402
from scripts.report import aggregate, exit_code, write_report  # noqa: E402
from scripts.service_catalog import ServiceDescriptor, parse_catalog  # noqa: E402


def _snapshot_containers(
    cfg: Settings,
) -> tuple[list[health_runtime.ContainerState] | None, ProbeResult | None]:
    """List containers once per run; a failure becomes one EnvironmentError."""
    name = "Container list"
    remediation = f"check that the {cfg.RUNTIME_COMMAND} daemon is running ({cfg.RUNTIME_COMMAND} info)"
    try:
        return health_runtime.list_containers(cfg, cfg.PROBE_TIMEOUT_SECONDS), None
    except subprocess.TimeoutExpired:
        message = f"timed out ({cfg.PROBE_TIMEOUT_SECONDS:g}s)"
    except health_runtime.ContainerListError as e:
        message = str(e)
    except Exception as e:  # noqa: BLE001
        message = f"error: {e}"
    return None, failed(
        Category.CONTAINER,
        name,
        Severity.BLOCKING,
        ProbeKind.ENVIRONMENT,
        message,
        remediation=remediation,
    )


def _record(
    report: RunReport,
    label: str,
    category: Category,
    probe: Callable[..., ProbeResult | list[ProbeResult]],
    *args,
) -> None:
    """Run one check and add its result(s). A check that raises still yields one result."""
    try:
        outcome = probe(*args)
    except Exception as e:  # noqa: BLE001
        outcome = failed(
            category,
            label,
            Severity.BLOCKING,
            ProbeKind.ENVIRONMENT,
            f"check raised {type(e).__name__}: {e}",
            remediation="re-run cluster-verify; report the error if it persists",
        )
    if isinstance(outcome, list):
        report.extend(outcome)
    else:
        report.add(outcome)


def verify(
    descriptors: list[ServiceDescriptor],
    cfg: Settings | None = None,
    compose_args: list[str] | None = None,
) -> RunReport:
    """Run every probe for every descriptor and return the verification RunReport."""
    if cfg is None:
        cfg = load_settings()
    if compose_args is None:
        compose_args = health_runtime.build_compose_args(cfg)

    report = RunReport(Phase.VERIFICATION)
    containers, list_error = _snapshot_containers(cfg)
    if list_error is not None:
        report.add(list_error)

    pool = ThreadPoolExecutor(max_workers=cfg.MAX_PROBE_WORKERS, thread_name_prefix="probe")
    futures: list[Future] = []
    try:
        for descriptor in descriptors:
            if containers is not None:
                futures.append(
                    pool.submit(
                        _record,
                        report,
                        f"{descriptor.name} container",
                        Category.CONTAINER,
                        health_runtime.probe_container,
                        descriptor,
                        containers,
                    )
                )
            if descriptor.http is not None:
                futures.append(
                    pool.submit(
                        _record,
                        report,
                        f"{descriptor.name} http health",
                        Category.NETWORK,
                        health_network.probe_http,
                        descriptor.name,
                        descriptor.http,
                    )
                )
            if descriptor.tcp is not None:
                futures.append(
                    pool.submit(
                        _record,
                        report,
                        f"{descriptor.name} tcp {descriptor.tcp.host}:{descriptor.tcp.port}",
                        Category.NETWORK,
                        health_network.probe_tcp,
                        descriptor.name,
                        descriptor.tcp,
                    )
                )
            if descriptor.database is not None:
                futures.append(
                    pool.submit(
                        _record,
                        report,
                        f"{descriptor.name} readiness",
                        Category.DATABASE,
                        health_database.run_checks,
                        descriptor.name,
                        descriptor.database,
                        compose_args,
                        cfg.PROBE_TIMEOUT_SECONDS,
                    )
                )
        futures.append(
            pool.submit(
                _record,
                report,
                "Free disk space",
                Category.RESOURCE,
                health_resources.check_disk,
                cfg.VERIFY_MIN_DISK_GB,
                Severity.ADVISORY,
                Category.RESOURCE,
            )
        )
        for future in as_completed(futures):
            future.result()
    except BaseException:
        # in-flight probes are read-only and safe to abandon
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown()
    return report


def wait_until_stable(
    descriptors: list[ServiceDescriptor],
    cfg: Settings,
    compose_args: list[str] | None = None,
) -> RunReport:
    """Poll verify() until no blocking failure remains or WAIT_TIMEOUT_SECONDS elapses.

    Returns the last report either way; the caller decides what a timeout means.
    """
    deadline = time.time() + cfg.WAIT_TIMEOUT_SECONDS
    print(f"Waiting for cluster to stabilize (timeout {cfg.WAIT_TIMEOUT_SECONDS}s)")
    while True:
        report = verify(descriptors, cfg, compose_args)
        blocking = report.blocking
        remaining = int(deadline - time.time())
        if not blocking:
            print(f"  stable ({cfg.WAIT_TIMEOUT_SECONDS - remaining}s elapsed)")
            return report
        if remaining <= 0:
            print(f"  TIMEOUT: {len(blocking)} blocking check(s) still failing")
            return report
        names = ", ".join(r.name for r in blocking[:3])
        print(f"  waiting... ({remaining}s remaining) [{len(blocking)} blocking: {names}]")
        time.sleep(min(cfg.WAIT_POLL_SECONDS, max(remaining, 0)))


def main() -> None:
    try:
        cfg = load_settings()
        catalog = parse_catalog(_ROOT / cfg.SERVICES_FILE)
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    report = verify(catalog.services, cfg)
    outcome, rendered = aggregate([report], endpoints=catalog.endpoints)
    print(rendered)
    write_report(_ROOT / cfg.REPORT_PATH, [report], outcome)
    sys.exit(exit_code(outcome))


if __name__ == "__main__":
    main()
