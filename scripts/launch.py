#!/usr/bin/env python3
"""
scripts/launch.py — Bring the cluster up, then verify it.

Phases run strictly in order; each depends on the side effects of the one
before it:

  INIT → PREREQ_CHECK → [CLEAN] → [BUILD] → CONFIG_ENSURE → START → SETTLE
       → VERIFY → REPORT → SUCCESS | DEGRADED | FAILED

Blocking prerequisites, a failed image build, or a runtime that cannot start
the cluster abort to FAILED with exit 1. Config and workspace gaps are fixed
automatically and reported as warnings.

Usage:
    python3 scripts/launch.py                    # start + verify
    python3 scripts/launch.py --clean --build    # tear down, rebuild, start
    python3 scripts/launch.py --profile debug    # enable a compose profile
    python3 scripts/launch.py --wait             # poll until stable instead of a fixed delay
"""

from __future__ import annotations

import argparse
import os
import pathlib
import shutil
import subprocess
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

_ROOT = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(_ROOT))

from config.settings import Settings, load_settings, read_env_file  # noqa: E402
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
from scripts.health import runtime as health_runtime  # noqa: E402
from scripts.preflight import validate  # noqa: E402
from scripts.report import Outcome, aggregate, exit_code, write_report  # noqa: E402
from scripts.service_catalog import ServiceDescriptor, parse_catalog  # noqa: E402
from scripts.verify import verify, wait_until_stable  # noqa: E402


class ClusterPhase(Enum):
    INIT = "init"
    PREREQ_CHECK = "prereq-check"
    CLEAN = "clean"
    BUILD = "build"
    CONFIG_ENSURE = "config-ensure"
    START = "start"
    SETTLE = "settle"
    VERIFY = "verify"
    REPORT = "report"
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"


TERMINAL_PHASES = {
    Outcome.SUCCESS: ClusterPhase.SUCCESS,
    Outcome.DEGRADED: ClusterPhase.DEGRADED,
    Outcome.FAILED: ClusterPhase.FAILED,
}


@dataclass(frozen=True)
class LaunchOptions:
    build: bool = False
    clean: bool = False
    profile: str | None = None
    settle_seconds: float | None = None
    wait: bool = False


def _command_result(
    name: str,
    severity: Severity,
    result: subprocess.CompletedProcess,
    ok_message: str,
    fail_message: str,
    remediation: str,
) -> ProbeResult:
    if result.returncode == 0:
        return passed(Category.CONTAINER, name, severity, ok_message)
    return failed(
        Category.CONTAINER,
        name,
        severity,
        ProbeKind.ENVIRONMENT,
        f"{fail_message} (exit {result.returncode})",
        remediation=remediation,
        detail=(result.stdout + "\n" + result.stderr).strip()[-500:] or None,
    )


class ClusterLauncher:
    """Drives one bring-up. `phase` and `transitions` record where it got to."""

    def __init__(
        self,
        cfg: Settings,
        root: pathlib.Path = _ROOT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cfg = cfg
        self.root = root
        self._sleep = sleep
        self.phase = ClusterPhase.INIT
        self.transitions: list[ClusterPhase] = [ClusterPhase.INIT]
        self.prerequisites: RunReport | None = None

    def _enter(self, phase: ClusterPhase) -> None:
        self.phase = phase
        self.transitions.append(phase)
        print(f"\n━━━ {phase.value} ━━━")

    # -------------------------------------------------------------------------
    # Phase steps
    # -------------------------------------------------------------------------

    def _run(self, compose_args: list[str], command: list[str], timeout: float):
        """Run a compose command. Returns (result, None) or (None, error message)."""
        try:
            return health_runtime.run_compose(compose_args, command, timeout), None
        except FileNotFoundError:
            message = f"'{compose_args[0]}' not found on PATH"
        except subprocess.TimeoutExpired:
            message = f"timed out ({timeout:g}s)"
        except Exception as e:  # noqa: BLE001
            message = f"error: {e}"
        return None, message

    def _clean(self, compose_args: list[str]) -> list[ProbeResult]:
        results = []
        result, error = self._run(
            compose_args,
            ["down", "--volumes", "--remove-orphans"],
            self.cfg.COMMAND_TIMEOUT_SECONDS,
        )
        if error:
            results.append(
                failed(
                    Category.CONTAINER, "Tear down", Severity.ADVISORY, ProbeKind.ENVIRONMENT, error
                )
            )
        else:
            results.append(
                _command_result(
                    "Tear down",
                    Severity.ADVISORY,
                    result,
                    "containers and volumes removed",
                    "compose down failed",
                    "remove leftover containers manually: docker ps -a",
                )
            )

        try:
            prune = subprocess.run(
                [self.cfg.RUNTIME_COMMAND, "system", "prune", "-f"],
                capture_output=True,
                text=True,
                timeout=self.cfg.COMMAND_TIMEOUT_SECONDS,
            )
        except Exception as e:  # noqa: BLE001
            results.append(
                failed(
                    Category.CONTAINER, "Prune", Severity.ADVISORY, ProbeKind.ENVIRONMENT, f"error: {e}"
                )
            )
        else:
            results.append(
                _command_result(
                    "Prune",
                    Severity.ADVISORY,
                    prune,
                    "unused runtime data pruned",
                    "system prune failed",
                    f"run '{self.cfg.RUNTIME_COMMAND} system prune' manually",
                )
            )
        return results

    def _build(self, compose_args: list[str]) -> ProbeResult:
        remediation = "inspect the build output, fix the Dockerfile, and re-run with --build"
        result, error = self._run(
            compose_args, ["build", "--no-cache"], self.cfg.BUILD_TIMEOUT_SECONDS
        )
        if error:
            return failed(
                Category.CONTAINER,
                "Image build",
                Severity.BLOCKING,
                ProbeKind.ENVIRONMENT,
                error,
                remediation=remediation,
            )
        return _command_result(
            "Image build",
            Severity.BLOCKING,
            result,
            "images rebuilt without cache",
            "image build failed",
            remediation,
        )

    def _ensure_config(self) -> list[ProbeResult]:
        results = []
        env_path = self.root / self.cfg.ENV_FILE
        template_path = self.root / self.cfg.ENV_TEMPLATE
        if env_path.exists():
            results.append(
                passed(Category.PREREQUISITE, "Environment file", Severity.ADVISORY, f"{env_path.name} present")
            )
        elif template_path.exists():
            shutil.copyfile(template_path, env_path)
            results.append(
                failed(
                    Category.PREREQUISITE,
                    "Environment file",
                    Severity.ADVISORY,
                    ProbeKind.CONFIG_MISSING,
                    f"created {env_path.name} from {template_path.name}",
                    remediation=f"edit {env_path.name} and fill in the REQUIRED values",
                )
            )
        else:
            results.append(
                failed(
                    Category.PREREQUISITE,
                    "Environment file",
                    Severity.ADVISORY,
                    ProbeKind.CONFIG_MISSING,
                    f"neither {env_path.name} nor {template_path.name} exists",
                    remediation=f"restore {template_path.name} from version control",
                )
            )

        workspace = self.root / self.cfg.WORKSPACE_DIR
        if workspace.is_dir():
            results.append(
                passed(Category.PREREQUISITE, "Workspace directory", Severity.ADVISORY, f"{workspace.name}/ present")
            )
        else:
            workspace.mkdir(parents=True, exist_ok=True)
            results.append(
                passed(Category.PREREQUISITE, "Workspace directory", Severity.ADVISORY, f"created {workspace.name}/")
            )

        # presence only, values are never echoed
        values = {**read_env_file(env_path), **os.environ}
        for key in self.cfg.REQUIRED_SECRETS:
            if values.get(key, "").strip():
                results.append(
                    passed(Category.PREREQUISITE, f"Secret {key}", Severity.ADVISORY, "set")
                )
            else:
                results.append(
                    failed(
                        Category.PREREQUISITE,
                        f"Secret {key}",
                        Severity.ADVISORY,
                        ProbeKind.CONFIG_MISSING,
                        "not set",
                        remediation=f"set {key} in {env_path.name}",
                    )
                )
        return results

    def _start(self, compose_args: list[str]) -> ProbeResult:
        remediation = f"make sure the {self.cfg.RUNTIME_COMMAND} daemon is running, then inspect logs: docker compose logs"
        result, error = self._run(
            compose_args, ["up", "-d"], self.cfg.BUILD_TIMEOUT_SECONDS
        )
        if error:
            return failed(
                Category.CONTAINER,
                "Cluster start",
                Severity.BLOCKING,
                ProbeKind.ENVIRONMENT,
                error,
                remediation=remediation,
            )
        return _command_result(
            "Cluster start",
            Severity.BLOCKING,
            result,
            "cluster started (detached)",
            "compose up failed",
            remediation,
        )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def launch(self, options: LaunchOptions) -> RunReport:
        """Run PREREQ_CHECK through SETTLE. On abort, `phase` is FAILED."""
        report = RunReport(Phase.LAUNCH)
        compose_args = health_runtime.build_compose_args(self.cfg, options.profile)

        self._enter(ClusterPhase.PREREQ_CHECK)
        self.prerequisites = validate(self.cfg)
        if not self.prerequisites.passed:
            failing = ", ".join(r.name for r in self.prerequisites.blocking)
            report.add(
                failed(
                    Category.PREREQUISITE,
                    "Prerequisite gate",
                    Severity.BLOCKING,
                    ProbeKind.ENVIRONMENT,
                    f"launch aborted, blocking prerequisite(s): {failing}",
                    remediation="fix the [FAIL] prerequisites (cluster-preflight) and re-run",
                )
            )
            self._enter(ClusterPhase.FAILED)
            return report

        if options.clean:
            self._enter(ClusterPhase.CLEAN)
            report.extend(self._clean(compose_args))

        if options.build:
            self._enter(ClusterPhase.BUILD)
            built = self._build(compose_args)
            report.add(built)
            if not built.passed:
                self._enter(ClusterPhase.FAILED)
                return report

        self._enter(ClusterPhase.CONFIG_ENSURE)
        report.extend(self._ensure_config())

        self._enter(ClusterPhase.START)
        started = self._start(compose_args)
        report.add(started)
        if not started.passed:
            self._enter(ClusterPhase.FAILED)
            return report

        self._enter(ClusterPhase.SETTLE)
        settle = self.cfg.SETTLE_SECONDS if options.settle_seconds is None else options.settle_seconds
        if settle > 0 and not options.wait:
            print(f"  settling for {settle:g}s")
            self._sleep(settle)
        return report

    def run(
        self, options: LaunchOptions, descriptors: list[ServiceDescriptor]
    ) -> tuple[Outcome, list[RunReport]]:
        """Launch, verify and classify. The launcher ends in a terminal phase."""
        launch_report = self.launch(options)
        reports = [self.prerequisites, launch_report] if self.prerequisites else [launch_report]
        if self.phase is ClusterPhase.FAILED:
            outcome, _ = aggregate(reports)
            return outcome, reports

        self._enter(ClusterPhase.VERIFY)
        compose_args = health_runtime.build_compose_args(self.cfg, options.profile)
        if options.wait:
            verification = wait_until_stable(descriptors, self.cfg, compose_args)
        else:
            verification = verify(descriptors, self.cfg, compose_args)
        reports.append(verification)

        self._enter(ClusterPhase.REPORT)
        outcome, _ = aggregate(reports)
        self._enter(TERMINAL_PHASES[outcome])
        return outcome, reports


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Check prerequisites, start the cluster, and verify its health."
    )
    parser.add_argument("--build", action="store_true", help="Rebuild all images without cache.")
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Tear down containers and volumes and prune before starting.",
    )
    parser.add_argument("--profile", help="Named compose profile to enable.")
    parser.add_argument(
        "--settle",
        type=float,
        default=None,
        help="Seconds to wait after start before verifying (default: SETTLE_SECONDS).",
    )
    parser.add_argument(
        "--wait",
        action="store_true",
        help="Poll verification until stable or WAIT_TIMEOUT_SECONDS instead of a fixed delay.",
    )
    args = parser.parse_args()

    try:
        cfg = load_settings()
        catalog = parse_catalog(_ROOT / cfg.SERVICES_FILE)
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    options = LaunchOptions(
        build=args.build,
        clean=args.clean,
        profile=args.profile,
        settle_seconds=args.settle,
        wait=args.wait,
    )
    launcher = ClusterLauncher(cfg)
    outcome, reports = launcher.run(options, catalog.services)

    _, rendered = aggregate(reports, endpoints=catalog.endpoints)
    print(rendered)
    write_report(_ROOT / cfg.REPORT_PATH, reports, outcome)
    sys.exit(exit_code(outcome))


if __name__ == "__main__":
    main()
