"""
scripts/health/runtime.py — Container runtime and compose tool boundary.

Wraps the docker / docker compose CLIs: daemon and tool availability checks
used by preflight, the typed container listing used by the verifier, and the
compose invocation helper the launcher drives.
"""

from __future__ import annotations

import json
import subprocess
from typing import TYPE_CHECKING

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from scripts.health import Category, ProbeKind, ProbeResult, Severity, failed, passed

if TYPE_CHECKING:
    from config.settings import Settings
    from scripts.service_catalog import ServiceDescriptor


class ContainerListError(ValueError):
    """The runtime answered, but not with a list of {name, state} entries."""


class ContainerState(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=1, validation_alias=AliasChoices("Name", "Names", "name"))
    state: str = Field(validation_alias=AliasChoices("State", "state"))

    @property
    def names(self) -> list[str]:
        # `docker ps` joins aliases with commas
        return [n.strip().lstrip("/") for n in self.name.split(",") if n.strip()]


def build_compose_args(cfg: Settings, profile: str | None = None) -> list[str]:
    """Build the compose argument prefix (file, project name, profile)."""
    args = cfg.compose_base + ["-f", cfg.COMPOSE_FILE]
    if cfg.COMPOSE_PROJECT_NAME:
        args += ["-p", cfg.COMPOSE_PROJECT_NAME]
    profile = profile or cfg.COMPOSE_PROFILE
    if profile:
        args += ["--profile", profile]
    return args


def parse_container_list(raw: str) -> list[ContainerState]:
    """Decode `docker ps --format '{{json .}}'` output.

    Accepts either a JSON array or one JSON object per line (the two shapes
    docker and compose have emitted across versions).

    Raises:
        ContainerListError: if the payload is not JSON or an entry lacks name/state.
    """
    text = raw.strip()
    if not text:
        return []
    try:
        if text.startswith("["):
            payload = json.loads(text)
        else:
            payload = [json.loads(line) for line in text.splitlines() if line.strip()]
    except json.JSONDecodeError as exc:
        raise ContainerListError(f"container list is not JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise ContainerListError("container list root must be an array")
    try:
        return [ContainerState.model_validate(entry) for entry in payload]
    except ValidationError as exc:
        raise ContainerListError(f"unexpected container entry shape: {exc}") from exc


def list_containers(cfg: Settings, timeout_seconds: float) -> list[ContainerState]:
    """List every container the runtime knows about, running or not.

    Raises:
        ContainerListError: on a malformed response.
        subprocess.SubprocessError / OSError: if the runtime cannot be invoked.
    """
    result = subprocess.run(
        [cfg.RUNTIME_COMMAND, "ps", "--all", "--no-trunc", "--format", "{{json .}}"],
        capture_output=True,
        text=True,
        timeout=timeout_seconds,
    )
    if result.returncode != 0:
        raise ContainerListError(
            f"{cfg.RUNTIME_COMMAND} ps exited {result.returncode}: {result.stderr.strip()[:300]}"
        )
    return parse_container_list(result.stdout)


def check_runtime(cfg: Settings) -> ProbeResult:
    name = "Container runtime"
    remediation = f"start the {cfg.RUNTIME_COMMAND} daemon (or Docker Desktop) and retry"
    try:
        result = subprocess.run(
            [cfg.RUNTIME_COMMAND, "info", "--format", "{{.ServerVersion}}"],
            capture_output=True,
            text=True,
            timeout=cfg.COMMAND_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.BLOCKING,
            ProbeKind.ENVIRONMENT,
            f"'{cfg.RUNTIME_COMMAND}' not found on PATH",
            remediation=f"install {cfg.RUNTIME_COMMAND} and make sure it is on PATH",
        )
    except subprocess.TimeoutExpired:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.BLOCKING,
            ProbeKind.ENVIRONMENT,
            f"daemon did not answer within {cfg.COMMAND_TIMEOUT_SECONDS}s",
            remediation=remediation,
        )
    except Exception as e:  # noqa: BLE001
        return failed(
            Category.PREREQUISITE, name, Severity.BLOCKING, ProbeKind.ENVIRONMENT, f"error: {e}"
        )

    if result.returncode != 0:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.BLOCKING,
            ProbeKind.ENVIRONMENT,
            "daemon unreachable",
            remediation=remediation,
            detail=result.stderr.strip()[:500] or None,
        )
    version = result.stdout.strip() or "?"
    return passed(Category.PREREQUISITE, name, Severity.BLOCKING, f"reachable (server {version})")


def check_compose(cfg: Settings) -> ProbeResult:
    name = "Compose tool"
    remediation = "install the Docker Compose v2 plugin (or set COMPOSE_COMMAND)"
    try:
        result = subprocess.run(
            cfg.compose_base + ["version", "--short"],
            capture_output=True,
            text=True,
            timeout=cfg.COMMAND_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        if cfg.compose_base[0] == cfg.RUNTIME_COMMAND:
            # compose is a runtime plugin; the runtime check already blocks
            return failed(
                Category.PREREQUISITE,
                name,
                Severity.ADVISORY,
                ProbeKind.ENVIRONMENT,
                f"runtime missing ('{cfg.RUNTIME_COMMAND}' not found on PATH)",
                remediation=f"install {cfg.RUNTIME_COMMAND} with the Compose v2 plugin",
            )
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.BLOCKING,
            ProbeKind.ENVIRONMENT,
            f"'{cfg.COMPOSE_COMMAND}' not found on PATH",
            remediation=remediation,
        )
    except subprocess.TimeoutExpired:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.BLOCKING,
            ProbeKind.ENVIRONMENT,
            f"version query timed out ({cfg.COMMAND_TIMEOUT_SECONDS}s)",
            remediation=remediation,
        )
    except Exception as e:  # noqa: BLE001
        return failed(
            Category.PREREQUISITE, name, Severity.BLOCKING, ProbeKind.ENVIRONMENT, f"error: {e}"
        )

    version = result.stdout.strip()
    if result.returncode != 0 or not version:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.BLOCKING,
            ProbeKind.ENVIRONMENT,
            "version query failed",
            remediation=remediation,
            detail=result.stderr.strip()[:500] or None,
        )
    return passed(Category.PREREQUISITE, name, Severity.BLOCKING, f"present ({version})")


def probe_container(
    descriptor: ServiceDescriptor, containers: list[ContainerState]
) -> ProbeResult:
    """Container-liveness probe: the descriptor must match a running container."""
    name = f"{descriptor.name} container"
    matches = [c for c in containers if any(descriptor.match.matches(n) for n in c.names)]
    if not matches:
        return failed(
            Category.CONTAINER,
            name,
            Severity.BLOCKING,
            ProbeKind.SERVICE_MISSING,
            f"no container matches {descriptor.match.describe()}",
            remediation="start the cluster (cluster-launch) or rebuild with --build",
        )
    running = [c for c in matches if c.state.lower() == descriptor.expected_state]
    if not running:
        states = ", ".join(sorted({f"{c.names[0]}={c.state}" for c in matches}))
        return failed(
            Category.CONTAINER,
            name,
            Severity.BLOCKING,
            ProbeKind.SERVICE_NOT_RUNNING,
            f"not {descriptor.expected_state} ({states})",
            remediation=f"restart the service and inspect logs: docker logs {matches[0].names[0]}",
        )
    return passed(
        Category.CONTAINER,
        name,
        Severity.BLOCKING,
        f"{running[0].names[0]} is {descriptor.expected_state}",
    )


def run_compose(
    compose_args: list[str], command: list[str], timeout_seconds: float
) -> subprocess.CompletedProcess:
    """Run a compose subcommand. Errors propagate to the caller."""
    return subprocess.run(
        compose_args + command,
        capture_output=True,
        text=True,
        timeout=timeout_seconds,
    )
