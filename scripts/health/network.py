"""
scripts/health/network.py — Port, TCP and HTTP probes.

HTTP health endpoints are best-effort diagnostics (advisory). A raw TCP port
with no higher-level health signal, such as the gateway's message port, is
load-bearing (blocking). Required-port checks run before start and only warn.
"""

from __future__ import annotations

import json
import socket
import urllib.error
import urllib.request
from typing import TYPE_CHECKING

from scripts.health import Category, ProbeKind, ProbeResult, Severity, failed, passed

if TYPE_CHECKING:
    from scripts.service_catalog import HttpProbe, TcpProbe


def check_port_free(port: int, host: str = "") -> ProbeResult:
    """Bind the port on every interface, without SO_REUSEADDR, so a listener
    on either 0.0.0.0 or 127.0.0.1 counts as a conflict.
    """
    name = f"Port {port}"
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, port))
    except OSError as e:
        return failed(
            Category.PREREQUISITE,
            name,
            Severity.ADVISORY,
            ProbeKind.PORT_CONFLICT,
            "already in use",
            remediation=f"stop the process bound to {port} (e.g. lsof -i :{port})",
            detail=str(e),
        )
    return passed(Category.PREREQUISITE, name, Severity.ADVISORY, "free")


def probe_tcp(service: str, probe: TcpProbe) -> ProbeResult:
    name = f"{service} tcp {probe.host}:{probe.port}"
    try:
        with socket.create_connection((probe.host, probe.port), timeout=probe.timeout):
            pass
    except socket.timeout:
        return failed(
            Category.NETWORK,
            name,
            Severity.BLOCKING,
            ProbeKind.SERVICE_UNREACHABLE,
            f"connect timed out ({probe.timeout:g}s)",
            remediation=f"restart the {service} service and inspect its logs",
        )
    except OSError as e:
        return failed(
            Category.NETWORK,
            name,
            Severity.BLOCKING,
            ProbeKind.SERVICE_UNREACHABLE,
            f"not reachable at {probe.host}:{probe.port}",
            remediation=f"restart the {service} service and inspect its logs",
            detail=str(e),
        )
    return passed(Category.NETWORK, name, Severity.BLOCKING, "accepting connections")


def _json_mismatch(body: bytes, expected: dict[str, str]) -> str | None:
    try:
        payload = json.loads(body)
    except ValueError:
        return "health payload is not JSON"
    if not isinstance(payload, dict):
        return "health payload is not a JSON object"
    for key, want in expected.items():
        got = payload.get(key)
        if str(got) != want:
            return f"{key}={got!r}, expected {want!r}"
    return None


def probe_http(service: str, probe: HttpProbe) -> ProbeResult:
    name = f"{service} http health"
    remediation = f"inspect logs for {service}; the health endpoint is {probe.url}"
    try:
        with urllib.request.urlopen(probe.url, timeout=probe.timeout) as resp:
            status = resp.status
            body = resp.read() if probe.expect_json else b""
    except urllib.error.HTTPError as e:
        return failed(
            Category.NETWORK,
            name,
            Severity.ADVISORY,
            ProbeKind.SERVICE_UNHEALTHY,
            f"unexpected status {e.code}",
            remediation=remediation,
        )
    except urllib.error.URLError as e:
        return failed(
            Category.NETWORK,
            name,
            Severity.ADVISORY,
            ProbeKind.SERVICE_UNHEALTHY,
            f"not reachable at {probe.url}",
            remediation=remediation,
            detail=str(e.reason),
        )
    except (socket.timeout, TimeoutError):
        return failed(
            Category.NETWORK,
            name,
            Severity.ADVISORY,
            ProbeKind.SERVICE_UNHEALTHY,
            f"timed out ({probe.timeout:g}s)",
            remediation=remediation,
        )
    except Exception as e:  # noqa: BLE001
        return failed(
            Category.NETWORK,
            name,
            Severity.ADVISORY,
            ProbeKind.SERVICE_UNHEALTHY,
            f"error: {e}",
            remediation=remediation,
        )

    if not 200 <= status < 300:
        return failed(
            Category.NETWORK,
            name,
            Severity.ADVISORY,
            ProbeKind.SERVICE_UNHEALTHY,
            f"unexpected status {status}",
            remediation=remediation,
        )
    if probe.expect_json:
        mismatch = _json_mismatch(body, probe.expect_json)
        if mismatch:
            return failed(
                Category.NETWORK,
                name,
                Severity.ADVISORY,
                ProbeKind.SERVICE_UNHEALTHY,
                mismatch,
                remediation=remediation,
            )
    return passed(Category.NETWORK, name, Severity.ADVISORY, f"healthy ({status})")
