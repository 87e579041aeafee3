"""Unit tests for scripts.health.resources disk and memory checks."""

from __future__ import annotations

from collections import namedtuple

from scripts.health import Category, ProbeKind, Severity
from scripts.health import resources as health_resources

_Usage = namedtuple("_Usage", "total used free")
_Memory = namedtuple("_Memory", "total available")

GIB = 1024**3


def test_disk_below_threshold_uses_given_severity(monkeypatch):
    monkeypatch.setattr(health_resources.shutil, "disk_usage", lambda path: _Usage(0, 0, 1 * GIB))
    result = health_resources.check_disk(2.0, Severity.BLOCKING, Category.PREREQUISITE)
    assert result.is_blocking_failure
    assert result.kind is ProbeKind.RESOURCE
    assert "1.0GB free" in result.message

    result = health_resources.check_disk(2.0, Severity.ADVISORY, Category.RESOURCE)
    assert result.is_advisory_failure
    assert result.category is Category.RESOURCE


def test_disk_above_threshold_passes(monkeypatch):
    monkeypatch.setattr(health_resources.shutil, "disk_usage", lambda path: _Usage(0, 0, 50 * GIB))
    result = health_resources.check_disk(2.0, Severity.BLOCKING, Category.PREREQUISITE)
    assert result.passed is True


def test_disk_unreadable_path_fails(monkeypatch):
    def fake_usage(path):  # noqa: ANN001
        raise FileNotFoundError(2, "No such file or directory")

    monkeypatch.setattr(health_resources.shutil, "disk_usage", fake_usage)
    result = health_resources.check_disk(1.0, Severity.ADVISORY, Category.RESOURCE, path="/missing")
    assert result.is_advisory_failure
    assert "/missing" in result.message


def test_low_memory_is_advisory(monkeypatch):
    monkeypatch.setattr(
        health_resources.psutil, "virtual_memory", lambda: _Memory(8 * GIB, 1 * GIB)
    )
    result = health_resources.check_memory(4.0)
    assert result.is_advisory_failure
    assert not result.is_blocking_failure
    assert result.kind is ProbeKind.RESOURCE


def test_enough_memory_passes(monkeypatch):
    monkeypatch.setattr(
        health_resources.psutil, "virtual_memory", lambda: _Memory(16 * GIB, 12 * GIB)
    )
    assert health_resources.check_memory(4.0).passed is True
