"""
Typed service catalog for cluster verification.

config/services.yml lists every expected cluster member and how to probe it.
The catalog is treated as a contract:
  - strict required fields
  - `catalog_version` for forward compatibility
  - clear validation errors for common mistakes
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

SUPPORTED_CATALOG_VERSION = 1
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ServiceMatch(BaseModel):
    """How to recognize the running container for a service."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    mode: Literal["exact", "prefix", "regex"] = "prefix"

    @field_validator("pattern")
    @classmethod
    def non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("match pattern must be a non-empty string")
        return value

    @model_validator(mode="after")
    def regex_compiles(self) -> ServiceMatch:
        if self.mode == "regex":
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ValueError(f"invalid regex '{self.pattern}': {exc}") from exc
        return self

    def matches(self, container_name: str) -> bool:
        if self.mode == "exact":
            return container_name == self.pattern
        if self.mode == "prefix":
            return container_name.startswith(self.pattern)
        return re.search(self.pattern, container_name) is not None

    def describe(self) -> str:
        return f"{self.mode} '{self.pattern}'"


class HttpProbe(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    timeout: float = 5.0
    # Optional JSON health payload check, e.g. {"status": "ok"}
    expect_json: dict[str, str] | None = None

    @field_validator("url")
    @classmethod
    def http_url(cls, value: str) -> str:
        parsed = urlparse(value.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"'{value}' is not an http(s) URL")
        return value.strip()

    @field_validator("timeout")
    @classmethod
    def positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be > 0")
        return value


class TcpProbe(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int
    timeout: float = 5.0

    @field_validator("port")
    @classmethod
    def valid_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError(f"port {value} is outside 1-65535")
        return value

    @field_validator("timeout")
    @classmethod
    def positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be > 0")
        return value


class DatabaseProbe(BaseModel):
    """Readiness + schema check executed inside the database container."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service: str
    user: str = "postgres"
    database: str = "postgres"
    schema_name: str = Field("public", alias="schema")
    expected_tables: list[str] = []

    @field_validator("schema_name")
    @classmethod
    def identifier(cls, value: str) -> str:
        if not _IDENTIFIER_RE.match(value):
            raise ValueError(f"'{value}' is not a valid SQL identifier")
        return value


class ServiceDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    match: ServiceMatch
    expected_state: Literal["running"] = "running"
    http: HttpProbe | None = None
    tcp: TcpProbe | None = None
    database: DatabaseProbe | None = None
    # Operator-facing access URL listed in the final summary
    endpoint: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: str) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value


class ServiceCatalog(BaseModel):
    """Versioned contract for config/services.yml."""

    catalog_version: int
    services: list[ServiceDescriptor]

    @field_validator("catalog_version")
    @classmethod
    def validate_catalog_version(cls, value: int) -> int:
        if value != SUPPORTED_CATALOG_VERSION:
            raise ValueError(
                f"unsupported catalog_version={value}; expected {SUPPORTED_CATALOG_VERSION}"
            )
        return value

    @model_validator(mode="after")
    def unique_names(self) -> ServiceCatalog:
        if not self.services:
            raise ValueError("services must list at least one descriptor")
        names = [s.name for s in self.services]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"services contain duplicate names: {', '.join(duplicates)}")
        return self

    @property
    def endpoints(self) -> dict[str, str]:
        return {s.name: s.endpoint for s in self.services if s.endpoint}


def load_catalog_yaml(path: Path) -> dict:
    with open(path, encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
        if not isinstance(payload, dict):
            raise ValueError("service catalog root must be a YAML mapping/object")
        return payload


def parse_catalog(path: str | Path) -> ServiceCatalog:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Service catalog not found: {path}")
    payload = load_catalog_yaml(path)
    try:
        return ServiceCatalog.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(exc) from exc
