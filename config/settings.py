"""
config/settings.py — Canonical configuration contract for the cluster tooling.

Uses pydantic-settings to load, validate, and type-check every threshold,
timeout and path used by the preflight, launch and verify entry points.

Two usage modes:
  Production / scripts:
      cfg = load_settings()                    # reads <project root>/.env + os.environ
      cfg = load_settings("env/staging.env")   # override env file path

  Tests (isolated, no env file and no os.environ bleed):
      cfg = Settings(MIN_DISK_GB=0.5, REQUIRED_PORTS="8811")
      # All values come exclusively from kwargs → clean, reproducible.
"""
from __future__ import annotations

import os
import pathlib
import re
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


def _split_csv(value: object) -> object:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    # Same source restriction as load_settings() expects: Settings() reads only
    # kwargs, load_settings() supplies env file + os.environ values explicitly.
    model_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)

    # -------------------------------------------------------------------------
    # Container runtime / compose tool
    # -------------------------------------------------------------------------
    RUNTIME_COMMAND: str = "docker"
    COMPOSE_COMMAND: str = "docker compose"
    COMPOSE_FILE: str = "docker-compose.yml"
    COMPOSE_PROJECT_NAME: Optional[str] = None
    COMPOSE_PROFILE: Optional[str] = None

    # -------------------------------------------------------------------------
    # Configuration surface
    # -------------------------------------------------------------------------
    ENV_FILE: str = ".env"
    ENV_TEMPLATE: str = ".env.example"
    WORKSPACE_DIR: str = "workspace"
    REQUIRED_SECRETS: list[str] = []
    SERVICES_FILE: str = "config/services.yml"
    REPORT_PATH: str = "build/run_report.json"

    # -------------------------------------------------------------------------
    # Prerequisite thresholds
    # -------------------------------------------------------------------------
    REQUIRED_PORTS: list[int] = [5173, 8811, 9090, 5432]
    MIN_DISK_GB: float = 2.0
    MIN_MEMORY_GB: float = 4.0
    SHELL_VERSION_COMMAND: list[str] = ["bash", "--version"]
    MIN_SHELL_VERSION: str = "4.0"

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------
    VERIFY_MIN_DISK_GB: float = 1.0
    PROBE_TIMEOUT_SECONDS: float = 5.0
    MAX_PROBE_WORKERS: int = 8

    # -------------------------------------------------------------------------
    # Launch sequencing
    # -------------------------------------------------------------------------
    COMMAND_TIMEOUT_SECONDS: int = 60
    BUILD_TIMEOUT_SECONDS: int = 1800
    SETTLE_SECONDS: float = 10.0
    WAIT_TIMEOUT_SECONDS: int = 120
    WAIT_POLL_SECONDS: int = 5

    # -------------------------------------------------------------------------
    # Convenience properties
    # -------------------------------------------------------------------------

    @property
    def compose_base(self) -> list[str]:
        """COMPOSE_COMMAND split into argv (supports 'docker compose' and 'docker-compose')."""
        return self.COMPOSE_COMMAND.split()

    @property
    def min_shell_version_tuple(self) -> tuple[int, ...]:
        return tuple(int(part) for part in self.MIN_SHELL_VERSION.split("."))

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator(
        "RUNTIME_COMMAND",
        "COMPOSE_COMMAND",
        "COMPOSE_FILE",
        "ENV_FILE",
        "ENV_TEMPLATE",
        "MIN_SHELL_VERSION",
        mode="before",
    )
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip trailing whitespace that GNU make leaves after include .env."""
        return v.strip() if isinstance(v, str) else v

    @field_validator("COMPOSE_PROJECT_NAME", "COMPOSE_PROFILE", mode="before")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("REQUIRED_PORTS", "REQUIRED_SECRETS", mode="before")
    @classmethod
    def split_lists(cls, v: object) -> object:
        return _split_csv(v)

    @field_validator("SHELL_VERSION_COMMAND", mode="before")
    @classmethod
    def split_command(cls, v: object) -> object:
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator("REQUIRED_PORTS")
    @classmethod
    def validate_ports(cls, v: list[int]) -> list[int]:
        for port in v:
            if not 1 <= port <= 65535:
                raise ValueError(f"REQUIRED_PORTS entry {port} is outside 1-65535")
        return v

    @field_validator("MIN_SHELL_VERSION")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not re.fullmatch(r"\d+(\.\d+)*", v):
            raise ValueError(f"MIN_SHELL_VERSION must look like '4.0', got '{v}'")
        return v

    @field_validator(
        "PROBE_TIMEOUT_SECONDS",
        "COMMAND_TIMEOUT_SECONDS",
        "BUILD_TIMEOUT_SECONDS",
        "WAIT_TIMEOUT_SECONDS",
        "WAIT_POLL_SECONDS",
        "MAX_PROBE_WORKERS",
    )
    @classmethod
    def positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("SETTLE_SECONDS", "MIN_DISK_GB", "MIN_MEMORY_GB", "VERIFY_MIN_DISK_GB")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_wait_window(self) -> Settings:
        if self.WAIT_POLL_SECONDS >= self.WAIT_TIMEOUT_SECONDS:
            raise ValueError("WAIT_POLL_SECONDS must be less than WAIT_TIMEOUT_SECONDS")
        if self.ENV_FILE == self.ENV_TEMPLATE:
            raise ValueError("ENV_FILE and ENV_TEMPLATE must point at different files")
        return self


def read_env_file(env_file: str | os.PathLike) -> dict[str, str]:
    """Parse KEY=VALUE lines, skipping blanks, comments and inline comments.

    A missing file yields an empty dict.
    """
    file_vals: dict[str, str] = {}
    try:
        with open(env_file, encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                k, _, v = line.partition("=")
                k = k.strip()
                # Strip inline comments: "8811   # gateway" → "8811"
                v = re.sub(r"\s+#.*$", "", v.strip())
                if k:
                    file_vals[k] = v
    except FileNotFoundError:
        pass
    return file_vals


PROJECT_ROOT = pathlib.Path(__file__).parent.parent


def default_env_file() -> pathlib.Path:
    """The env file the launcher maintains: PROJECT_ROOT / ENV_FILE, independent of cwd."""
    return PROJECT_ROOT / os.environ.get("ENV_FILE", ".env").strip()


def load_settings(env_file: str | os.PathLike | None = None) -> Settings:
    """Load and validate settings from an env file + os.environ.

    With no argument the env file is default_env_file(), so the entry points
    read the same .env that CONFIG_ENSURE creates whatever the working
    directory is.

    Merges the parsed env file with os.environ (os.environ wins), then passes
    only known Settings fields as explicit kwargs. A missing env file is not
    an error here: the launcher materializes it from the template during
    CONFIG_ENSURE.

    Raises:
        ValidationError: if any value is invalid.
        ValueError: if values are inconsistent (e.g. poll >= wait timeout).
    """
    if env_file is None:
        env_file = default_env_file()
    merged = {**read_env_file(env_file), **os.environ}  # os.environ wins
    known = {k: v for k, v in merged.items() if k in Settings.model_fields}
    return Settings(**known)
