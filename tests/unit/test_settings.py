"""
tests/unit/test_settings.py — Unit tests for config/settings.py.

These tests validate the Pydantic Settings schema with no Docker or network
dependencies. They run in under 1 second.

Run: pytest tests/unit/test_settings.py -v
"""

import pytest

# conftest.py adds project root to sys.path
from config.settings import Settings, load_settings, read_env_file

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_required_ports_default(self):
        s = Settings()
        assert s.REQUIRED_PORTS == [5173, 8811, 9090, 5432]

    def test_thresholds_default(self):
        s = Settings()
        assert s.MIN_DISK_GB == 2.0
        assert s.MIN_MEMORY_GB == 4.0
        assert s.VERIFY_MIN_DISK_GB == 1.0

    def test_probe_timeout_defaults_to_five_seconds(self):
        assert Settings().PROBE_TIMEOUT_SECONDS == 5.0

    def test_settle_delay_is_configurable(self):
        assert Settings().SETTLE_SECONDS == 10.0
        assert Settings(SETTLE_SECONDS=0).SETTLE_SECONDS == 0

    def test_profile_and_project_unset_by_default(self):
        s = Settings()
        assert s.COMPOSE_PROFILE is None
        assert s.COMPOSE_PROJECT_NAME is None


# ---------------------------------------------------------------------------
# Parsing from env-style strings
# ---------------------------------------------------------------------------


class TestParsing:
    def test_ports_parse_from_csv(self):
        s = Settings(REQUIRED_PORTS="8811, 5432")
        assert s.REQUIRED_PORTS == [8811, 5432]

    def test_secrets_parse_from_csv(self):
        s = Settings(REQUIRED_SECRETS="POSTGRES_PASSWORD,GATEWAY_AUDIT_TOKEN,")
        assert s.REQUIRED_SECRETS == ["POSTGRES_PASSWORD", "GATEWAY_AUDIT_TOKEN"]

    def test_shell_version_command_splits(self):
        s = Settings(SHELL_VERSION_COMMAND="zsh --version")
        assert s.SHELL_VERSION_COMMAND == ["zsh", "--version"]

    def test_compose_command_splits_into_argv(self):
        assert Settings().compose_base == ["docker", "compose"]
        assert Settings(COMPOSE_COMMAND="docker-compose").compose_base == ["docker-compose"]

    def test_blank_profile_is_unset(self):
        assert Settings(COMPOSE_PROFILE="  ").COMPOSE_PROFILE is None

    def test_values_stripped_of_whitespace(self):
        """GNU make leaves trailing whitespace after `include .env`."""
        s = Settings(RUNTIME_COMMAND="podman  ", MIN_SHELL_VERSION="5.1 ")
        assert s.RUNTIME_COMMAND == "podman"
        assert s.min_shell_version_tuple == (5, 1)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_port_out_of_range_raises(self):
        with pytest.raises(ValueError, match="outside 1-65535"):
            Settings(REQUIRED_PORTS="70000")

    def test_non_numeric_port_raises(self):
        with pytest.raises(Exception):  # pydantic ValidationError
            Settings(REQUIRED_PORTS="gateway")

    def test_probe_timeout_must_be_positive(self):
        with pytest.raises(ValueError, match="PROBE_TIMEOUT_SECONDS"):
            Settings(PROBE_TIMEOUT_SECONDS=0)

    def test_negative_disk_threshold_raises(self):
        with pytest.raises(ValueError, match="MIN_DISK_GB"):
            Settings(MIN_DISK_GB=-1)

    def test_bad_version_string_raises(self):
        with pytest.raises(ValueError, match="MIN_SHELL_VERSION"):
            Settings(MIN_SHELL_VERSION="four")

    def test_wait_poll_must_be_less_than_timeout(self):
        with pytest.raises(ValueError, match="WAIT_POLL_SECONDS"):
            Settings(WAIT_TIMEOUT_SECONDS=10, WAIT_POLL_SECONDS=10)

    def test_env_file_and_template_must_differ(self):
        with pytest.raises(ValueError, match="ENV_TEMPLATE"):
            Settings(ENV_FILE=".env", ENV_TEMPLATE=".env")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadSettings:
    def test_settings_ignores_os_environ(self, monkeypatch):
        monkeypatch.setenv("MIN_DISK_GB", "50")
        assert Settings().MIN_DISK_GB == 2.0

    def test_reads_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MIN_DISK_GB", raising=False)
        monkeypatch.delenv("REQUIRED_PORTS", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("MIN_DISK_GB=3   # plenty\nREQUIRED_PORTS=8811\nUNRELATED=x\n")
        s = load_settings(str(env_file))
        assert s.MIN_DISK_GB == 3.0
        assert s.REQUIRED_PORTS == [8811]

    def test_os_environ_wins_over_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("SETTLE_SECONDS=30\n")
        monkeypatch.setenv("SETTLE_SECONDS", "2")
        assert load_settings(str(env_file)).SETTLE_SECONDS == 2.0

    def test_missing_env_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SETTLE_SECONDS", raising=False)
        s = load_settings(str(tmp_path / "absent.env"))
        assert s.SETTLE_SECONDS == 10.0

    def test_read_env_file_keeps_equals_in_values(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("# comment\n\nURL=http://host:9090/health?a=b\n")
        assert read_env_file(env_file) == {"URL": "http://host:9090/health?a=b"}

    def test_default_env_file_ignores_working_directory(self, tmp_path, monkeypatch):
        import config.settings as settings_mod

        project = tmp_path / "project"
        project.mkdir()
        (project / ".env").write_text("MIN_DISK_GB=3\n")
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        (elsewhere / ".env").write_text("MIN_DISK_GB=99\n")

        monkeypatch.delenv("MIN_DISK_GB", raising=False)
        monkeypatch.delenv("ENV_FILE", raising=False)
        monkeypatch.setattr(settings_mod, "PROJECT_ROOT", project)
        monkeypatch.chdir(elsewhere)
        assert load_settings().MIN_DISK_GB == 3.0

    def test_default_env_file_honours_env_file_override(self, monkeypatch):
        import config.settings as settings_mod

        monkeypatch.setenv("ENV_FILE", "env/staging.env")
        assert settings_mod.default_env_file() == settings_mod.PROJECT_ROOT / "env" / "staging.env"

    def test_entry_points_share_the_settings_root(self):
        import config.settings as settings_mod
        from scripts import launch, verify

        assert launch._ROOT.resolve() == settings_mod.PROJECT_ROOT.resolve()
        assert verify._ROOT.resolve() == settings_mod.PROJECT_ROOT.resolve()
