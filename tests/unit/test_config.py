"""Tests for stylestudio.core.config - configuration management.

Tests cover:
- Default values for all configuration fields.
- Environment variable overrides via the STYLESTUDIO_ prefix.
- Automatic data directory creation on initialisation.
- Pydantic validation constraints (port range, quota floor, log level).
"""

from __future__ import annotations

from pathlib import Path

import pytest

from stylestudio.core.config import StyleStudioConfig


class TestConfigDefaults:
    """Verify that StyleStudioConfig provides sensible defaults."""

    def test_storage_defaults(self, temp_dir: Path):
        """Default quota is 5 MiB and the database is storage.db."""
        cfg = StyleStudioConfig(data_dir=temp_dir / "data", _env_file=None)
        assert cfg.storage_quota_bytes == 5 * 1024 * 1024
        assert cfg.storage_filename == "storage.db"

    def test_history_and_diagnostics_defaults(self, temp_dir: Path):
        """History keeps 100 records; error logs keep 20 app and 10 UI entries."""
        cfg = StyleStudioConfig(data_dir=temp_dir / "data", _env_file=None)
        assert cfg.history_max_items == 100
        assert cfg.app_error_limit == 20
        assert cfg.ui_error_limit == 10

    def test_migration_defaults(self, temp_dir: Path):
        """The catalog defaults to prompt/prompt.txt with 5 backups kept."""
        cfg = StyleStudioConfig(data_dir=temp_dir / "data", _env_file=None)
        assert cfg.legacy_catalog_path == Path("prompt/prompt.txt")
        assert cfg.backup_retention == 5

    def test_default_server(self, monkeypatch, temp_dir: Path):
        """Default server binds to localhost on port 7860."""
        monkeypatch.delenv("STYLESTUDIO_SERVER_PORT", raising=False)
        cfg = StyleStudioConfig(data_dir=temp_dir / "data", _env_file=None)
        assert cfg.server_host == "127.0.0.1"
        assert cfg.server_port == 7860


class TestConfigEnvironment:
    """Verify STYLESTUDIO_ environment overrides."""

    def test_env_overrides(self, monkeypatch, temp_dir: Path):
        """Environment variables take precedence over defaults."""
        monkeypatch.setenv("STYLESTUDIO_DATA_DIR", str(temp_dir / "env-data"))
        monkeypatch.setenv("STYLESTUDIO_HISTORY_MAX_ITEMS", "25")
        monkeypatch.setenv("STYLESTUDIO_LOG_LEVEL", "DEBUG")

        cfg = StyleStudioConfig(_env_file=None)

        assert cfg.data_dir == temp_dir / "env-data"
        assert cfg.history_max_items == 25
        assert cfg.log_level == "DEBUG"

    def test_explicit_arguments_beat_environment(self, monkeypatch, temp_dir: Path):
        """Keyword arguments override environment variables."""
        monkeypatch.setenv("STYLESTUDIO_BACKUP_RETENTION", "9")
        cfg = StyleStudioConfig(data_dir=temp_dir, backup_retention=2, _env_file=None)
        assert cfg.backup_retention == 2


class TestConfigDirectories:
    """Verify that StyleStudioConfig creates the data directory."""

    def test_data_dir_created(self, test_config: StyleStudioConfig):
        """data_dir should exist after config initialisation."""
        assert test_config.data_dir.is_dir()

    def test_creates_nested_directories(self, temp_dir: Path):
        """Config should create deeply nested directories via parents=True."""
        deep = temp_dir / "a" / "b" / "c" / "data"
        cfg = StyleStudioConfig(data_dir=str(deep), _env_file=None)
        assert cfg.data_dir.is_dir()

    def test_storage_path(self, test_config: StyleStudioConfig):
        """storage_path joins data_dir and storage_filename."""
        assert test_config.storage_path == test_config.data_dir / "storage.db"


class TestConfigValidation:
    """Verify Pydantic validation constraints on config fields."""

    @pytest.mark.parametrize("port", [80, 70000])
    def test_invalid_port(self, port, temp_dir: Path):
        """Ports outside 1024-65535 raise a validation error."""
        with pytest.raises(Exception):
            StyleStudioConfig(server_port=port, data_dir=temp_dir)

    def test_quota_floor(self, temp_dir: Path):
        """A quota below 1 KiB is rejected."""
        with pytest.raises(Exception):
            StyleStudioConfig(storage_quota_bytes=100, data_dir=temp_dir)

    def test_invalid_log_level(self, temp_dir: Path):
        """Unknown log levels are rejected."""
        with pytest.raises(Exception):
            StyleStudioConfig(log_level="VERBOSE", data_dir=temp_dir)
