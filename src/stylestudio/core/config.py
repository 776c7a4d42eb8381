"""Configuration management for StyleStudio.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the STYLESTUDIO_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (STYLESTUDIO_* prefix)
2. .env file in the project root
3. Default values defined in StyleStudioConfig

Example .env file:
    STYLESTUDIO_DATA_DIR=data
    STYLESTUDIO_STORAGE_QUOTA_BYTES=5242880
    STYLESTUDIO_HISTORY_MAX_ITEMS=100
    STYLESTUDIO_LEGACY_CATALOG_PATH=prompt/prompt.txt

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Entry points (the CLI and the API server) read it once and pass it to
:func:`stylestudio.core.services.build_services`, which constructs the store
handles.  Library code never reaches for the global directly.

Storage Quota
-------------
The key-value backend enforces a total size budget (``storage_quota_bytes``),
measured as the UTF-8 byte length of every stored key plus value.  The default
of 5 MiB mirrors the budget browsers give a single origin, which is the budget
the persisted blobs were originally sized against.

See Also
--------
- StyleStudioConfig: Full configuration class documentation
- stylestudio.core.services: Builds the store handles from a config
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StyleStudioConfig(BaseSettings):
    """Main configuration for StyleStudio.

    Values are loaded from environment variables with the STYLESTUDIO_ prefix,
    with fallback to defaults defined here.  The data directory is created on
    initialisation if it does not exist.

    Attributes
    ----------
    Storage Settings:
        data_dir : Path
            Directory holding the key-value database
        storage_filename : str
            SQLite file name inside ``data_dir``
        storage_quota_bytes : int
            Total size budget for all stored keys and values

    History Settings:
        history_max_items : int
            Maximum number of history records kept (oldest evicted first)

    Migration Settings:
        legacy_catalog_path : Path
            Default location of the legacy ``prompt.txt`` catalog
        backup_retention : int
            Number of template backups kept before older ones are pruned

    Diagnostics:
        app_error_limit : int
            Maximum entries kept in the ``app-errors`` log
        ui_error_limit : int
            Maximum entries kept in the ``ui-errors`` log
        log_level : str
            Root log level applied by the CLI and API entry points

    Server Settings:
        server_host : str
            Bind address for the API server
        server_port : int
            Port for the API server (1024-65535)

    Examples
    --------
    Create a custom configuration:

        >>> custom_config = StyleStudioConfig(
        ...     data_dir="/tmp/stylestudio",
        ...     history_max_items=50,
        ... )
        >>> custom_config.storage_path
        PosixPath('/tmp/stylestudio/storage.db')
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STYLESTUDIO_",
        case_sensitive=False,
    )

    # Storage
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the key-value database",
    )
    storage_filename: str = Field(
        default="storage.db",
        description="SQLite file name inside data_dir",
    )
    storage_quota_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Total byte budget for all stored keys and values",
        ge=1024,
    )

    # History
    history_max_items: int = Field(
        default=100,
        description="Maximum number of history records kept",
        ge=1,
        le=10000,
    )

    # Migration
    legacy_catalog_path: Path = Field(
        default=Path("prompt/prompt.txt"),
        description="Default location of the legacy prompt catalog",
    )
    backup_retention: int = Field(
        default=5,
        description="Number of template backups kept",
        ge=1,
        le=50,
    )

    # Diagnostics
    app_error_limit: int = Field(default=20, ge=1, le=1000)
    ui_error_limit: int = Field(default=10, ge=1, le=1000)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level for CLI and API entry points",
    )

    # Server
    server_host: str = Field(
        default="127.0.0.1",
        description="Bind address for the API server",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def storage_path(self) -> Path:
        """Absolute location of the SQLite key-value database."""
        return self.data_dir / self.storage_filename


# Global configuration instance, loaded from STYLESTUDIO_* variables and .env.
config = StyleStudioConfig()
