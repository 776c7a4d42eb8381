"""Construction of the store and service handles for one process.

Entry points build the handles once and hold them explicitly (``app.state``
in the API, the click context object in the CLI).  Tests build their own
from a temporary configuration.

Usage Example
-------------
    >>> from stylestudio.core.config import config
    >>> services = build_services(config)
    >>> services.history.stats().count
    0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stylestudio.core.config import StyleStudioConfig
from stylestudio.core.error_log import ErrorLog
from stylestudio.core.history_store import HistoryStore
from stylestudio.core.migration import MigrationService
from stylestudio.core.orchestrator import MigrationOrchestrator
from stylestudio.core.storage import KeyValueStorage, SQLiteStorage
from stylestudio.core.template_store import TemplateStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every data-layer handle, sharing one storage backend."""

    config: StyleStudioConfig
    storage: KeyValueStorage
    history: HistoryStore
    templates: TemplateStore
    migration: MigrationService
    orchestrator: MigrationOrchestrator
    error_log: ErrorLog


def build_services(
    config: StyleStudioConfig,
    storage: KeyValueStorage | None = None,
) -> Services:
    """Wire the stores and services over a single storage backend.

    Args:
        config: Settings to build from
        storage: Backend to use instead of the configured SQLite file

    Returns:
        Services bundle
    """
    if storage is None:
        storage = SQLiteStorage(config.storage_path, quota_bytes=config.storage_quota_bytes)

    templates = TemplateStore(storage)
    migration = MigrationService(
        storage,
        templates,
        catalog_path=config.legacy_catalog_path,
        backup_retention=config.backup_retention,
    )

    services = Services(
        config=config,
        storage=storage,
        history=HistoryStore(storage, max_items=config.history_max_items),
        templates=templates,
        migration=migration,
        orchestrator=MigrationOrchestrator(migration, storage),
        error_log=ErrorLog(
            storage,
            app_limit=config.app_error_limit,
            ui_limit=config.ui_error_limit,
        ),
    )
    logger.debug("Built services over %s", type(storage).__name__)
    return services
