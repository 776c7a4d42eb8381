"""Core data layer for StyleStudio.

This package holds everything that touches persisted state:

- **Storage** (storage.py): key-value backends with a size budget
- **History** (history_store.py): bounded, validated generation history
- **Templates** (template_store.py): whole-batch template persistence
- **Migration** (catalog_parser.py, migration.py, orchestrator.py): one-time
  conversion of the legacy ``prompt.txt`` catalog into templates
- **Diagnostics** (error_log.py): capped app and UI error lists
- **StyleStudioConfig** (config.py): Pydantic Settings configuration

Architecture Overview
---------------------
Every store goes through one :class:`KeyValueStorage` instance, and
:func:`build_services` wires the stores together for a process::

    KeyValueStorage
      ├── HistoryStore
      ├── TemplateStore ── MigrationService ── MigrationOrchestrator
      └── ErrorLog

Read paths never raise; they log and degrade to empty results.  Write paths
raise the typed errors in :mod:`stylestudio.core.errors`.
"""

from stylestudio.core.config import StyleStudioConfig, config
from stylestudio.core.history_store import HistoryStore
from stylestudio.core.migration import MigrationService
from stylestudio.core.orchestrator import MigrationOrchestrator
from stylestudio.core.services import Services, build_services
from stylestudio.core.storage import KeyValueStorage, MemoryStorage, SQLiteStorage
from stylestudio.core.template_store import TemplateStore

__all__ = [
    "HistoryStore",
    "KeyValueStorage",
    "MemoryStorage",
    "MigrationOrchestrator",
    "MigrationService",
    "SQLiteStorage",
    "Services",
    "StyleStudioConfig",
    "TemplateStore",
    "build_services",
    "config",
]
