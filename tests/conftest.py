"""Shared pytest fixtures for StyleStudio tests."""

import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from stylestudio.api import main as api_main
from stylestudio.core.config import StyleStudioConfig
from stylestudio.core.history_store import HistoryStore
from stylestudio.core.migration import MigrationService
from stylestudio.core.models import HistoryRecord
from stylestudio.core.orchestrator import MigrationOrchestrator
from stylestudio.core.services import Services, build_services
from stylestudio.core.storage import MemoryStorage, SQLiteStorage
from stylestudio.core.template_store import TemplateStore

# Five well-formed entries (one spanning two lines, one with explicit tags)
# followed by one entry whose body is too short.
SAMPLE_CATALOG = """旧版提示词目录，编号条目如下

1. 雨夜等车：胶片质感，三宫格构图，雨夜的公交车站，女孩撑着透明雨伞等车，霓虹灯在积水中倒映。
2. 征服高山：站在山峰之巅俯瞰云海，逆光剪影，画面具有电影感。
3. 酒店出浴：在酒店浴室中，身穿白色浴袍的女性人像，柔和的室内光线。
   背景虚化，氛围安静。

4. 草原听风：辽阔草原上，微风吹动长发，清新自然的写真风格。
5. 古典旗袍：身着蓝花旗袍的女性，古典庭院背景，优雅端庄。[tags: 东方, 复古]
6. 空白：短
"""


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sample_catalog() -> str:
    """Legacy catalog text with 5 valid entries and 1 malformed entry."""
    return SAMPLE_CATALOG


@pytest.fixture
def catalog_file(temp_dir: Path) -> Path:
    """Write the sample catalog to disk.

    Returns:
        Path to a ``prompt.txt`` with 5 valid entries and 1 malformed entry
    """
    path = temp_dir / "prompt" / "prompt.txt"
    path.parent.mkdir()
    path.write_text(SAMPLE_CATALOG, encoding="utf-8")
    return path


@pytest.fixture
def test_config(temp_dir: Path, catalog_file: Path) -> StyleStudioConfig:
    """Create a test configuration rooted in the temporary directory.

    Args:
        temp_dir: Temporary directory from fixture
        catalog_file: Sample catalog from fixture

    Returns:
        StyleStudioConfig instance for testing
    """
    return StyleStudioConfig(
        data_dir=temp_dir / "data",
        storage_quota_bytes=1024 * 1024,
        legacy_catalog_path=catalog_file,
        backup_retention=3,
    )


@pytest.fixture
def memory_storage() -> MemoryStorage:
    """In-memory storage with a 1 MiB budget."""
    return MemoryStorage(quota_bytes=1024 * 1024)


@pytest.fixture
def unavailable_storage() -> MemoryStorage:
    """Storage that fails every operation, as when the host disables it."""
    return MemoryStorage(available=False)


@pytest.fixture
def sqlite_storage(temp_dir: Path) -> SQLiteStorage:
    """SQLite storage in the temporary directory."""
    return SQLiteStorage(temp_dir / "kv.db", quota_bytes=1024 * 1024)


@pytest.fixture
def history_store(memory_storage: MemoryStorage) -> HistoryStore:
    """Empty history store over in-memory storage."""
    return HistoryStore(memory_storage)


@pytest.fixture
def template_store(memory_storage: MemoryStorage) -> TemplateStore:
    """Empty template store over in-memory storage."""
    return TemplateStore(memory_storage)


@pytest.fixture
def migration_service(
    memory_storage: MemoryStorage, template_store: TemplateStore, catalog_file: Path
) -> MigrationService:
    """Migration service over in-memory storage and the sample catalog."""
    return MigrationService(memory_storage, template_store, catalog_file, backup_retention=3)


@pytest.fixture
def orchestrator(migration_service: MigrationService) -> MigrationOrchestrator:
    """Orchestrator wrapping the migration service fixture."""
    return MigrationOrchestrator(migration_service)


@pytest.fixture
def services(test_config: StyleStudioConfig) -> Services:
    """Full service bundle over SQLite storage in the temporary directory."""
    return build_services(test_config)


@pytest.fixture
def make_history_record() -> Callable[..., dict]:
    """Factory for raw history entries using the persisted field names.

    Returns:
        Function taking a timestamp and field overrides, returning a dict
    """

    def _make(timestamp: int = 1_700_000_000_000, **overrides) -> dict:
        record = {
            "id": f"history_{timestamp}_abc123xyz",
            "originalImageUrl": f"blob:original-{timestamp}",
            "generatedImageUrl": f"https://cdn.example.com/{timestamp}.png",
            "template": "雨夜等车",
            "prompt": "胶片质感，雨夜的公交车站",
            "timestamp": timestamp,
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def history_record(make_history_record) -> HistoryRecord:
    """A single valid HistoryRecord."""
    return HistoryRecord.model_validate(make_history_record())


@pytest.fixture
def test_client(monkeypatch, test_config: StyleStudioConfig) -> Generator[TestClient, None, None]:
    """FastAPI TestClient whose services use the temporary configuration.

    The client is entered as a context manager so the lifespan handler runs
    and builds ``app.state.services`` from ``test_config``.
    """
    monkeypatch.setattr(api_main, "config", test_config)
    with TestClient(api_main.app) as client:
        yield client
