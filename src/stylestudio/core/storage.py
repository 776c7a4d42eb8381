"""Key-value storage backends for the StyleStudio data layer.

Every persisted blob (history, templates, migration status, backups and the
diagnostic error logs) is a string value under a string key.  The stores
never touch a database or a file directly; they all go through one
:class:`KeyValueStorage` instance, which classifies failures but never retries
them:

- :class:`~stylestudio.core.errors.StorageUnavailable` when the backend cannot
  be read or written at all
- :class:`~stylestudio.core.errors.QuotaExceeded` when a write would push the
  total stored size over the configured budget

Backends
--------
SQLiteStorage
    Single-table SQLite database.  The production backend.
MemoryStorage
    Dictionary held in process memory.  Used by tests and throwaway sessions;
    can be built in an unavailable state to exercise degraded read paths.

Quota Accounting
----------------
Usage is the UTF-8 byte length of every key plus its value.  A write is
rejected when the usage after replacing the key's current value would exceed
``quota_bytes``.  The availability check bypasses the quota so that a full
store still reports itself as usable (reads and deletes keep working).
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path

from stylestudio.core.errors import QuotaExceeded, StorageUnavailable, StyleStudioError

logger = logging.getLogger(__name__)

AVAILABILITY_KEY = "__storage_test__"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class KeyValueStorage(ABC):
    """Base class for string key-value backends with a size budget.

    Subclasses implement the raw ``_read``/``_write``/``_delete``/``_keys``/
    ``_usage`` primitives and raise :class:`StorageUnavailable` from them when
    the backend fails.  The public methods add the quota check and the availability check.
    """

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        self.quota_bytes = quota_bytes

    # -- primitives ---------------------------------------------------------

    @abstractmethod
    def _read(self, key: str) -> str | None: ...

    @abstractmethod
    def _write(self, key: str, value: str) -> None: ...

    @abstractmethod
    def _delete(self, key: str) -> None: ...

    @abstractmethod
    def _keys(self) -> list[str]: ...

    @abstractmethod
    def _usage(self, exclude_key: str | None = None) -> int: ...

    # -- public API ---------------------------------------------------------

    def is_available(self) -> bool:
        """Test the backend with a write and a delete.

        Returns:
            True if both succeeded, False otherwise.  Never raises.
        """
        try:
            self._write(AVAILABILITY_KEY, AVAILABILITY_KEY)
            self._delete(AVAILABILITY_KEY)
        except StyleStudioError as e:
            logger.debug("Storage availability check failed: %s", e)
            return False
        return True

    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None.

        Raises:
            StorageUnavailable: If the backend cannot be read
        """
        return self._read(key)

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any existing value.

        Raises:
            StorageUnavailable: If the backend cannot be written
            QuotaExceeded: If the write would exceed ``quota_bytes``
        """
        projected = self._usage(exclude_key=key) + _entry_size(key, value)
        if projected > self.quota_bytes:
            raise QuotaExceeded(
                f"Writing '{key}' needs {projected} bytes, quota is {self.quota_bytes} bytes"
            )
        self._write(key, value)

    def remove(self, key: str) -> None:
        """Delete ``key``.  Deleting a missing key is a no-op.

        Raises:
            StorageUnavailable: If the backend cannot be written
        """
        self._delete(key)

    def keys(self, prefix: str = "") -> list[str]:
        """Return stored keys starting with ``prefix``, sorted.

        Raises:
            StorageUnavailable: If the backend cannot be read
        """
        return sorted(
            key for key in self._keys() if key.startswith(prefix) and key != AVAILABILITY_KEY
        )

    def usage_bytes(self) -> int:
        """Return the bytes currently counted against the quota.

        Raises:
            StorageUnavailable: If the backend cannot be read
        """
        return self._usage()


class SQLiteStorage(KeyValueStorage):
    """Key-value storage in a single SQLite table.

    The database file and its parent directory are created on first use.  A
    failure to create the schema is logged rather than raised, leaving the
    instance in a state where :meth:`is_available` returns False and reads
    degrade, exactly as when the file becomes unreadable later on.
    """

    def __init__(self, db_path: Path, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        """Initialize the storage database.

        Args:
            db_path: Path to SQLite database file
            quota_bytes: Total byte budget for keys plus values
        """
        super().__init__(quota_bytes)
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._initialize_db()
            logger.info(f"Initialized key-value storage at {self.db_path}")
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Cannot initialize key-value storage at {self.db_path}: {e}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection that commits on success and is always closed."""
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            yield conn

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """)

    def _fail(self, action: str, key: str | None, error: sqlite3.Error) -> StyleStudioError:
        target = f" '{key}'" if key else ""
        message = f"Cannot {action}{target} in {self.db_path}: {error}"
        # SQLITE_FULL surfaces as an OperationalError with this text.
        if "full" in str(error).lower():
            return QuotaExceeded(message)
        return StorageUnavailable(message)

    def _read(self, key: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
                return row[0] if row else None
        except sqlite3.Error as e:
            raise self._fail("read", key, e) from e

    def _write(self, key: str, value: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise self._fail("write", key, e) from e

    def _delete(self, key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise self._fail("delete", key, e) from e

    def _keys(self) -> list[str]:
        try:
            with self._connect() as conn:
                return [row[0] for row in conn.execute("SELECT key FROM kv_store")]
        except sqlite3.Error as e:
            raise self._fail("list keys", None, e) from e

    def _usage(self, exclude_key: str | None = None) -> int:
        # CAST AS BLOB makes length() count UTF-8 bytes instead of characters.
        query = (
            "SELECT COALESCE(SUM(length(CAST(key AS BLOB)) + length(CAST(value AS BLOB))), 0) "
            "FROM kv_store WHERE key != ?"
        )
        try:
            with self._connect() as conn:
                return conn.execute(query, (exclude_key or "",)).fetchone()[0]
        except sqlite3.Error as e:
            raise self._fail("measure", None, e) from e


class MemoryStorage(KeyValueStorage):
    """Key-value storage held in a dictionary.

    Args:
        quota_bytes: Total byte budget for keys plus values
        available: When False every operation raises StorageUnavailable,
            which stands in for a backend disabled by the host environment.
    """

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES, available: bool = True):
        super().__init__(quota_bytes)
        self.available = available
        self._data: dict[str, str] = {}

    def _ensure_available(self) -> None:
        if not self.available:
            raise StorageUnavailable("In-memory storage is disabled")

    def _read(self, key: str) -> str | None:
        self._ensure_available()
        return self._data.get(key)

    def _write(self, key: str, value: str) -> None:
        self._ensure_available()
        self._data[key] = value

    def _delete(self, key: str) -> None:
        self._ensure_available()
        self._data.pop(key, None)

    def _keys(self) -> list[str]:
        self._ensure_available()
        return list(self._data)

    def _usage(self, exclude_key: str | None = None) -> int:
        self._ensure_available()
        return sum(_entry_size(k, v) for k, v in self._data.items() if k != exclude_key)
