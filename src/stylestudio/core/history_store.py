"""Generation history persistence for StyleStudio.

The history is intentionally simple:

- every record lives in a single JSON array under the ``history`` key
- list order is reverse-chronological (newest first)
- at most ``max_items`` records are kept; the oldest are evicted first

Keeping the whole list in one blob means every append rewrites the list, but
readers always see either the old list or the new one, never a half-written
mix.  History is a convenience cache rather than a system of record, so a
simple FIFO cap is enough.

Stored order is not trusted.  Other tabs, older releases or manual edits can
leave the blob unsorted or with malformed entries, so every load filters the
entries through the shared schema check and re-sorts by timestamp.  Loading
never raises: unreadable storage or corrupt JSON is treated as an empty
history.
"""

from __future__ import annotations

import json
import logging
import random
import string
import time

from stylestudio.core.errors import StorageUnavailable, StyleStudioError
from stylestudio.core.models import GenerationResult, HistoryRecord, HistoryStats
from stylestudio.core.storage import KeyValueStorage
from stylestudio.core.validation import check_history_record, filter_valid, require_history_record

logger = logging.getLogger(__name__)

HISTORY_KEY = "history"
MAX_HISTORY_ITEMS = 100

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_history_id() -> str:
    """Return a new history id of the form ``history_<ms>_<9 base36 chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"history_{int(time.time() * 1000)}_{suffix}"


def _serialize(records: list[HistoryRecord]) -> str:
    payload = [record.model_dump(by_alias=True) for record in records]
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


class HistoryStore:
    """Bounded, validated history of completed generations.

    Attributes
    ----------
    storage : KeyValueStorage
        Backend holding the ``history`` blob
    max_items : int
        Maximum number of records kept

    Examples
    --------
        >>> store = HistoryStore(MemoryStorage())
        >>> store.append({
        ...     "id": "history_1", "originalImageUrl": "blob:a",
        ...     "generatedImageUrl": "https://cdn/b.png", "template": "Rainy night",
        ...     "prompt": "film grain", "timestamp": 1700000000000,
        ... })
        >>> [r.id for r in store.load_all()]
        ['history_1']
    """

    def __init__(self, storage: KeyValueStorage, max_items: int = MAX_HISTORY_ITEMS):
        self.storage = storage
        self.max_items = max_items

    def _require_storage(self, action: str) -> None:
        if not self.storage.is_available():
            raise StorageUnavailable(f"Storage is unavailable, cannot {action} history")

    def _read_blob(self) -> str | None:
        try:
            return self.storage.get(HISTORY_KEY)
        except StyleStudioError as e:
            logger.warning("Cannot read history, treating it as empty: %s", e)
            return None

    def _load_from_blob(self, blob: str | None) -> list[HistoryRecord]:
        if not blob:
            return []

        try:
            raw_entries = json.loads(blob)
        except (ValueError, RecursionError) as e:
            logger.error("Stored history is not valid JSON, treating it as empty: %s", e)
            return []

        if not isinstance(raw_entries, list):
            logger.error("Stored history is not a list, treating it as empty")
            return []

        records = filter_valid(raw_entries, check_history_record)
        records.sort(key=lambda record: record.timestamp, reverse=True)
        return records

    def load_all(self) -> list[HistoryRecord]:
        """Load every valid record, newest first.

        Never raises.  Missing or unreadable data yields an empty list and
        malformed entries are dropped.

        Returns:
            Records sorted by timestamp, descending
        """
        return self._load_from_blob(self._read_blob())

    def get(self, record_id: str) -> HistoryRecord | None:
        """Return the record with ``record_id``, or None."""
        return next((record for record in self.load_all() if record.id == record_id), None)

    def append(self, record: HistoryRecord | dict) -> HistoryRecord:
        """Validate and persist a new record, evicting the oldest past the cap.

        Args:
            record: A HistoryRecord or a mapping using the persisted field names

        Returns:
            The validated record as stored

        Raises:
            ValidationError: If the record does not satisfy the schema
            StorageUnavailable: If the backend cannot be used
            QuotaExceeded: If the backend rejects the write for size; remove
                records and retry
        """
        validated = require_history_record(record)
        self._require_storage("save")

        # Stable sort keeps the new record ahead of existing ones sharing its
        # timestamp, so truncation always drops the oldest entries.
        updated = sorted(
            [validated, *self.load_all()],
            key=lambda item: item.timestamp,
            reverse=True,
        )
        trimmed = updated[: self.max_items]
        evicted = len(updated) - len(trimmed)
        if evicted:
            logger.info("History cap of %d reached, evicting %d record(s)", self.max_items, evicted)

        self.storage.set(HISTORY_KEY, _serialize(trimmed))
        logger.debug("Saved history record %s", validated.id)
        return validated

    def record_generation(self, result: GenerationResult, original_image_url: str) -> HistoryRecord:
        """Wrap a generation result into a new history record and append it.

        Args:
            result: Output of the image-generation service
            original_image_url: Reference to the uploaded source photo

        Returns:
            The stored record, carrying a freshly generated id
        """
        return self.append(
            {
                "id": generate_history_id(),
                "originalImageUrl": original_image_url,
                "generatedImageUrl": result.image_url,
                "template": result.template,
                "prompt": result.prompt,
                "timestamp": result.timestamp,
            }
        )

    def remove(self, record_id: str) -> bool:
        """Delete one record by id.

        Args:
            record_id: Id of the record to delete

        Returns:
            True if a record was removed, False if the id was not present

        Raises:
            StorageUnavailable: If the backend cannot be used
            QuotaExceeded: If the backend rejects the rewrite
        """
        self._require_storage("remove from")

        existing = self.load_all()
        remaining = [record for record in existing if record.id != record_id]
        if len(remaining) == len(existing):
            logger.debug("History record %s not found, nothing removed", record_id)
            return False

        self.storage.set(HISTORY_KEY, _serialize(remaining))
        logger.info("Removed history record %s", record_id)
        return True

    def clear(self) -> None:
        """Delete the whole history.

        Raises:
            StorageUnavailable: If the backend cannot be used
        """
        self._require_storage("clear")
        self.storage.remove(HISTORY_KEY)
        logger.info("Cleared history")

    def stats(self) -> HistoryStats:
        """Return the record count and the stored blob size in bytes.

        Never raises; unavailable storage reports zeros.
        """
        blob = self._read_blob()
        return HistoryStats(
            count=len(self._load_from_blob(blob)),
            storage_size_bytes=len(blob.encode("utf-8")) if blob else 0,
        )
