"""Template persistence for StyleStudio.

Templates are written only as a full batch by the migration service, so the
store exposes no per-record update: :meth:`TemplateStore.replace_all` swaps
the whole list in a single write and there is nothing to merge.

The ``templates`` key holds a JSON array of template objects.  Catalogs
migrated by older releases were stored inside an envelope::

    {"version": "1.0.0", "generatedAt": "...", "totalTemplates": 17,
     "templates": [...]}

which is still accepted on read.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from stylestudio.core.errors import StyleStudioError
from stylestudio.core.models import TemplateRecord
from stylestudio.core.storage import KeyValueStorage
from stylestudio.core.validation import check_template_record, filter_valid

logger = logging.getLogger(__name__)

TEMPLATES_KEY = "templates"


def decode_template_payload(blob: str | None) -> list[Any]:
    """Decode a stored template blob into its list of raw entries.

    Args:
        blob: Stored JSON text, or None when the key is absent

    Returns:
        Raw template entries (unvalidated); empty when ``blob`` is empty

    Raises:
        ValueError: If the blob is not JSON or has neither supported shape
    """
    if not blob:
        return []

    try:
        data = json.loads(blob)
    except RecursionError as e:
        raise ValueError("template payload is nested too deeply to decode") from e
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("templates"), list):
        return data["templates"]
    raise ValueError("template payload is neither a list nor a template envelope")


class TemplateStore:
    """Whole-batch persistence of :class:`TemplateRecord` values."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def read_raw(self) -> list[Any]:
        """Return the stored entries without schema filtering.

        Raises:
            StorageUnavailable: If the backend cannot be read
            ValueError: If the stored payload is corrupt
        """
        return decode_template_payload(self.storage.get(TEMPLATES_KEY))

    def get_all(self) -> list[TemplateRecord]:
        """Return every valid stored template in stored order.

        Never raises; unreadable or corrupt data yields an empty list.
        """
        try:
            raw_entries = self.read_raw()
        except StyleStudioError as e:
            logger.warning("Cannot read templates, treating them as empty: %s", e)
            return []
        except ValueError as e:
            logger.error("Stored templates are corrupt, treating them as empty: %s", e)
            return []

        return filter_valid(raw_entries, check_template_record)

    def count(self) -> int:
        """Return the number of valid stored templates."""
        return len(self.get_all())

    def replace_all(self, records: list[TemplateRecord]) -> None:
        """Replace the stored templates with ``records`` in one write.

        Raises:
            StorageUnavailable: If the backend cannot be written
            QuotaExceeded: If the payload does not fit in the storage budget
        """
        payload = [record.model_dump(by_alias=True) for record in records]
        self.storage.set(TEMPLATES_KEY, json.dumps(payload, ensure_ascii=False))
        logger.info("Stored %d template(s)", len(records))

    def clear(self) -> None:
        """Delete every stored template.

        Raises:
            StorageUnavailable: If the backend cannot be written
        """
        self.storage.remove(TEMPLATES_KEY)
        logger.info("Cleared templates")
