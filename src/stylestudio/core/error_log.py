"""Bounded diagnostic error log kept in key-value storage.

Two capped lists support troubleshooting:

- ``app-errors``: errors raised inside the data layer and API (last 20)
- ``ui-errors``: errors reported by the frontend (last 10)

The core never reads these back; they exist for diagnostics tooling
(``GET /api/errors``).  Recording an error must never cause a second one, so
every failure here is logged as a warning and swallowed.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import pydantic

from stylestudio.core.errors import StyleStudioError
from stylestudio.core.models import ErrorLogEntry
from stylestudio.core.storage import KeyValueStorage

logger = logging.getLogger(__name__)

APP_ERRORS_KEY = "app-errors"
UI_ERRORS_KEY = "ui-errors"


class ErrorLog:
    """Capped app and UI error lists, oldest trimmed first."""

    def __init__(self, storage: KeyValueStorage, app_limit: int = 20, ui_limit: int = 10):
        self.storage = storage
        self.limits = {APP_ERRORS_KEY: app_limit, UI_ERRORS_KEY: ui_limit}

    def _load(self, key: str) -> list[ErrorLogEntry]:
        try:
            raw_entries = json.loads(self.storage.get(key) or "[]")
        except (StyleStudioError, ValueError, RecursionError) as e:
            logger.warning("Cannot read error log %s: %s", key, e)
            return []

        if not isinstance(raw_entries, list):
            return []

        entries = []
        for raw in raw_entries:
            try:
                entries.append(ErrorLogEntry.model_validate(raw))
            except pydantic.ValidationError:
                logger.debug("Dropping malformed error log entry in %s", key)
        return entries

    def _record(
        self, key: str, source: str, message: str, context: dict[str, Any]
    ) -> ErrorLogEntry:
        entry = ErrorLogEntry(
            id=uuid.uuid4().hex,
            source=source,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=context,
        )
        entries = [*self._load(key), entry][-self.limits[key] :]
        payload = [item.model_dump(mode="json", by_alias=True) for item in entries]

        try:
            self.storage.set(key, json.dumps(payload, ensure_ascii=False))
        except StyleStudioError as e:
            logger.warning("Cannot record %s entry: %s", key, e)
        return entry

    def record_app_error(
        self, error: BaseException | str, context: dict[str, Any] | None = None
    ) -> ErrorLogEntry:
        """Record an error raised by the application.

        Args:
            error: The exception, or a message
            context: Extra JSON-serialisable details (request path, action...)

        Returns:
            The entry, whether or not it could be persisted
        """
        source = type(error).__name__ if isinstance(error, BaseException) else "app"
        return self._record(APP_ERRORS_KEY, source, str(error), context or {})

    def record_ui_error(
        self, message: str, component: str = "ui", context: dict[str, Any] | None = None
    ) -> ErrorLogEntry:
        """Record an error reported by the frontend."""
        return self._record(UI_ERRORS_KEY, component, message, context or {})

    def entries(self) -> list[ErrorLogEntry]:
        """Return app and UI errors merged, newest first.  Never raises."""
        merged = self._load(APP_ERRORS_KEY) + self._load(UI_ERRORS_KEY)
        return sorted(merged, key=lambda entry: entry.timestamp, reverse=True)

    def clear(self) -> None:
        """Delete both error lists."""
        for key in self.limits:
            try:
                self.storage.remove(key)
            except StyleStudioError as e:
                logger.warning("Cannot clear %s: %s", key, e)
