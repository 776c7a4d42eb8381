"""Schema checks shared by the read paths, the write paths and ``validate()``.

Persisted JSON is never trusted: another tab, an older release or a manual
edit may have left entries of the wrong shape.  Instead of duck-typing each
field at every call site, every raw entry goes through one checker that
returns either :class:`Valid` (carrying the parsed model) or :class:`Invalid`
(carrying the reasons).  Read paths drop ``Invalid`` results, write paths turn
them into :class:`~stylestudio.core.errors.ValidationError`, and the migration
``validate()`` operation reports them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import pydantic

from stylestudio.core.errors import ValidationError
from stylestudio.core.models import HistoryRecord, TemplateRecord, ValidationReport

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


@dataclass(frozen=True)
class Valid(Generic[ModelT]):
    """A raw entry that parsed cleanly into ``record``."""

    record: ModelT
    is_valid: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Invalid:
    """A raw entry that failed validation, with one reason per problem."""

    reasons: tuple[str, ...]
    is_valid: bool = field(default=False, init=False)


def _format_errors(exc: pydantic.ValidationError) -> tuple[str, ...]:
    """Flatten a pydantic error into ``field: message`` lines."""
    reasons = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "record"
        reasons.append(f"{location}: {error['msg']}")
    return tuple(reasons)


def _check(model: type[ModelT], raw: Any) -> Valid[ModelT] | Invalid:
    if isinstance(raw, model):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        return Invalid((f"expected an object, got {type(raw).__name__}",))
    try:
        return Valid(model.model_validate(dict(raw)))
    except pydantic.ValidationError as e:
        return Invalid(_format_errors(e))


def check_history_record(raw: Any) -> Valid[HistoryRecord] | Invalid:
    """Check a raw history entry (or an existing record) against the schema.

    Args:
        raw: Decoded JSON value, mapping or :class:`HistoryRecord`

    Returns:
        ``Valid`` with the parsed record, or ``Invalid`` with reasons
    """
    return _check(HistoryRecord, raw)


def check_template_record(raw: Any) -> Valid[TemplateRecord] | Invalid:
    """Check a raw template entry (or an existing record) against the schema.

    Args:
        raw: Decoded JSON value, mapping or :class:`TemplateRecord`

    Returns:
        ``Valid`` with the parsed record, or ``Invalid`` with reasons
    """
    return _check(TemplateRecord, raw)


def require_history_record(raw: Any) -> HistoryRecord:
    """Return the validated record or raise :class:`ValidationError`.

    Raises:
        ValidationError: If ``raw`` does not satisfy the history schema
    """
    result = check_history_record(raw)
    if isinstance(result, Invalid):
        raise ValidationError("Invalid history record", result.reasons)
    return result.record


def filter_valid(raw_entries: Iterable[Any], checker) -> list:
    """Keep the records that pass ``checker``, dropping the rest silently.

    Args:
        raw_entries: Decoded JSON entries
        checker: :func:`check_history_record` or :func:`check_template_record`

    Returns:
        Parsed records in their original order
    """
    records = []
    for position, raw in enumerate(raw_entries):
        result = checker(raw)
        if isinstance(result, Invalid):
            logger.debug("Dropping stored entry %d: %s", position, "; ".join(result.reasons))
            continue
        records.append(result.record)
    return records


def validate_template_records(raw_entries: list[Any]) -> ValidationReport:
    """Check stored template entries for schema errors and duplicate ids.

    Args:
        raw_entries: Unfiltered template payload as read from storage

    Returns:
        ValidationReport listing one error line per problem found
    """
    errors: list[str] = []
    seen_ids: dict[str, int] = {}

    for position, raw in enumerate(raw_entries, start=1):
        result = check_template_record(raw)
        if isinstance(result, Invalid):
            errors.append(f"Template {position}: {'; '.join(result.reasons)}")
            continue

        template_id = result.record.id
        if template_id in seen_ids:
            errors.append(
                f"Template {position}: duplicate id '{template_id}' "
                f"(first seen at template {seen_ids[template_id]})"
            )
        else:
            seen_ids[template_id] = position

    return ValidationReport(
        is_valid=not errors,
        errors=errors,
        template_count=len(raw_entries),
    )
