"""Pydantic models for persisted records and service results.

Every model serialises with camelCase aliases (``originalImageUrl``,
``thumbnailPath``, ``hasMigrated`` ...) because the persisted JSON blobs and
the frontend both use those names.  Python code uses the snake_case attribute
names; ``populate_by_name`` lets either spelling construct a model.

Persisted models
----------------
HistoryRecord
    One completed generation event.  Frozen and strictly typed.
TemplateRecord
    A structured prompt template produced by migrating the legacy catalog.
MigrationStatus
    Process-wide migration flag, template count and last run time.

Result models
-------------
GenerationResult, HistoryStats, MigrationOptions, MigrationResult,
ValidationReport, ExceptionReport, BackupInfo, ErrorLogEntry
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from stylestudio.core.errors import MigrationInconsistency

DEFAULT_THUMBNAIL = "/image/placeholder.png"


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string with millisecond precision.

    The format matches ``Date.prototype.toISOString`` (``2024-05-01T09:30:00.000Z``)
    so timestamps written by either side compare equal as strings.
    """
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Persisted records.
# ---------------------------------------------------------------------------


class HistoryRecord(CamelModel):
    """A single completed generation, kept for browsing.

    Validation is strict: strings must be non-empty strings and the timestamp
    a positive integer (no coercion from ``"123"`` or ``True``).  Records are
    never mutated after creation.

    Attributes:
        id: Store-generated identifier, never reused.
        original_image_url: Reference to the uploaded photo.
        generated_image_url: Reference to the generated image.
        template: Display name of the template used.
        prompt: Prompt text submitted for generation.
        timestamp: Milliseconds since the epoch.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    id: str = Field(..., min_length=1)
    original_image_url: str = Field(..., min_length=1)
    generated_image_url: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    timestamp: int = Field(..., gt=0)


class TemplateRecord(CamelModel):
    """A reusable prompt template.

    Attributes:
        id: Deterministic identifier derived from the catalog entry.
        title: Display title.
        description: Short excerpt of the content.
        content: Prompt body; never blank.
        tags: Tag strings.  Duplicates are dropped, order carries no meaning.
        thumbnail_path: Preview image path served by the frontend.
        created_at: ISO-8601 creation time.
        updated_at: ISO-8601 last update time.
        version: Record format version.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    content: str = Field(..., min_length=1, max_length=5000)
    tags: list[str] = Field(default_factory=list, max_length=10)
    thumbnail_path: str = Field(default=DEFAULT_THUMBNAIL, min_length=1)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    version: int = Field(default=1, gt=0)

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(tag for tag in value if tag))


class MigrationStatus(CamelModel):
    """Persisted outcome of the last successful migration.

    Attributes:
        has_migrated: Whether a migration has completed.
        template_count: Number of templates written by that migration.
        last_migration_time: When it completed, if ever.
    """

    has_migrated: bool = False
    template_count: int = Field(default=0, ge=0)
    last_migration_time: datetime | None = None


# ---------------------------------------------------------------------------
# Collaborator input and store results.
# ---------------------------------------------------------------------------


class GenerationResult(CamelModel):
    """Output of the external image-generation service.

    Attributes:
        image_url: Reference to the generated image.
        timestamp: Completion time in milliseconds since the epoch.
        template: Display name of the template used.
        prompt: Prompt text that was submitted.
        generation_id: Identifier assigned by the service, if any.
    """

    image_url: str = Field(..., min_length=1)
    timestamp: int = Field(..., gt=0)
    template: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    generation_id: str | None = None


class HistoryStats(CamelModel):
    """Size summary of the history store."""

    count: int = 0
    storage_size_bytes: int = 0


# ---------------------------------------------------------------------------
# Migration inputs and results.
# ---------------------------------------------------------------------------


class MigrationOptions(CamelModel):
    """Options for :meth:`MigrationService.migrate`.

    Attributes:
        file_path: Legacy catalog location.  ``None`` uses the service default.
        force_remigration: Re-run even if a migration already completed.
        validate_only: Only validate the stored templates.
        create_backup: Snapshot templates and status before mutating.
    """

    file_path: Path | None = None
    force_remigration: bool = False
    validate_only: bool = False
    create_backup: bool = True


class ValidationReport(CamelModel):
    """Structural check of the stored templates."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    template_count: int = 0


class MigrationResult(CamelModel):
    """Outcome of one migration call.

    Attributes:
        success: Whether the run committed (or was a permitted no-op).
        templates_created: Number of templates written by this call.
        templates: The templates written by this call.
        errors: Parse errors, warnings and failure reasons.
        skipped: ``True`` when nothing was migrated (already migrated or
            validate-only).
        backup_key: Storage key of the snapshot taken before mutating.
        validation: Post-run or validate-only report, when one was made.
    """

    success: bool
    templates_created: int = 0
    templates: list[TemplateRecord] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    skipped: bool = False
    backup_key: str | None = None
    validation: ValidationReport | None = None


class ExceptionReport(CamelModel):
    """Result of the migration pre-flight check."""

    success: bool
    recovery_actions: list[str] = Field(default_factory=list)

    def raise_for_inconsistency(self) -> None:
        """Raise :class:`MigrationInconsistency` if the check found problems."""
        if not self.success:
            raise MigrationInconsistency(
                "Migration status and stored templates are inconsistent",
                self.recovery_actions,
            )


class BackupInfo(CamelModel):
    """Summary of one template backup slot."""

    key: str
    created_at: datetime
    template_count: int
    status: MigrationStatus


class ErrorLogEntry(CamelModel):
    """One diagnostic error record kept for troubleshooting."""

    id: str
    source: str
    message: str
    timestamp: datetime
    context: dict[str, Any] = Field(default_factory=dict)
