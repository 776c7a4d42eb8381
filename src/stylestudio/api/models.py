"""Pydantic request and response models for the StyleStudio API.

These models define the JSON schema for the endpoints that are not served
directly by a core model.  FastAPI uses them for automatic request
validation, serialisation and OpenAPI documentation.  Like the persisted
records they accept and emit camelCase field names.

Models
------
GenerationRecordRequest
    Payload for ``POST /api/history``: the output of one completed
    generation plus the uploaded photo it was made from.
MigrationRunRequest
    Payload for ``POST /api/migration/run``.
ConfirmRequest
    Payload for destructive endpoints (``POST /api/migration/cleanup``).
UIErrorReport
    Payload for ``POST /api/errors``: an error caught by the frontend.
MigrationRunResponse
    Result, pre-flight report and plain-text summary of a migration run.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

from pydantic import Field

from stylestudio.core.models import (
    CamelModel,
    ExceptionReport,
    GenerationResult,
    MigrationOptions,
    MigrationResult,
)


class GenerationRecordRequest(CamelModel):
    """Request body for the ``POST /api/history`` endpoint.

    Attributes:
        original_image_url: Reference to the photo the user uploaded.
        image_url: Reference to the generated image.
        template: Display name of the template used.
        prompt: Prompt text submitted for generation.
        timestamp: Completion time in milliseconds since the epoch.  ``None``
            means the server uses the current time.
        generation_id: Identifier assigned by the generation service.
    """

    original_image_url: str = Field(
        ...,
        min_length=1,
        description="Reference to the uploaded source photo.",
    )
    image_url: str = Field(
        ...,
        min_length=1,
        description="Reference to the generated image.",
    )
    template: str = Field(
        ...,
        min_length=1,
        description="Display name of the template used.",
    )
    prompt: str = Field(
        ...,
        min_length=1,
        description="Prompt text submitted for generation.",
    )
    timestamp: int | None = Field(
        default=None,
        gt=0,
        description="Completion time in ms since epoch.  None = now.",
    )
    generation_id: str | None = Field(
        default=None,
        description="Identifier assigned by the generation service.",
    )

    def to_generation_result(self) -> GenerationResult:
        return GenerationResult(
            image_url=self.image_url,
            timestamp=self.timestamp or int(time.time() * 1000),
            template=self.template,
            prompt=self.prompt,
            generation_id=self.generation_id,
        )


class MigrationRunRequest(CamelModel):
    """Request body for the ``POST /api/migration/run`` endpoint.

    Attributes:
        file_path: Legacy catalog to migrate, inside the configured catalog's
            directory.  ``None`` uses the configured catalog.
        force_remigration: Re-run even if a migration already completed.
            Also lets the run proceed when the pre-flight check reports
            inconsistencies.
        validate_only: Only validate the stored templates.
        create_backup: Snapshot current templates and status first.
    """

    file_path: Path | None = Field(
        default=None,
        description="Catalog path within the configured catalog directory, or None.",
    )
    force_remigration: bool = Field(
        default=False,
        description="Re-run even if already migrated.",
    )
    validate_only: bool = Field(
        default=False,
        description="Only validate stored templates.",
    )
    create_backup: bool = Field(
        default=True,
        description="Snapshot templates and status before mutating.",
    )

    def to_options(self) -> MigrationOptions:
        return MigrationOptions(
            file_path=self.file_path,
            force_remigration=self.force_remigration,
            validate_only=self.validate_only,
            create_backup=self.create_backup,
        )


class ConfirmRequest(CamelModel):
    """Request body for destructive endpoints.

    Attributes:
        confirm: Must be ``True`` for the operation to run.
    """

    confirm: bool = Field(
        default=False,
        description="Must be true; the operation cannot be undone.",
    )


class UIErrorReport(CamelModel):
    """Request body for the ``POST /api/errors`` endpoint."""

    message: str = Field(..., min_length=1, description="Error message.")
    component: str = Field(default="ui", description="Frontend component that failed.")
    context: dict[str, Any] = Field(default_factory=dict, description="Extra details.")


class MigrationRunResponse(CamelModel):
    """Response body for the ``POST /api/migration/run`` endpoint."""

    result: MigrationResult
    preflight: ExceptionReport
    summary: str
