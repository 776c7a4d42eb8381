"""StyleStudio FastAPI Application.

This module is the HTTP entry point for the data layer.  It defines the
FastAPI ``app`` instance, all REST API routes, the translation of data-layer
errors into HTTP responses and the ``main()`` function that launches the
uvicorn server.

Architecture
------------
- **Service handles** are built once per process in :func:`lifespan` with
  :func:`~stylestudio.core.services.build_services` and kept on
  ``app.state.services``.
- **History** routes are what the frontend calls after every generation
  and from the history panel.
- **Migration** routes replace the browser-console helpers of the old
  frontend.  Destructive calls require an explicit ``confirm``.
- **Errors** raised by the data layer are mapped to status codes by a single
  exception handler and recorded in the ``app-errors`` log.

Endpoints
---------
======  ========================================  ===============================
Method  Path                                      Purpose
======  ========================================  ===============================
GET     ``/api/history``                          All history records, newest first
POST    ``/api/history``                          Record a completed generation
GET     ``/api/history/stats``                    Record count and stored size
GET     ``/api/history/{id}``                     Single history record
DELETE  ``/api/history/{id}``                     Delete one record
DELETE  ``/api/history?confirm=true``             Delete the whole history
GET     ``/api/templates``                        Migrated templates
GET     ``/api/migration/status``                 Migration status
POST    ``/api/migration/validate``               Validate stored templates
POST    ``/api/migration/check``                  Pre-flight inconsistency check
POST    ``/api/migration/run``                    Check, then migrate
POST    ``/api/migration/cleanup``                Delete templates and status
GET     ``/api/migration/backups``                List template backups
POST    ``/api/migration/backups/{key}/restore``  Restore a backup
GET     ``/api/errors``                           Diagnostic error log
POST    ``/api/errors``                           Report a frontend error
DELETE  ``/api/errors``                           Clear the error log
======  ========================================  ===============================

Error Mapping
-------------
=========================  ====
ValidationError            422
QuotaExceeded              507
StorageUnavailable         503
MigrationInconsistency     409
=========================  ====

Usage
-----
CLI (installed entry point)::

    stylestudio serve

Direct invocation::

    python -m stylestudio.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stylestudio import __version__
from stylestudio.api.models import (
    ConfirmRequest,
    GenerationRecordRequest,
    MigrationRunRequest,
    MigrationRunResponse,
    UIErrorReport,
)
from stylestudio.core.config import config
from stylestudio.core.errors import (
    MigrationInconsistency,
    QuotaExceeded,
    StorageUnavailable,
    StyleStudioError,
    ValidationError,
)
from stylestudio.core.models import (
    BackupInfo,
    ErrorLogEntry,
    ExceptionReport,
    HistoryRecord,
    HistoryStats,
    MigrationStatus,
    TemplateRecord,
    ValidationReport,
)
from stylestudio.core.services import Services, build_services

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[StyleStudioError], int] = {
    ValidationError: 422,
    QuotaExceeded: 507,
    StorageUnavailable: 503,
    MigrationInconsistency: 409,
}

# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service handles on startup and keep them on ``app.state``.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    app.state.services = build_services(config)
    logger.info("Services initialised (storage at %s).", config.storage_path)

    yield


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="StyleStudio",
    description="History and template storage API for the StyleStudio frontend.",
    version=__version__,
    lifespan=lifespan,
)

# The frontend dev server runs on a different port.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _services(request: Request) -> Services:
    return request.app.state.services


def _catalog_path(request: Request, file_path: Path | None) -> Path | None:
    """Resolve a client-supplied catalog path inside the configured catalog directory.

    Raises:
        HTTPException: 400 if the path points outside that directory.
    """
    if file_path is None:
        return None
    catalog_dir = _services(request).config.legacy_catalog_path.parent.resolve()
    resolved = (catalog_dir / file_path).resolve()
    if not resolved.is_relative_to(catalog_dir):
        raise HTTPException(
            status_code=400,
            detail=f"file_path must be inside the catalog directory {catalog_dir}",
        )
    return resolved


# ---------------------------------------------------------------------------
# Error translation.
# ---------------------------------------------------------------------------


@app.exception_handler(StyleStudioError)
async def handle_data_layer_error(request: Request, exc: StyleStudioError) -> JSONResponse:
    """Translate a data-layer error into a JSON error response.

    The error is also recorded in the ``app-errors`` diagnostics log.

    Args:
        request: The request that failed.
        exc: The error raised by the data layer.

    Returns:
        JSON body with ``detail`` and ``error``, plus ``reasons`` for
        validation errors and ``recovery_actions`` for inconsistencies.
    """
    status_code = next(
        (code for kind, code in ERROR_STATUS_CODES.items() if isinstance(exc, kind)),
        500,
    )
    logger.warning("%s %s failed with %d: %s", request.method, request.url.path, status_code, exc)

    services: Services | None = getattr(request.app.state, "services", None)
    if services is not None:
        services.error_log.record_app_error(
            exc, {"method": request.method, "path": request.url.path}
        )

    content: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError):
        content["reasons"] = exc.reasons
    if isinstance(exc, MigrationInconsistency):
        content["recovery_actions"] = exc.recovery_actions
    return JSONResponse(status_code=status_code, content=content)


# ---------------------------------------------------------------------------
# History routes.
# ---------------------------------------------------------------------------


@app.get("/api/history")
async def list_history(request: Request) -> list[HistoryRecord]:
    """Return every valid history record, newest first."""
    return _services(request).history.load_all()


@app.post("/api/history", status_code=201)
async def create_history_record(request: Request, req: GenerationRecordRequest) -> HistoryRecord:
    """Record a completed generation.

    Args:
        req: Validated :class:`GenerationRecordRequest` payload.

    Returns:
        The stored record with its generated id.

    Raises:
        StorageUnavailable: 503 when the backend cannot be written.
        QuotaExceeded: 507 when the history no longer fits; delete records
            and retry.
    """
    return _services(request).history.record_generation(
        req.to_generation_result(),
        original_image_url=req.original_image_url,
    )


@app.get("/api/history/stats")
async def history_stats(request: Request) -> HistoryStats:
    """Return the record count and the stored size in bytes."""
    return _services(request).history.stats()


@app.get("/api/history/{record_id}")
async def get_history_record(request: Request, record_id: str) -> HistoryRecord:
    """Return a single history record.

    Raises:
        HTTPException: 404 if the record is not found.
    """
    record = _services(request).history.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="History record not found")
    return record


@app.delete("/api/history/{record_id}")
async def delete_history_record(request: Request, record_id: str) -> dict:
    """Delete one history record.  Deleting an unknown id is not an error.

    Returns:
        Dictionary with ``success``, ``id`` and ``removed``.
    """
    removed = _services(request).history.remove(record_id)
    return {"success": True, "id": record_id, "removed": removed}


@app.delete("/api/history")
async def clear_history(request: Request, confirm: bool = False) -> dict:
    """Delete the whole history.

    Args:
        confirm: Must be ``true``; the history cannot be recovered.

    Raises:
        HTTPException: 400 without ``confirm=true``.
    """
    if not confirm:
        raise HTTPException(status_code=400, detail="Pass confirm=true to clear the history")
    _services(request).history.clear()
    return {"success": True}


# ---------------------------------------------------------------------------
# Template routes.
# ---------------------------------------------------------------------------


@app.get("/api/templates")
async def list_templates(request: Request, tag: str | None = None) -> list[TemplateRecord]:
    """Return the migrated templates in stored order.

    Args:
        tag: If provided, return only templates carrying this tag.
    """
    templates = _services(request).templates.get_all()
    if tag:
        templates = [template for template in templates if tag in template.tags]
    return templates


# ---------------------------------------------------------------------------
# Migration routes.
# ---------------------------------------------------------------------------


@app.get("/api/migration/status")
async def migration_status(request: Request) -> MigrationStatus:
    """Return the migration status with the live template count."""
    return _services(request).migration.status()


@app.post("/api/migration/validate")
async def validate_templates(request: Request) -> ValidationReport:
    """Validate the stored templates without changing anything."""
    return _services(request).migration.validate()


@app.post("/api/migration/check")
async def check_migration(
    request: Request, file_path: Path | None = None, force: bool = False
) -> ExceptionReport:
    """Run the pre-flight check without changing anything.

    Args:
        file_path: Catalog to check instead of the configured one, relative
            to the configured catalog directory.
        force: Check as for a forced run, which always reads the catalog.

    Raises:
        HTTPException: 400 if ``file_path`` is outside the catalog directory.
    """
    return _services(request).orchestrator.handle_migration_exceptions(
        _catalog_path(request, file_path), force_remigration=force
    )


@app.post("/api/migration/run")
async def run_migration(request: Request, req: MigrationRunRequest) -> MigrationRunResponse:
    """Check for inconsistencies, then migrate the legacy catalog.

    A failed pre-flight check blocks the run unless ``force_remigration`` is
    set, since forcing is the usual recovery.

    Args:
        req: Validated :class:`MigrationRunRequest` payload.

    Returns:
        Migration result, pre-flight report and a plain-text summary.

    Raises:
        MigrationInconsistency: 409 with ``recovery_actions`` when the
            pre-flight check fails and the run is not forced.
    """
    orchestrator = _services(request).orchestrator
    options = req.to_options().model_copy(
        update={"file_path": _catalog_path(request, req.file_path)}
    )
    preflight = orchestrator.handle_migration_exceptions(
        options.file_path, force_remigration=options.force_remigration
    )
    if not options.force_remigration and not options.validate_only:
        preflight.raise_for_inconsistency()

    result = orchestrator.execute_full_migration(options)
    return MigrationRunResponse(
        result=result,
        preflight=preflight,
        summary=orchestrator.build_summary(result),
    )


@app.post("/api/migration/cleanup")
async def cleanup_migration(request: Request, req: ConfirmRequest) -> dict:
    """Delete all migrated templates and reset the migration status.

    Backups are kept and can be restored.

    Raises:
        HTTPException: 400 without ``confirm``; 503 if cleanup failed.
    """
    if not req.confirm:
        raise HTTPException(status_code=400, detail="Set confirm to true to remove migrated data")
    if not _services(request).orchestrator.cleanup_migration_data():
        raise HTTPException(status_code=503, detail="Cleanup failed, see the server log")
    return {"success": True}


@app.get("/api/migration/backups")
async def list_backups(request: Request) -> list[BackupInfo]:
    """Return the stored template backups, newest first."""
    return _services(request).migration.list_backups()


@app.post("/api/migration/backups/{key}/restore")
async def restore_backup(request: Request, key: str) -> MigrationStatus:
    """Restore the templates and status saved in a backup.

    Raises:
        HTTPException: 404 if the backup does not exist, 422 if it is corrupt.
    """
    try:
        return _services(request).migration.restore_backup(key)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Backup '{key}' is corrupt: {e}") from e


# ---------------------------------------------------------------------------
# Diagnostics routes.
# ---------------------------------------------------------------------------


@app.get("/api/errors")
async def list_errors(request: Request) -> list[ErrorLogEntry]:
    """Return app and UI errors, newest first."""
    return _services(request).error_log.entries()


@app.post("/api/errors", status_code=201)
async def report_ui_error(request: Request, req: UIErrorReport) -> ErrorLogEntry:
    """Record an error caught by the frontend."""
    return _services(request).error_log.record_ui_error(
        req.message,
        component=req.component,
        context=req.context,
    )


@app.delete("/api/errors")
async def clear_errors(request: Request) -> dict:
    """Delete both diagnostic error logs."""
    _services(request).error_log.clear()
    return {"success": True}


# ---------------------------------------------------------------------------
# Server entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~stylestudio.core.config.config`
    (``STYLESTUDIO_SERVER_HOST``, ``STYLESTUDIO_SERVER_PORT``,
    ``STYLESTUDIO_LOG_LEVEL``).  Defaults to ``127.0.0.1:7860``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "stylestudio.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
