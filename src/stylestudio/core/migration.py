"""Migration of the legacy prompt catalog into the template store.

The migration is a one-time, idempotent transformation tracked by a small
status record under the ``migration-status`` key.

State Machine
-------------
::

    NOT_MIGRATED ──migrate()──> MIGRATING ──ok──> MIGRATED
                                    │
                                    └──error──> FAILED

The stored status is written only at the end of a successful run, so a
failed run leaves the previously committed state intact.  A failed or
interrupted run is recovered by calling :meth:`MigrationService.migrate`
again, or :meth:`MigrationService.cleanup` followed by a fresh migration.

Backups
-------
Before mutating anything, ``migrate`` snapshots the raw ``templates`` and
``migration-status`` blobs under ``templates-backup-<ms>``.  Backups are
never restored automatically; :meth:`MigrationService.restore_backup` is the
caller's decision.  Only the newest ``backup_retention`` slots are kept.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import pydantic

from stylestudio.core.catalog_parser import LegacyCatalogParser
from stylestudio.core.errors import StyleStudioError
from stylestudio.core.models import (
    BackupInfo,
    MigrationOptions,
    MigrationResult,
    MigrationStatus,
    TemplateRecord,
    ValidationReport,
    utc_now_iso,
)
from stylestudio.core.storage import KeyValueStorage
from stylestudio.core.template_store import TEMPLATES_KEY, TemplateStore, decode_template_payload
from stylestudio.core.validation import validate_template_records

logger = logging.getLogger(__name__)

STATUS_KEY = "migration-status"
BACKUP_PREFIX = "templates-backup-"
DEFAULT_BACKUP_RETENTION = 5


class MigrationState(str, Enum):
    """Lifecycle state of the migration as seen by this process."""

    NOT_MIGRATED = "not_migrated"
    MIGRATING = "migrating"
    MIGRATED = "migrated"
    FAILED = "failed"


def _backup_timestamp(key: str) -> int:
    try:
        return int(key[len(BACKUP_PREFIX) :])
    except ValueError:
        return 0


class MigrationService:
    """Idempotent migrate / validate / status / cleanup over the template store.

    Attributes
    ----------
    storage : KeyValueStorage
        Backend holding the status record and backups
    template_store : TemplateStore
        Destination of migrated templates
    catalog_path : Path
        Default legacy catalog location
    backup_retention : int
        Number of backup slots kept after pruning
    state : MigrationState
        State after the most recent operation in this process

    Examples
    --------
        >>> service = MigrationService(storage, TemplateStore(storage), Path("prompt.txt"))
        >>> service.migrate().templates_created
        17
        >>> service.migrate().skipped
        True
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        template_store: TemplateStore,
        catalog_path: Path | str,
        backup_retention: int = DEFAULT_BACKUP_RETENTION,
    ):
        self.storage = storage
        self.template_store = template_store
        self.catalog_path = Path(catalog_path)
        self.backup_retention = backup_retention
        self.state = (
            MigrationState.MIGRATED
            if self.stored_status().has_migrated
            else MigrationState.NOT_MIGRATED
        )

    # -- status --------------------------------------------------------------

    def stored_status(self) -> MigrationStatus:
        """Return the status record exactly as stored.

        Never raises.  A missing, unreadable or corrupt record reads as
        "not migrated".
        """
        try:
            blob = self.storage.get(STATUS_KEY)
        except StyleStudioError as e:
            logger.warning("Cannot read migration status: %s", e)
            return MigrationStatus()

        if not blob:
            return MigrationStatus()

        try:
            return MigrationStatus.model_validate_json(blob)
        except pydantic.ValidationError as e:
            logger.error("Stored migration status is corrupt, treating as not migrated: %s", e)
            return MigrationStatus()

    def status(self) -> MigrationStatus:
        """Return the stored status with the live template count.

        Never raises.
        """
        return self.stored_status().model_copy(
            update={"template_count": self.template_store.count()}
        )

    def _write_status(self, status: MigrationStatus) -> None:
        self.storage.set(STATUS_KEY, status.model_dump_json(by_alias=True))

    # -- validation ----------------------------------------------------------

    def validate(self) -> ValidationReport:
        """Check every stored template for schema errors and duplicate ids.

        Never raises; unreadable or corrupt storage is reported as an error.

        Returns:
            ValidationReport with one line per problem
        """
        try:
            raw_entries = self.template_store.read_raw()
        except StyleStudioError as e:
            return ValidationReport(is_valid=False, errors=[f"Cannot read templates: {e}"])
        except ValueError as e:
            return ValidationReport(is_valid=False, errors=[f"Stored templates are corrupt: {e}"])

        report = validate_template_records(raw_entries)
        if report.is_valid:
            logger.info("Validated %d stored template(s)", report.template_count)
        else:
            logger.warning(
                "Template validation found %d problem(s) in %d template(s)",
                len(report.errors),
                report.template_count,
            )
        return report

    # -- migration -----------------------------------------------------------

    def migrate(self, options: MigrationOptions | None = None) -> MigrationResult:
        """Migrate the legacy catalog into the template store.

        Steps:

        1. ``validate_only``: return :meth:`validate` wrapped in a result.
        2. Already migrated and not forced: succeed without changes.
        3. Snapshot current templates and status when ``create_backup``.
        4. Parse the catalog, keeping the last entry for each duplicate id.
        5. Replace the stored templates in one write.
        6. Write the new status.

        Args:
            options: Migration options; defaults apply when None

        Returns:
            MigrationResult.  Failures are reported in ``errors`` with
            ``success=False``; the stored status is left unchanged and any
            backup taken is kept.
        """
        options = options or MigrationOptions()

        if options.validate_only:
            report = self.validate()
            return MigrationResult(
                success=report.is_valid,
                skipped=True,
                errors=report.errors,
                validation=report,
            )

        parser = LegacyCatalogParser(options.file_path or self.catalog_path)
        return self._run(parser, options)

    def migrate_from_text(
        self,
        text: str,
        force_remigration: bool = False,
        create_backup: bool = True,
    ) -> MigrationResult:
        """Run the migration over an in-memory catalog.

        Args:
            text: Catalog contents
            force_remigration: Re-run even if a migration already completed
            create_backup: Snapshot current data before mutating

        Returns:
            MigrationResult, as for :meth:`migrate`
        """
        options = MigrationOptions(force_remigration=force_remigration, create_backup=create_backup)
        return self._run(LegacyCatalogParser(text=text), options)

    def _run(self, parser: LegacyCatalogParser, options: MigrationOptions) -> MigrationResult:
        current = self.stored_status()
        if current.has_migrated and not options.force_remigration:
            logger.info(
                "Templates already migrated (%d), skipping; use force_remigration to re-run",
                current.template_count,
            )
            return MigrationResult(success=True, skipped=True)

        self.state = MigrationState.MIGRATING
        logger.info("Migrating templates from %s", parser.source)

        backup_key = None
        if options.create_backup:
            try:
                backup_key = self.create_backup()
            except StyleStudioError as e:
                return self._fail([f"Backup failed, nothing was changed: {e}"], None)

        try:
            candidates: dict[str, TemplateRecord] = {}
            for template in parser:
                if template.id in candidates:
                    logger.warning("Duplicate template id %s, keeping the later entry", template.id)
                candidates[template.id] = template
        except (OSError, UnicodeDecodeError) as e:
            return self._fail([f"Cannot read catalog {parser.source}: {e}"], backup_key)

        errors = [str(error) for error in parser.errors]
        templates = list(candidates.values())
        if not templates and parser.entries_seen:
            errors.append("Catalog contains no valid templates")
            return self._fail(errors, backup_key)

        try:
            previous_blob = self.storage.get(TEMPLATES_KEY)
            self.template_store.replace_all(templates)
        except StyleStudioError as e:
            errors.append(f"Cannot store templates: {e}")
            return self._fail(errors, backup_key)

        try:
            self._write_status(
                MigrationStatus(
                    has_migrated=True,
                    template_count=len(templates),
                    last_migration_time=datetime.now(timezone.utc),
                )
            )
        except StyleStudioError as e:
            self._rollback_templates(previous_blob, backup_key)
            errors.append(f"Cannot store migration status: {e}")
            return self._fail(errors, backup_key)

        self.state = MigrationState.MIGRATED
        logger.info(
            "Migration complete: %d template(s) created, %d entr%s skipped",
            len(templates),
            parser.skipped,
            "y" if parser.skipped == 1 else "ies",
        )
        return MigrationResult(
            success=True,
            templates_created=len(templates),
            templates=templates,
            errors=errors,
            backup_key=backup_key,
        )

    def _rollback_templates(self, previous_blob: str | None, backup_key: str | None) -> None:
        try:
            if previous_blob is None:
                self.storage.remove(TEMPLATES_KEY)
            else:
                self.storage.set(TEMPLATES_KEY, previous_blob)
        except StyleStudioError as e:
            logger.error(
                "Cannot roll back templates (%s); restore backup %s manually",
                e,
                backup_key or "<none>",
            )

    def _fail(self, errors: list[str], backup_key: str | None) -> MigrationResult:
        self.state = MigrationState.FAILED
        for error in errors:
            logger.error("Migration failed: %s", error)
        if backup_key:
            logger.info("Backup %s kept for recovery", backup_key)
        return MigrationResult(success=False, errors=errors, backup_key=backup_key)

    # -- cleanup -------------------------------------------------------------

    def cleanup(self) -> bool:
        """Delete all migrated templates and reset the status.

        Backups are kept.  Destructive and irreversible.

        Returns:
            True on success, False if the backend could not be written
        """
        try:
            self.template_store.clear()
            self.storage.remove(STATUS_KEY)
        except StyleStudioError as e:
            logger.error("Migration cleanup failed: %s", e)
            return False

        self.state = MigrationState.NOT_MIGRATED
        logger.info("Migration data cleaned up")
        return True

    # -- backups -------------------------------------------------------------

    def create_backup(self) -> str | None:
        """Snapshot the current templates and status into a new backup slot.

        Returns:
            The backup key, or None when there was nothing to back up

        Raises:
            StorageUnavailable: If the backend cannot be used
            QuotaExceeded: If the snapshot does not fit in the storage budget
        """
        templates_blob = self.storage.get(TEMPLATES_KEY)
        status_blob = self.storage.get(STATUS_KEY)
        if not templates_blob and not status_blob:
            logger.debug("Nothing to back up")
            return None

        # Keys must sort after every existing slot, even within one millisecond.
        created = int(time.time() * 1000)
        existing = self._backup_keys()
        if existing:
            created = max(created, _backup_timestamp(existing[0]) + 1)
        key = f"{BACKUP_PREFIX}{created}"

        payload = {
            "createdAt": utc_now_iso(),
            "templates": templates_blob,
            "status": status_blob,
        }
        self.storage.set(key, json.dumps(payload, ensure_ascii=False))
        logger.info("Created backup %s", key)

        self._prune_backups()
        return key

    def _backup_keys(self) -> list[str]:
        """Backup keys, newest first."""
        return sorted(self.storage.keys(BACKUP_PREFIX), key=_backup_timestamp, reverse=True)

    def _prune_backups(self) -> None:
        try:
            for key in self._backup_keys()[self.backup_retention :]:
                self.storage.remove(key)
                logger.info("Pruned old backup %s", key)
        except StyleStudioError as e:
            logger.warning("Cannot prune old backups: %s", e)

    def list_backups(self) -> list[BackupInfo]:
        """Describe every stored backup, newest first.

        Never raises; unreadable or corrupt slots are skipped.
        """
        try:
            keys = self._backup_keys()
        except StyleStudioError as e:
            logger.warning("Cannot list backups: %s", e)
            return []

        backups = []
        for key in keys:
            try:
                payload = json.loads(self.storage.get(key) or "")
                status_blob = payload.get("status")
                backups.append(
                    BackupInfo(
                        key=key,
                        created_at=payload["createdAt"],
                        template_count=len(decode_template_payload(payload.get("templates"))),
                        status=(
                            MigrationStatus.model_validate_json(status_blob)
                            if status_blob
                            else MigrationStatus()
                        ),
                    )
                )
            except (StyleStudioError, ValueError, RecursionError, KeyError, AttributeError) as e:
                logger.warning("Skipping unreadable backup %s: %s", key, e)
        return backups

    def restore_backup(self, key: str) -> MigrationStatus:
        """Put the templates and status saved in backup ``key`` back in place.

        Args:
            key: A key returned by :meth:`create_backup` or :meth:`list_backups`

        Returns:
            The status after restoring, with the live template count

        Raises:
            LookupError: If no backup is stored under ``key``
            ValueError: If the backup is corrupt
            StorageUnavailable: If the backend cannot be used
            QuotaExceeded: If the restored data does not fit
        """
        blob = self.storage.get(key) if key.startswith(BACKUP_PREFIX) else None
        if blob is None:
            raise LookupError(f"No backup named '{key}'")

        try:
            payload = json.loads(blob)
        except RecursionError as e:
            raise ValueError(f"Backup '{key}' is nested too deeply to decode") from e
        if not isinstance(payload, dict):
            raise ValueError(f"Backup '{key}' is corrupt")

        restore_plan = (
            (TEMPLATES_KEY, payload.get("templates")),
            (STATUS_KEY, payload.get("status")),
        )
        for target, value in restore_plan:
            if value:
                self.storage.set(target, value)
            else:
                self.storage.remove(target)

        restored = self.status()
        self.state = (
            MigrationState.MIGRATED if restored.has_migrated else MigrationState.NOT_MIGRATED
        )
        logger.info("Restored backup %s (%d template(s))", key, restored.template_count)
        return restored
