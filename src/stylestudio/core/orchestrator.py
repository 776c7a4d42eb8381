"""Exception-aware runner around :class:`MigrationService`.

Interactive callers (the CLI and the admin API) go through the orchestrator
rather than the service: it checks for inconsistencies before anything
destructive happens, logs each run and attaches a post-run validation.

Usage Example
-------------
    >>> orchestrator = MigrationOrchestrator(service)
    >>> report = orchestrator.handle_migration_exceptions()
    >>> report.raise_for_inconsistency()
    >>> result = orchestrator.execute_full_migration()
    >>> print(orchestrator.build_summary(result))
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from stylestudio.core.errors import StyleStudioError
from stylestudio.core.migration import MigrationService
from stylestudio.core.models import ExceptionReport, MigrationOptions, MigrationResult
from stylestudio.core.storage import KeyValueStorage

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """Pre-flight checks, full runs and cleanup for the template migration."""

    def __init__(self, service: MigrationService, storage: KeyValueStorage | None = None):
        self.service = service
        self.storage = storage or service.storage

    def handle_migration_exceptions(
        self,
        catalog_path: Path | str | None = None,
        force_remigration: bool = False,
    ) -> ExceptionReport:
        """Look for conditions that would make a migration unsafe or pointless.

        Never mutates stored data.

        Checks, in order:

        - the storage backend accepts a write/delete check
        - the legacy catalog exists and is readable UTF-8, when a migration
          would read it (nothing migrated yet, or ``force_remigration``)
        - the stored template payload decodes
        - the status flag agrees with the stored templates
        - the stored templates pass :meth:`MigrationService.validate`

        Args:
            catalog_path: Catalog to check; defaults to the service's catalog
            force_remigration: Check as for a forced run, which always reads
                the catalog

        Returns:
            ExceptionReport with ``success=False`` and one recovery action per
            problem found
        """
        actions: list[str] = []

        if not self.storage.is_available():
            actions.append(
                "Storage is unavailable: check that the data directory is writable "
                "and the disk is not full"
            )
            return self._report(actions)

        stored = self.service.stored_status()

        # An unforced run over a completed migration is skipped without parsing.
        if force_remigration or not stored.has_migrated:
            path = Path(catalog_path) if catalog_path else self.service.catalog_path
            try:
                with open(path, encoding="utf-8-sig") as handle:
                    handle.read(1)
            except FileNotFoundError:
                actions.append(f"Legacy catalog not found at {path}: check the catalog path")
            except (OSError, UnicodeDecodeError) as e:
                actions.append(
                    f"Cannot read legacy catalog {path} ({e}): check its permissions and encoding"
                )

        try:
            self.service.template_store.read_raw()
        except StyleStudioError as e:
            actions.append(f"Cannot read stored templates ({e}): check the storage backend")
            return self._report(actions)
        except ValueError:
            actions.append("Stored templates are corrupt: run cleanup, then migrate")
            return self._report(actions)

        live_count = self.service.template_store.count()

        if stored.has_migrated:
            if live_count == 0 and stored.template_count > 0:
                actions.append(
                    "Migration is recorded but no templates are stored: "
                    "re-run migrate with force_remigration"
                )
            elif live_count != stored.template_count:
                actions.append(
                    f"Status records {stored.template_count} template(s) but {live_count} "
                    "are stored: re-run migrate with force_remigration"
                )

            report = self.service.validate()
            if not report.is_valid:
                actions.append(
                    f"{len(report.errors)} stored template problem(s) found: "
                    "run cleanup, then migrate"
                )
        elif live_count > 0:
            actions.append(
                f"{live_count} template(s) are stored but no migration is recorded: "
                "run cleanup then migrate, or migrate with force_remigration"
            )

        return self._report(actions)

    def _report(self, actions: list[str]) -> ExceptionReport:
        if actions:
            for action in actions:
                logger.warning("Migration pre-flight: %s", action)
        else:
            logger.info("Migration pre-flight passed")
        return ExceptionReport(success=not actions, recovery_actions=actions)

    def execute_full_migration(self, options: MigrationOptions | None = None) -> MigrationResult:
        """Run :meth:`MigrationService.migrate` and validate the outcome.

        Args:
            options: Migration options; defaults apply when None

        Returns:
            The migration result with ``validation`` filled in when the run
            succeeded
        """
        options = options or MigrationOptions()
        logger.info(
            "Starting migration (catalog=%s, force=%s, validate_only=%s, backup=%s)",
            options.file_path or self.service.catalog_path,
            options.force_remigration,
            options.validate_only,
            options.create_backup,
        )

        result = self.service.migrate(options)

        if result.success and result.validation is None:
            result = result.model_copy(update={"validation": self.service.validate()})

        logger.info(
            "Migration finished: success=%s, created=%d, errors=%d",
            result.success,
            result.templates_created,
            len(result.errors),
        )
        return result

    def cleanup_migration_data(self) -> bool:
        """Delete all migrated templates and reset the migration status.

        Destructive and irreversible; backups are left in place.

        Returns:
            True on success
        """
        logger.warning("Removing all migrated templates and the migration status")
        return self.service.cleanup()

    def build_summary(self, result: MigrationResult) -> str:
        """Render a plain-text report of a migration run.

        Args:
            result: Result returned by :meth:`execute_full_migration`

        Returns:
            Multi-line summary for terminals and logs
        """
        lines = [
            "=== Migration summary ===",
            f"Run at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
        ]

        if result.skipped:
            lines.append("Migration: skipped (already migrated or validate-only)")
        else:
            lines.append("Migration:")
            lines.append(f"  - status: {'succeeded' if result.success else 'failed'}")
            lines.append(f"  - templates created: {result.templates_created}")
            lines.append(f"  - problems: {len(result.errors)}")
            if result.backup_key:
                lines.append(f"  - backup: {result.backup_key}")

        validation = result.validation
        if validation is not None:
            lines.append("")
            lines.append("Validation:")
            lines.append(f"  - result: {'passed' if validation.is_valid else 'failed'}")
            lines.append(f"  - templates: {validation.template_count}")
            lines.append(f"  - problems: {len(validation.errors)}")

        problems = list(dict.fromkeys([*result.errors, *(validation.errors if validation else [])]))
        if problems:
            lines.append("")
            lines.append("Problems:")
            lines.extend(f"  {number}. {problem}" for number, problem in enumerate(problems, 1))

        healthy = result.success and (validation is None or validation.is_valid)
        lines.append("")
        lines.append(f"Overall: {'OK' if healthy else 'needs attention'}")
        return "\n".join(lines)
