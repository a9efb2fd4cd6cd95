"""
Name Migration Controller.

Moves ``group_memberships`` and ``profiles`` from the single legacy
``full_name`` column to ``first_name`` / ``last_name`` in four phases:

1. **add columns**: emit idempotent DDL and report which columns exist;
2. **backfill**: split every still-empty row with ``split_full_name``;
3. **verify**: count migrated and unmigrated rows and decide the gate;
4. **drop legacy**: re-verify, ask for explicit confirmation, then emit
   the irreversible ``DROP COLUMN`` plus a (lossy) rollback.

Phases 1-3 are safe to re-run at any time, including while users are
live.  Phase 4 is only ever reached by its own call and never retried.

DDL is returned as ``MigrationStep`` text for the operator's SQL
console; only the backfill's row updates go through PostgREST.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from contact_groups.config import AppConfig
from contact_groups.errors import ContactGroupsError, MigrationVerificationFailed
from contact_groups.logger import StructuredLogger
from contact_groups.migrations import sql
from contact_groups.models.enums import MigrationPhase
from contact_groups.models.migration_models import (
    BackfillSummary,
    ColumnStatus,
    MigrationStep,
    TableVerification,
    VerificationReport,
)
from contact_groups.repositories.legacy_name_repository import LegacyNameRepository
from contact_groups.services.base_service import BaseService
from contact_groups.utils.names import split_full_name

ConfirmCallback = Callable[[VerificationReport], bool]

_ACTOR = "operator"


class MigrationController(BaseService):
    """Runs the phases against the given repositories.

    Parameters
    ----------
    repositories:
        One ``LegacyNameRepository`` per target table, built on a
        service-role ``DatabaseManager`` so the backfill is not limited
        by row policies.
    config:
        Supplies ``MIGRATION_BATCH_SIZE``.
    logger:
        Structured logger.
    """

    def __init__(
        self,
        repositories: Sequence[LegacyNameRepository],
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repos: tuple[LegacyNameRepository, ...] = tuple(repositories)
        self._batch_size: int = max(1, config.MIGRATION_BATCH_SIZE)

    @property
    def tables(self) -> tuple[str, ...]:
        return tuple(repo.TABLE for repo in self._repos)

    # ------------------------------------------------------------------
    # Column status
    # ------------------------------------------------------------------

    def column_status(self) -> list[ColumnStatus]:
        """Probe each table for ``first_name``, ``last_name`` and ``full_name``.

        Raises:
            ContactGroupsError: A probe failed for a reason other than a
                missing column.
        """
        return [
            ColumnStatus(
                table=repo.TABLE,
                has_first_name=repo.column_exists("first_name"),
                has_last_name=repo.column_exists("last_name"),
                has_full_name=repo.column_exists("full_name"),
            )
            for repo in self._repos
        ]

    def legacy_column_status(self) -> dict[str, bool]:
        """``{table: full_name still present}``; all ``False`` after the drop."""
        return {status.table: status.has_full_name for status in self.column_status()}

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def add_columns(self) -> MigrationStep:
        """Emit the ``ADD COLUMN IF NOT EXISTS`` statements.

        When the backend is reachable the notes say which tables already
        have both columns, so a re-run is visibly a no-op.
        """
        notes: list[str] = []
        try:
            for status in self.column_status():
                if status.has_first_name and status.has_last_name:
                    notes.append(f"{status.table}: first_name and last_name already present.")
                else:
                    notes.append(f"{status.table}: name columns missing; run the SQL above.")
        except ContactGroupsError as exc:
            self._logger.warning("Column probe failed: %s", exc)
            notes.append(f"Could not inspect current columns: {exc.message}")

        step = MigrationStep(
            phase=MigrationPhase.ADD_COLUMNS,
            title="Add first_name / last_name columns",
            statements=sql.add_columns_sql(self.tables),
            verification_queries=[
                sql.column_check_sql(table, ("first_name", "last_name")) for table in self.tables
            ],
            notes=notes,
        )
        self._logger.info(
            "Add-columns SQL prepared for %s.", ", ".join(self.tables),
            extra={"event": "MIGRATION_ADD_COLUMNS"},
        )
        return step

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def backfill(self, dry_run: bool = False) -> list[BackfillSummary]:
        """Split ``full_name`` into the new columns for every unmigrated row.

        Rows whose ``first_name`` is already set are never read for
        writing and the update itself is guarded on an empty
        ``first_name``, so re-running only touches what is left.
        Row failures are logged and counted; they do not stop the run.
        """
        summaries = [self._backfill_table(repo, dry_run) for repo in self._repos]
        for summary in summaries:
            self._audit(
                action="BACKFILL_DRY_RUN" if dry_run else "BACKFILL",
                entity_type="Table",
                entity_id=summary.table,
                actor=_ACTOR,
                details={
                    "scanned": summary.scanned,
                    "attempted": summary.attempted,
                    "succeeded": summary.succeeded,
                    "failed": summary.failed,
                    "skipped": summary.skipped,
                    "error": summary.error,
                },
            )
        return summaries

    def _backfill_table(self, repo: LegacyNameRepository, dry_run: bool) -> BackfillSummary:
        summary = BackfillSummary(table=repo.TABLE, dry_run=dry_run)

        try:
            status = ColumnStatus(
                table=repo.TABLE,
                has_first_name=repo.column_exists("first_name"),
                has_last_name=repo.column_exists("last_name"),
                has_full_name=repo.column_exists("full_name"),
            )
        except ContactGroupsError as exc:
            summary.error = f"column probe failed: {exc.message}"
            self._logger.error("Backfill of %s aborted: %s", repo.TABLE, summary.error)
            return summary

        if not (status.has_first_name and status.has_last_name):
            summary.error = "first_name/last_name columns missing; run add-columns first"
            self._logger.error("Backfill of %s aborted: %s", repo.TABLE, summary.error)
            return summary
        if not status.has_full_name:
            self._logger.info("%s has no full_name column; nothing to backfill.", repo.TABLE)
            return summary

        try:
            for row in repo.iter_unmigrated(self._batch_size):
                summary.scanned += 1
                first_name, last_name = split_full_name(row.full_name)
                if not first_name:
                    summary.skipped += 1
                    continue

                summary.attempted += 1
                if dry_run:
                    self._logger.debug(
                        "Dry run: %s %s -> (%r, %r)", repo.TABLE, row.id, first_name, last_name,
                    )
                    continue

                try:
                    written = repo.write_split_name(row.id, first_name, last_name)
                except ContactGroupsError as exc:
                    summary.failed += 1
                    summary.failed_ids.append(row.id)
                    self._logger.error(
                        "Backfill failed for %s row %s: %s", repo.TABLE, row.id, exc,
                        extra={"event": "BACKFILL_ROW_FAILED", "table": repo.TABLE},
                    )
                    continue

                if written:
                    summary.succeeded += 1
                else:
                    summary.already_migrated += 1
        except ContactGroupsError as exc:
            summary.error = f"scan failed: {exc.message}"
            self._logger.error(
                "Backfill of %s stopped after %d rows: %s", repo.TABLE, summary.scanned, exc,
            )

        self._logger.info(
            "Backfill %s: scanned=%d attempted=%d succeeded=%d failed=%d skipped=%d%s",
            repo.TABLE,
            summary.scanned,
            summary.attempted,
            summary.succeeded,
            summary.failed,
            summary.skipped,
            " (dry run)" if dry_run else "",
            extra={"event": "BACKFILL_TABLE", "table": repo.TABLE},
        )
        return summary

    def backfill_step(self) -> MigrationStep:
        """The set-based backfill for operators who prefer the SQL console."""
        return MigrationStep(
            phase=MigrationPhase.BACKFILL,
            title="Backfill first_name / last_name from full_name",
            statements=sql.backfill_sql(self.tables),
            verification_queries=[sql.sample_sql(table) for table in self.tables],
            notes=["Only rows with an empty first_name are updated; safe to re-run."],
        )

    # ------------------------------------------------------------------
    # Phase 3
    # ------------------------------------------------------------------

    def verify(self) -> VerificationReport:
        """Count migrated and unmigrated rows and evaluate the cleanup gate.

        The gate passes only when:

        - at least one row in some table has a non-empty ``first_name``
          (an empty database is blocked, not waved through);
        - no non-empty table has zero migrated rows;
        - no row still has an empty ``first_name`` next to a non-empty
          ``full_name``;
        - every count query succeeded.
        """
        tables = [self._verify_table(repo) for repo in self._repos]
        reasons: list[str] = []

        for table in tables:
            if table.error:
                reasons.append(f"{table.table}: verification query failed ({table.error}).")

        if not any(table.error for table in tables):
            if sum(table.migrated_rows for table in tables) == 0:
                reasons.append(
                    "No row in any table has a first_name. An empty or "
                    "un-backfilled database cannot be verified; cleanup is blocked."
                )
            for table in tables:
                if table.total_rows > 0 and table.migrated_rows == 0:
                    reasons.append(
                        f"{table.table}: {table.total_rows} rows but none migrated."
                    )
                if table.unmigrated_rows > 0:
                    reasons.append(
                        f"{table.table}: {table.unmigrated_rows} rows still need the backfill."
                    )

        report = VerificationReport(tables=tables, passed=not reasons, reasons=reasons)
        if report.passed:
            self._logger.info(
                "Verification passed (%d migrated rows).", report.migrated_rows,
                extra={"event": "MIGRATION_VERIFY", "passed": True},
            )
        else:
            self._logger.warning(
                "Verification failed: %s", " ".join(reasons),
                extra={"event": "MIGRATION_VERIFY", "passed": False},
            )
        return report

    def _verify_table(self, repo: LegacyNameRepository) -> TableVerification:
        result = TableVerification(table=repo.TABLE)
        try:
            if not repo.column_exists("first_name"):
                result.error = "first_name column missing; run add-columns first"
                return result
            result.legacy_column_present = repo.column_exists("full_name")
            result.total_rows = repo.count_total()
            result.migrated_rows = repo.count_migrated()
            if result.legacy_column_present:
                result.unmigrated_rows = repo.count_unmigrated(self._batch_size)
        except ContactGroupsError as exc:
            result.error = exc.message
        return result

    def verification_step(self) -> MigrationStep:
        return MigrationStep(
            phase=MigrationPhase.VERIFY,
            title="Verify the backfill",
            verification_queries=sql.verification_sql(self.tables),
        )

    # ------------------------------------------------------------------
    # Phase 4
    # ------------------------------------------------------------------

    def drop_legacy_columns(self, confirm: ConfirmCallback) -> Optional[MigrationStep]:
        """Re-verify, ask *confirm*, then emit the ``DROP COLUMN`` SQL.

        Parameters
        ----------
        confirm:
            Called with the fresh passing report; must return ``True`` to
            proceed.  Only consulted after verification passed.

        Returns
        -------
        MigrationStep or None
            ``None`` when the operator declined.

        Raises
        ------
        MigrationVerificationFailed
            The re-run verification did not pass.  Nothing is emitted.
        """
        report = self.verify()
        if not report.passed:
            raise MigrationVerificationFailed(
                "Migration verification failed; refusing to drop full_name. "
                + " ".join(report.reasons),
                report=report,
            )

        if not confirm(report):
            self._logger.warning(
                "Drop of full_name declined by operator.",
                extra={"event": "MIGRATION_DROP_DECLINED"},
            )
            return None

        self._audit(
            action="DROP_LEGACY_EMITTED",
            entity_type="Column",
            entity_id="full_name",
            actor=_ACTOR,
            details={"tables": ",".join(self.tables), "migrated_rows": report.migrated_rows},
        )
        return MigrationStep(
            phase=MigrationPhase.DROP_LEGACY,
            title="Drop the legacy full_name column",
            statements=sql.drop_legacy_sql(self.tables),
            verification_queries=sql.post_drop_check_sql(self.tables),
            notes=[
                "Irreversible. The rollback below rebuilds full_name from the split "
                "columns but cannot restore repeated spaces from the original values:",
                *sql.rollback_sql(self.tables),
            ],
        )
