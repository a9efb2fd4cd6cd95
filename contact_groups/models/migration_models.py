"""
Migration Models.

Typed results for the four phases of the ``full_name`` split.  The
controller returns these; the CLI only renders them.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from contact_groups.models.enums import MigrationPhase

__all__ = [
    "BackfillSummary",
    "ColumnStatus",
    "GroupMembership",
    "LegacyRow",
    "MigrationStep",
    "TableVerification",
    "VerificationReport",
]


class LegacyRow(BaseModel):
    """The columns of a ``profiles`` / ``group_memberships`` row the backfill reads."""

    id: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    model_config = {"extra": "ignore"}

    @property
    def is_unmigrated(self) -> bool:
        """Empty ``first_name`` but a non-empty legacy ``full_name``."""
        return not (self.first_name or "").strip() and bool((self.full_name or "").strip())


class MigrationStep(BaseModel):
    """SQL emitted by a phase for the operator to run by hand."""

    phase: MigrationPhase
    title: str
    statements: list[str] = Field(default_factory=list)
    verification_queries: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class ColumnStatus(BaseModel):
    """Which migration-relevant columns a table currently exposes."""

    table: str
    has_first_name: bool
    has_last_name: bool
    has_full_name: bool


class BackfillSummary(BaseModel):
    """Per-table counts from one backfill run.

    ``scanned`` rows had an empty ``first_name``; of those, ``skipped``
    had nothing to split and ``attempted`` were written.  Every attempt
    ends in ``succeeded``, ``failed`` or ``already_migrated`` (another
    writer filled the row first).  In a dry run nothing is written and
    ``attempted`` counts the rows that would be.

    ``error`` is set when the table could not be scanned at all.
    """

    table: str
    scanned: int = 0
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    already_migrated: int = 0
    dry_run: bool = False
    failed_ids: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class TableVerification(BaseModel):
    """Verification counts for one table."""

    table: str
    total_rows: int = 0
    migrated_rows: int = 0
    unmigrated_rows: int = 0
    legacy_column_present: bool = True
    error: Optional[str] = None


class VerificationReport(BaseModel):
    """Outcome of the verification gate across every target table."""

    tables: list[TableVerification] = Field(default_factory=list)
    passed: bool = False
    reasons: list[str] = Field(default_factory=list)

    @property
    def migrated_rows(self) -> int:
        return sum(table.migrated_rows for table in self.tables)


class GroupMembership(LegacyRow):
    """Migration view of a ``group_memberships`` row."""

    group_id: Optional[str] = None
