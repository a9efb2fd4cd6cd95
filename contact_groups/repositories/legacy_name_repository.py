"""
Legacy Name Repositories.

Row access used by the ``full_name`` migration.  Both target tables
share the same shape for this purpose (``id``, legacy ``full_name``,
``first_name``, ``last_name``), so one base class carries the queries
and the subclasses only pin the table name.

Scans are keyset-paginated on ``id`` so rows written during a run never
shift the page window.
"""

from __future__ import annotations

from typing import Iterator, Optional

from postgrest.exceptions import APIError

from contact_groups.errors import UNDEFINED_COLUMN_CODES, api_error_code
from contact_groups.models.migration_models import GroupMembership, LegacyRow
from contact_groups.repositories.base_repository import BaseRepository

# PostgREST filter matching rows whose ``first_name`` is still empty.
EMPTY_FIRST_NAME_FILTER = "first_name.is.null,first_name.eq."

_LEGACY_COLUMNS = "id, full_name, first_name, last_name"


class LegacyNameRepository(BaseRepository):
    """Queries over the name columns of a single table."""

    TABLE = ""
    ROW_MODEL: type[LegacyRow] = LegacyRow
    SELECT_COLUMNS = _LEGACY_COLUMNS

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def fetch_unmigrated_page(
        self,
        after_id: Optional[str],
        limit: int,
    ) -> list[LegacyRow]:
        """Return up to *limit* rows with an empty ``first_name``, ordered by id."""
        def _select() -> list[LegacyRow]:
            query = (
                self.supabase.table(self.TABLE)
                .select(self.SELECT_COLUMNS)
                .or_(EMPTY_FIRST_NAME_FILTER)
            )
            if after_id is not None:
                query = query.gt("id", after_id)
            response = query.order("id").limit(limit).execute()
            return [self.ROW_MODEL.model_validate(row) for row in response.data or []]

        return self._execute(_select, operation_name=f"scan ({self.TABLE})")

    def iter_unmigrated(self, batch_size: int) -> Iterator[LegacyRow]:
        """Yield every row with an empty ``first_name``, one page at a time."""
        after_id: Optional[str] = None
        while True:
            page = self.fetch_unmigrated_page(after_id, batch_size)
            yield from page
            if len(page) < batch_size:
                return
            after_id = page[-1].id

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_split_name(self, row_id: str, first_name: str, last_name: str) -> bool:
        """Set the split name on *row_id* if its ``first_name`` is still empty.

        Returns:
            ``True`` when the row was written, ``False`` when the guard
            filter matched nothing (already migrated in the meantime).
        """
        def _update() -> bool:
            response = (
                self.supabase.table(self.TABLE)
                .update({"first_name": first_name, "last_name": last_name})
                .eq("id", row_id)
                .or_(EMPTY_FIRST_NAME_FILTER)
                .execute()
            )
            return bool(response.data)

        return self._execute(_update, operation_name=f"backfill ({self.TABLE})")

    # ------------------------------------------------------------------
    # Counts and probes
    # ------------------------------------------------------------------

    def count_total(self) -> int:
        def _count() -> int:
            response = (
                self.supabase.table(self.TABLE)
                .select("id", count="exact", head=True)
                .execute()
            )
            return response.count or 0

        return self._execute(_count, operation_name=f"count ({self.TABLE})")

    def count_migrated(self) -> int:
        """Rows whose ``first_name`` is non-empty."""
        def _count() -> int:
            response = (
                self.supabase.table(self.TABLE)
                .select("id", count="exact", head=True)
                .not_.is_("first_name", "null")
                .neq("first_name", "")
                .execute()
            )
            return response.count or 0

        return self._execute(_count, operation_name=f"count migrated ({self.TABLE})")

    def count_unmigrated(self, batch_size: int) -> int:
        """Rows with an empty ``first_name`` but a non-blank ``full_name``.

        Counted client-side with :attr:`LegacyRow.is_unmigrated` so the
        gate and the backfill agree on whitespace-only legacy names.
        """
        return sum(1 for row in self.iter_unmigrated(batch_size) if row.is_unmigrated)

    def column_exists(self, column: str) -> bool:
        """``True`` if the table exposes *column* through PostgREST."""
        def _probe() -> bool:
            try:
                self.supabase.table(self.TABLE).select(column).limit(1).execute()
            except APIError as exc:
                if api_error_code(exc) in UNDEFINED_COLUMN_CODES:
                    return False
                raise
            return True

        return self._execute(_probe, operation_name=f"probe {column} ({self.TABLE})")


class ProfileNameRepository(LegacyNameRepository):
    TABLE = "profiles"


class GroupMembershipRepository(LegacyNameRepository):
    TABLE = "group_memberships"
    ROW_MODEL = GroupMembership
    SELECT_COLUMNS = "id, group_id, full_name, first_name, last_name"
