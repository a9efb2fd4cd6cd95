"""
Profile Repository.

Row access for the ``profiles`` table.  Every call runs under the
caller's row-level security policies, so any read or write may come
back as ``AccessDeniedError``.
"""

from __future__ import annotations

from contact_groups.database import DatabaseManager
from contact_groups.errors import ContactGroupsError, UpdateFailedError
from contact_groups.logger import StructuredLogger
from contact_groups.models.profile import Profile
from contact_groups.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository):
    """Data access layer for ``Profile`` rows.

    No ``delete()``: profile rows go away only through the backend's
    cascade when the auth user is deleted.
    """

    TABLE = "profiles"

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        table: str = "profiles",
    ) -> None:
        super().__init__(db, logger)
        self.TABLE = table

    def get_by_id(self, user_id: str) -> Profile:
        """Fetch the profile keyed by *user_id*.

        Raises:
            NotFoundError: No row (``PGRST116``).
            AccessDeniedError: Row policy rejected the read.
        """
        def _select() -> Profile:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", user_id)
                .single()
                .execute()
            )
            return Profile.model_validate(response.data)

        return self._execute(_select, operation_name=f"get_by_id ({self.TABLE})")

    def insert(self, profile: Profile) -> Profile:
        """Insert *profile* and return the stored row (with backend timestamps)."""
        payload = profile.model_dump(
            exclude={"created_at", "updated_at", "full_name"},
        )

        def _insert() -> Profile:
            response = self.supabase.table(self.TABLE).insert(payload).execute()
            rows = response.data or []
            return Profile.model_validate(rows[0]) if rows else profile

        created = self._execute(_insert, operation_name=f"insert ({self.TABLE})")
        self._logger.info("Profile created: %s", created.id)
        return created

    def update(self, user_id: str, payload: dict[str, object]) -> Profile:
        """Write *payload* to the row keyed by *user_id*.

        Returns:
            The refreshed row as returned by the backend.

        Raises:
            UpdateFailedError: No row matched, or the backend rejected
                the write.
            ConnectivityError: Transport failure.
        """
        def _update() -> Profile:
            response = (
                self.supabase.table(self.TABLE)
                .update(payload)
                .eq("id", user_id)
                .execute()
            )
            rows = response.data or []
            if not rows:
                raise UpdateFailedError(
                    f"No profile matched id {user_id}; nothing was updated."
                )
            return Profile.model_validate(rows[0])

        try:
            return self._execute(_update, operation_name=f"update ({self.TABLE})")
        except UpdateFailedError:
            raise
        except ContactGroupsError as exc:
            if exc.original_error is not None and hasattr(exc.original_error, "code"):
                raise UpdateFailedError(exc.message, original_error=exc) from exc
            raise
