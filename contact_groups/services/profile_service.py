"""
Profile Access Service.

Fetches, lazily creates and updates the signed-in user's ``Profile``.

Fetch policy:
    - Every attempt is raced against ``PROFILE_FETCH_TIMEOUT_S``
      (first-settled-wins; a late result is dropped).
    - A missing row is created on the spot from the auth user's email
      and sign-up metadata, so a profile exists after the first fetch.
    - ``fetch_profile_with_retry`` retries timeouts and transport
      failures with a fixed pause.  Access-denied is surfaced at once:
      a policy denial is not transient and must never look like
      "profile not found".

Architectural notes:
    - All table access goes through ``ProfileRepository``.
    - The identity record comes from ``supabase.auth.get_user()``.
    - Race on lazy creation preserved: if the insert fails because
      another client created the row first, the lookup is retried.
"""

from __future__ import annotations

from typing import Callable, Mapping, Optional, Union

from pydantic import ValidationError

from contact_groups.config import AppConfig
from contact_groups.database import DatabaseManager
from contact_groups.errors import (
    AccessDeniedError,
    ContactGroupsError,
    InputValidationError,
    NotFoundError,
    UpdateFailedError,
    classify_backend_error,
)
from contact_groups.logger import StructuredLogger
from contact_groups.models.auth_models import AuthUser
from contact_groups.models.profile import Profile, ProfileUpdate
from contact_groups.repositories.profile_repository import ProfileRepository
from contact_groups.services.base_service import BaseService
from contact_groups.utils.concurrency import retry_operation, run_with_timeout
from contact_groups.utils.names import split_full_name
from contact_groups.utils.phone import is_optional_e164_phone, normalize_phone_input


class ProfileService(BaseService):
    """Fetch-or-create and update for ``profiles`` rows.

    Parameters
    ----------
    repo:
        Profile repository (runs under the caller's row policies).
    db:
        Backend connection, used for ``auth.get_user()``.
    config:
        Timeout and retry tunables.
    logger:
        Structured logger.
    """

    def __init__(
        self,
        repo: ProfileRepository,
        db: DatabaseManager,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._db = db
        self._config = config

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch_profile(self, user_id: str) -> Profile:
        """One timeout-guarded attempt to load (or create) *user_id*'s profile.

        Raises:
            OperationTimeoutError: The attempt did not settle in time.
            AccessDeniedError: Row policy rejected the read or insert.
            ConnectivityError: Transport or unclassified backend failure.
        """
        return run_with_timeout(
            lambda: self._fetch_or_create(user_id),
            self._config.PROFILE_FETCH_TIMEOUT_S,
            operation_name=f"profile fetch for {user_id}",
            logger=self._logger,
        )

    def fetch_profile_with_retry(
        self,
        user_id: str,
        attempts: Optional[int] = None,
        delay_s: Optional[float] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ) -> Profile:
        """:meth:`fetch_profile` with the bounded retry policy.

        ``attempts`` / ``delay_s`` default to ``PROFILE_FETCH_ATTEMPTS``
        and ``PROFILE_RETRY_DELAY_S``.  ``wait`` is forwarded to
        :func:`retry_operation` so an owner can interrupt the pause.
        """
        return retry_operation(
            lambda: self.fetch_profile(user_id),
            attempts=attempts if attempts is not None else self._config.PROFILE_FETCH_ATTEMPTS,
            delay_s=delay_s if delay_s is not None else self._config.PROFILE_RETRY_DELAY_S,
            operation_name="Profile fetch",
            logger=self._logger,
            wait=wait,
        )

    def _fetch_or_create(self, user_id: str) -> Profile:
        try:
            return self._repo.get_by_id(user_id)
        except NotFoundError:
            self._logger.info("No profile row for %s; creating one.", user_id)
        return self._create_profile(user_id)

    def _create_profile(self, user_id: str) -> Profile:
        auth_user = self._current_auth_user()
        if auth_user is None or auth_user.id != user_id:
            raise NotFoundError(
                f"Profile {user_id} is missing and no matching signed-in user "
                "is available to create it."
            )

        new_profile = self.build_profile_from_auth_user(auth_user)

        try:
            created = self._repo.insert(new_profile)
        except AccessDeniedError:
            raise
        except ContactGroupsError as exc:
            # Possible race: another client created the row first.
            self._logger.warning(
                "Profile insert for %s failed (%s). Retrying lookup.", user_id, exc,
            )
            try:
                return self._repo.get_by_id(user_id)
            except NotFoundError:
                raise exc from None

        self._audit(
            action="PROFILE_CREATE",
            entity_type="Profile",
            entity_id=user_id,
            actor=user_id,
            details={"email": created.email, "source": "lazy_fetch"},
        )
        return created

    def _current_auth_user(self) -> Optional[AuthUser]:
        try:
            response = self._db.supabase.auth.get_user()
        except Exception as exc:
            raise classify_backend_error(exc, "get auth user") from exc

        user = getattr(response, "user", None) if response is not None else None
        return AuthUser.model_validate(user) if user is not None else None

    @staticmethod
    def build_profile_from_auth_user(auth_user: AuthUser) -> Profile:
        """Initial profile from the identity record and its sign-up metadata.

        Accounts created before the name split only carry ``full_name``
        metadata; it is split the same way the backfill splits rows.
        """
        first_name = auth_user.metadata_str("first_name")
        last_name = auth_user.metadata_str("last_name")
        if not first_name:
            first_name, split_last = split_full_name(auth_user.metadata_str("full_name"))
            last_name = last_name or split_last

        phone = normalize_phone_input(auth_user.metadata_str("phone"))
        if not is_optional_e164_phone(phone):
            phone = None

        return Profile(
            id=auth_user.id,
            email=auth_user.email or "",
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_profile(
        self,
        user_id: str,
        updates: Union[ProfileUpdate, Mapping[str, object]],
    ) -> Profile:
        """Write the supplied fields and return the refreshed row.

        Raises:
            InputValidationError: Bad phone, blank name or unknown field;
                raised before any backend call.
            UpdateFailedError: No row matched or the backend refused.
        """
        if not isinstance(updates, ProfileUpdate):
            try:
                updates = ProfileUpdate.model_validate(dict(updates))
            except ValidationError as exc:
                raise InputValidationError(_first_validation_message(exc), original_error=exc) from exc

        payload = updates.to_payload()
        if not payload:
            try:
                return self._repo.get_by_id(user_id)
            except NotFoundError as exc:
                raise UpdateFailedError(
                    f"No profile {user_id} to update.", original_error=exc,
                ) from exc

        updated = self._repo.update(user_id, payload)
        self._audit(
            action="PROFILE_UPDATE",
            entity_type="Profile",
            entity_id=user_id,
            actor=user_id,
            details={"fields": ",".join(sorted(payload))},
        )
        return updated


def _first_validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    message = str(errors[0].get("msg", exc))
    # pydantic prefixes ValueError messages raised in validators.
    return message.removeprefix("Value error, ")
