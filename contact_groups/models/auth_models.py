"""
Authentication Models.

Pydantic models for the auth state machine and its actions:

- ``AuthUser`` / ``AuthSession``: local copies of the backend's identity
  and session objects, built with ``from_attributes`` so any object with
  the right attributes (supabase-py models included) converts cleanly.
- ``AuthState``: the immutable snapshot consumers read.
- ``AuthResult``: what every action returns; the UI never inspects raw
  exceptions.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from contact_groups.models.enums import AuthStatus, ErrorKind, SignUpOutcome
from contact_groups.models.profile import Profile

__all__ = [
    "AuthResult",
    "AuthSession",
    "AuthState",
    "AuthUser",
    "PROFILE_TABLE_MISSING_MESSAGE",
    "PROFILE_TABLE_MISSING_MARKERS",
    "ValidationResult",
]


# Backend messages meaning the sign-up trigger could not write the
# profile row because the table (or its columns) is not there yet.
PROFILE_TABLE_MISSING_MARKERS: tuple[str, ...] = (
    "database error saving new user",
    'relation "profiles" does not exist',
    'relation "public.profiles" does not exist',
)

PROFILE_TABLE_MISSING_MESSAGE: str = (
    "Signup failed because the user profile table is missing. "
    "Run your database migrations (python main.py migrate, then apply the "
    "printed SQL) and try again."
)


class AuthUser(BaseModel):
    """Backend identity record."""

    id: str
    email: Optional[str] = None
    user_metadata: dict[str, object] = Field(default_factory=dict)

    model_config = {"from_attributes": True, "extra": "ignore"}

    @field_validator("user_metadata", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Optional[dict[str, object]]) -> dict[str, object]:
        return value or {}

    def metadata_str(self, key: str) -> str:
        """String value of ``user_metadata[key]``, ``""`` when absent."""
        value = (self.user_metadata or {}).get(key)
        return str(value).strip() if value is not None else ""


class AuthSession(BaseModel):
    """Backend-issued session, cached for consumers only."""

    access_token: str = ""
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    user: AuthUser

    model_config = {"from_attributes": True, "extra": "ignore"}


class AuthState(BaseModel):
    """Point-in-time view of the auth state machine.

    Attributes
    ----------
    user, session, profile:
        ``None`` unless the corresponding piece is known.
    loading:
        ``True`` only while the initial session lookup is outstanding.
    status:
        Which state the machine is in.
    """

    user: Optional[AuthUser] = None
    profile: Optional[Profile] = None
    session: Optional[AuthSession] = None
    loading: bool = True
    status: AuthStatus = AuthStatus.BOOTSTRAPPING

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


class ValidationResult(BaseModel):
    """Outcome of a single client-side field check."""

    is_valid: bool
    error_message: Optional[str] = None


class AuthResult(BaseModel):
    """Unified response for sign-up, sign-in, sign-out and profile actions.

    Attributes
    ----------
    success:
        ``True`` when the action completed.
    error_kind:
        Failure category (``None`` on success).
    error_message:
        Human-readable message, already shown to the user as a
        notification.
    outcome:
        For sign-up: whether an email confirmation is pending or the
        user is already signed in.
    profile:
        The refreshed profile after a successful update.
    """

    success: bool
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    outcome: Optional[SignUpOutcome] = None
    user_id: Optional[str] = None
    profile: Optional[Profile] = None
