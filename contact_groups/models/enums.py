"""
Shared Enumerations.

``StrEnum`` values compare equal to their string form, so log lines and
JSON payloads can carry them without conversion.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure categories the core distinguishes."""

    CONNECTIVITY = "connectivity_error"
    TIMEOUT = "timeout"
    REQUEST_TIMED_OUT = "request_timed_out"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    VALIDATION = "validation_error"
    UPDATE_FAILED = "update_failed"
    MIGRATION_VERIFICATION_FAILED = "migration_verification_failed"


class AuthStatus(StrEnum):
    """Observable states of the auth/session state machine.

    ``PROFILE_UNAVAILABLE`` is degraded but usable: the user is signed in,
    the profile could not be loaded after retries.
    """

    BOOTSTRAPPING = "BOOTSTRAPPING"
    ANONYMOUS = "ANONYMOUS"
    PROFILE_PENDING = "PROFILE_PENDING"
    AUTHENTICATED = "AUTHENTICATED"
    PROFILE_UNAVAILABLE = "PROFILE_UNAVAILABLE"


class AuthEvent(StrEnum):
    """Session-change event names delivered by Supabase auth."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    MFA_CHALLENGE_VERIFIED = "MFA_CHALLENGE_VERIFIED"


class SignUpOutcome(StrEnum):
    """How a successful sign-up finished."""

    VERIFICATION_EMAIL_SENT = "VERIFICATION_EMAIL_SENT"
    SIGNED_IN = "SIGNED_IN"


class NotificationLevel(StrEnum):
    """Severity of a transient user-facing notification."""

    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class MigrationPhase(StrEnum):
    """The four manually gated phases of the full_name migration."""

    ADD_COLUMNS = "ADD_COLUMNS"
    BACKFILL = "BACKFILL"
    VERIFY = "VERIFY"
    DROP_LEGACY = "DROP_LEGACY"
