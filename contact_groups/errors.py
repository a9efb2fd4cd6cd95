"""
Error Taxonomy.

Every failure the core can surface is a ``ContactGroupsError`` subclass
tagged with an ``ErrorKind``.  Repositories translate raw Supabase /
PostgREST / transport exceptions through :func:`classify_backend_error`
so that services branch on kinds, never on exception strings.
"""

from __future__ import annotations

from typing import Optional

import httpx
from postgrest.exceptions import APIError

from contact_groups.models.enums import ErrorKind

__all__ = [
    "AccessDeniedError",
    "ConnectivityError",
    "ContactGroupsError",
    "InputValidationError",
    "MigrationVerificationFailed",
    "NotFoundError",
    "OperationTimeoutError",
    "RequestTimedOutError",
    "UpdateFailedError",
    "classify_backend_error",
]


# PostgREST / Postgres codes the core branches on.
NOT_FOUND_CODES: frozenset[str] = frozenset({"PGRST116"})
ACCESS_DENIED_CODES: frozenset[str] = frozenset({"42501", "PGRST301", "PGRST302"})
UNDEFINED_COLUMN_CODES: frozenset[str] = frozenset({"42703", "PGRST204"})
UNDEFINED_TABLE_CODES: frozenset[str] = frozenset({"42P01", "PGRST205"})


class ContactGroupsError(Exception):
    """Base class for every error raised by the core."""

    kind: ErrorKind = ErrorKind.CONNECTIVITY

    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        self.message: str = message
        self.original_error: Optional[BaseException] = original_error
        super().__init__(self.message)


class ConnectivityError(ContactGroupsError):
    """Network / transport failure, or a backend error with no better class."""

    kind = ErrorKind.CONNECTIVITY


class OperationTimeoutError(ContactGroupsError):
    """An explicit client-side deadline elapsed before the call settled."""

    kind = ErrorKind.TIMEOUT


class RequestTimedOutError(OperationTimeoutError):
    """A user-initiated request (sign-up) exceeded its client timeout."""

    kind = ErrorKind.REQUEST_TIMED_OUT


class AccessDeniedError(ContactGroupsError):
    """Row-level security rejected the read or write.  Never retried."""

    kind = ErrorKind.ACCESS_DENIED


class NotFoundError(ContactGroupsError):
    """The requested row does not exist."""

    kind = ErrorKind.NOT_FOUND


class InputValidationError(ContactGroupsError):
    """Malformed caller input (bad phone, empty required field)."""

    kind = ErrorKind.VALIDATION


class UpdateFailedError(ContactGroupsError):
    """An update matched no rows or the backend refused it."""

    kind = ErrorKind.UPDATE_FAILED


class MigrationVerificationFailed(ContactGroupsError):
    """The verification gate before a destructive phase did not pass."""

    kind = ErrorKind.MIGRATION_VERIFICATION_FAILED

    def __init__(
        self,
        message: str,
        report: Optional[object] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, original_error)
        self.report = report


def api_error_code(exc: BaseException) -> str:
    """Return the PostgREST ``code`` of *exc*, or ``""`` when it has none."""
    code = getattr(exc, "code", None)
    return str(code) if code is not None else ""


def classify_backend_error(exc: BaseException, context: str = "") -> ContactGroupsError:
    """Translate a raw backend exception into the core's taxonomy.

    Already-classified errors pass through untouched.

    Parameters
    ----------
    exc:
        Whatever the Supabase client raised.
    context:
        Short label prefixed to the message (e.g. ``"fetch profile"``).
    """
    if isinstance(exc, ContactGroupsError):
        return exc

    prefix = f"{context}: " if context else ""

    if isinstance(exc, APIError):
        code = api_error_code(exc)
        message = exc.message or str(exc)
        if code in NOT_FOUND_CODES:
            return NotFoundError(f"{prefix}{message}", original_error=exc)
        if code in ACCESS_DENIED_CODES:
            return AccessDeniedError(f"{prefix}{message}", original_error=exc)
        return ConnectivityError(f"{prefix}{message}", original_error=exc)

    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (401, 403):
        return AccessDeniedError(f"{prefix}{exc}", original_error=exc)

    # Auth API rejections carry the HTTP status on ``.status``.
    status = getattr(exc, "status", None)
    if isinstance(status, int) and 400 <= status < 500:
        message = getattr(exc, "message", None) or str(exc)
        if status in (401, 403):
            return AccessDeniedError(f"{prefix}{message}", original_error=exc)
        return InputValidationError(f"{prefix}{message}", original_error=exc)

    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return OperationTimeoutError(f"{prefix}{exc}", original_error=exc)

    return ConnectivityError(f"{prefix}{exc}", original_error=exc)
