"""
Base Repository.

Shared plumbing for every repository: the ``DatabaseManager`` and
logger references, and :meth:`_execute`, which runs one PostgREST call
and converts whatever it raises into the core's error taxonomy.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from supabase import Client as SupabaseClient

from contact_groups.database import DatabaseManager
from contact_groups.errors import ConnectivityError, ContactGroupsError, classify_backend_error
from contact_groups.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> SupabaseClient:
        """The Supabase client (raises ``RuntimeError`` when unconfigured)."""
        return self._db.supabase

    def _execute(self, operation: Callable[[], T], *, operation_name: str) -> T:
        """Run *operation* and classify any failure.

        Parameters
        ----------
        operation:
            Zero-argument callable issuing the PostgREST request.
        operation_name:
            Label for logs and error messages, e.g.
            ``"get_by_id (profiles)"``.

        Raises
        ------
        ContactGroupsError
            Classified failure: ``NotFoundError``, ``AccessDeniedError``,
            ``OperationTimeoutError`` or ``ConnectivityError``.
        """
        try:
            return operation()
        except ContactGroupsError:
            raise
        except RuntimeError as exc:
            raise ConnectivityError(
                f"{operation_name}: backend unavailable", original_error=exc,
            ) from exc
        except Exception as exc:
            classified = classify_backend_error(exc, operation_name)
            self._logger.debug(
                "%s failed (%s): %s", operation_name, classified.kind, exc,
            )
            raise classified from exc
