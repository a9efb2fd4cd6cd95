"""
Backend Connection.

``DatabaseManager`` owns the Supabase client: auth (sessions and
credentials), PostgREST tables (row-level security enforced by the
backend), and session-change notifications.  It holds connections only;
queries live in the repositories.

Two flavours are built from the same class:

- the client app uses the anon key, so every table call runs under the
  signed-in user's row policies;
- the migration console uses the service-role key, which bypasses RLS
  for the backfill's row reads and writes (but not schema changes).

Usage::

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="database"),
        http_timeout_s=config.BACKEND_HTTP_TIMEOUT_S,
    )
"""

from __future__ import annotations

from typing import Optional

from supabase import Client as SupabaseClient
from supabase import ClientOptions, create_client

from contact_groups.logger import StructuredLogger


class DatabaseManager:
    """Holds the Supabase client, configured at construction time.

    When ``supabase_url`` or ``supabase_key`` is empty no client is
    created and :attr:`supabase` raises ``RuntimeError``; services treat
    that like any other connectivity failure.

    Parameters
    ----------
    supabase_url:
        Project URL (``https://xyz.supabase.co``).
    supabase_key:
        Anon key for the client app, service-role key for migrations.
    logger:
        Structured logger.
    http_timeout_s:
        PostgREST transport timeout; the library default when omitted.
    client:
        Pre-built client (tests, or callers that need custom options).
        Skips ``create_client`` entirely.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        logger: StructuredLogger,
        http_timeout_s: Optional[float] = None,
        client: Optional[SupabaseClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._supabase: Optional[SupabaseClient] = client

        if self._supabase is not None:
            return

        if not (supabase_url and supabase_key):
            self._logger.warning(
                "Supabase credentials not configured; backend calls will fail."
            )
            return

        try:
            if http_timeout_s is None:
                self._supabase = create_client(supabase_url, supabase_key)
            else:
                self._supabase = create_client(
                    supabase_url,
                    supabase_key,
                    options=ClientOptions(postgrest_client_timeout=http_timeout_s),
                )
            self._logger.info("Supabase client initialized.")
        except (ValueError, TypeError) as exc:
            self._logger.error("Supabase credential format error: %s", exc)
        except Exception as exc:
            self._logger.error(
                "Unexpected Supabase initialization failure: %s",
                exc,
                exc_info=True,
            )

    @property
    def supabase(self) -> SupabaseClient:
        """Return the Supabase client.

        Raises
        ------
        RuntimeError
            If the client could not be created.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. Check SUPABASE_URL "
                "and the configured key."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when a Supabase client exists."""
        return self._supabase is not None
