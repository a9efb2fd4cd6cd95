"""
Application Configuration.

Pydantic Settings model for the Contact Groups core.  Everything is read
from environment variables and an optional ``.env`` file; inject the
resulting ``AppConfig`` wherever a tunable is needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")  # migration console only
    # Transport deadline for table calls; frees a thread stuck on a dead socket.
    BACKEND_HTTP_TIMEOUT_S: float = 30.0

    # --- Profile access ---
    PROFILE_TABLE: str = "profiles"
    PROFILE_FETCH_TIMEOUT_S: float = 8.0
    PROFILE_FETCH_ATTEMPTS: int = 2
    PROFILE_RETRY_DELAY_S: float = 1.0

    # --- Auth state machine ---
    SESSION_FETCH_TIMEOUT_S: float = 8.0
    SIGN_UP_TIMEOUT_S: float = 5.0
    AUTH_WORKER_THREADS: int = 4

    # Keep writing the legacy ``full_name`` sign-up metadata until the
    # cleanup phase has dropped the column.
    WRITE_LEGACY_FULL_NAME: bool = True

    # --- Migration ---
    MIGRATION_BATCH_SIZE: int = 200

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "contact_groups.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Log a startup warning when the Supabase connection is unset.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so without this the client would start against nothing and fail
        later with a much less obvious error.
        """
        _log = logging.getLogger("contact_groups.config")

        if not Path(".env").exists():
            _log.debug(
                "No .env file found; configuration comes from the "
                "environment and defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; backend calls will fail until it is set."
            )

        return self

    @property
    def log_level(self) -> int:
        """``LOG_LEVEL`` resolved to a ``logging`` level number."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO

    def validate_migration_config(self) -> None:
        """Validate the settings the migration console cannot run without.

        Raises:
            ValueError: If the Supabase URL or the service-role key is missing.
        """
        missing: list[str] = []
        if not self.SUPABASE_URL:
            missing.append("SUPABASE_URL")
        if not self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value():
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if missing:
            raise ValueError(
                "Missing required environment variables: " + ", ".join(missing)
            )


# ---------------------------------------------------------------------------
# Cached factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` instance.

    Check-lock-check so the fast path never takes the lock.  Prefer
    passing an ``AppConfig`` through constructors; this exists for the
    entry points and the logger, which are created before anything is
    wired.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached instance so the next ``get_config()`` re-reads the env."""
    global _config_instance
    with _config_lock:
        _config_instance = None
