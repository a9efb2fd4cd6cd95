"""
Business Logic Services Package.

Services depend on the Repository layer for data access and on the
``SessionManager`` for auth state.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict that the application layer can consume
without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from contact_groups.auth import SessionManager
from contact_groups.config import AppConfig
from contact_groups.database import DatabaseManager
from contact_groups.logger import get_logger
from contact_groups.repositories.profile_repository import ProfileRepository
from contact_groups.services.auth_service import AuthService
from contact_groups.services.notifications import NotificationCenter
from contact_groups.services.profile_service import ProfileService


class ServiceContainer(TypedDict):
    """Typed container for the client-side services."""

    session: SessionManager
    notification_center: NotificationCenter
    profile_service: ProfileService
    auth_service: AuthService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    session: Optional[SessionManager] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the client service layer.
    Call it once per consumer; each call yields an independent state
    machine (pass *session* to share an existing state container).

    Args:
        db: DatabaseManager built with the anon key.
        config: Application configuration (injected into services that need it).
        session: Existing state container, or ``None`` for a fresh one.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")
    session = session or SessionManager(logger=logger)

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger, table=config.PROFILE_TABLE)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    notification_center = NotificationCenter(logger=logger)
    profile_service = ProfileService(
        repo=profile_repo,
        db=db,
        config=config,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 3. Orchestration
    # ------------------------------------------------------------------
    auth_service = AuthService(
        db=db,
        session=session,
        profile_service=profile_service,
        notifications=notification_center,
        config=config,
        logger=logger,
    )

    return ServiceContainer(
        session=session,
        notification_center=notification_center,
        profile_service=profile_service,
        auth_service=auth_service,
    )
