"""Common base for services and the migration controller: logger plus audit trail."""

from __future__ import annotations

from typing import Optional

from contact_groups.logger import StructuredLogger
from contact_groups.utils.audit import AuditEvent, DetailValue, log_audit_event


class BaseService:
    """Holds the injected logger; subclasses add their own collaborators."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    def _audit(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        actor: str,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> AuditEvent:
        return log_audit_event(
            logger=self._logger,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            details=details,
        )
