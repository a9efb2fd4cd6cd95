"""
Structured Audit Events.

State changes that matter after the fact (lazy profile creation, profile
edits, migration phases) are logged as a validated JSON ``AuditEvent``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from contact_groups.logger import StructuredLogger

__all__ = ["AuditEvent", "DetailValue", "log_audit_event"]

# Flat scalar values only; nested structures belong in their own model.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """One audit trail entry, validated before it is serialised."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    actor: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    actor: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Emit an ``AUDIT:`` log line and return the event that was logged.

    Args:
        logger: Destination logger.
        action: What happened (``"PROFILE_CREATE"``, ``"BACKFILL"``...).
        entity_type: Kind of thing affected (``"Profile"``, ``"Table"``).
        entity_id: Key of the affected entity.
        actor: User id, or ``"operator"`` for migration runs.
        details: Extra flat context.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        details=details or {},
    )
    logger.info(
        "AUDIT: %s",
        json.dumps(event.model_dump(), default=str),
        extra={"event": action},
    )
    return event
