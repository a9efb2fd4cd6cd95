"""
User Notifications.

Transient, non-blocking messages for the UI layer ("Profile updated",
"Could not load your profile").  ``NotificationCenter`` logs every
notification and fans it out to whoever subscribed; with no subscriber
the log line is the only trace.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel, Field

from contact_groups.logger import StructuredLogger
from contact_groups.models.enums import NotificationLevel
from contact_groups.services.base_service import BaseService


class Notification(BaseModel):
    level: NotificationLevel
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


NotificationListener = Callable[[Notification], None]


class NotificationCenter(BaseService):
    """Publishes notifications to subscribed listeners."""

    def __init__(self, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._lock = threading.Lock()
        self._listeners: list[NotificationListener] = []

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def success(self, message: str) -> Notification:
        return self.publish(NotificationLevel.SUCCESS, message)

    def warning(self, message: str) -> Notification:
        return self.publish(NotificationLevel.WARNING, message)

    def error(self, message: str) -> Notification:
        return self.publish(NotificationLevel.ERROR, message)

    def publish(self, level: NotificationLevel, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        log = self._logger.info if level == NotificationLevel.SUCCESS else self._logger.warning
        log(
            "Notification (%s): %s", level, message,
            extra={"event": "NOTIFICATION", "level": str(level)},
        )

        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(notification)
            except Exception as exc:
                self._logger.error("Notification listener failed: %s", exc, exc_info=True)
        return notification
