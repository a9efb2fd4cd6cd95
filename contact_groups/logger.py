"""
Structured JSON Logging.

One JSON object per line.  Auth transitions and migration phases pass an
``event`` name through ``extra=`` (``"SESSION_CHANGED"``,
``"BACKFILL_TABLE"``...); it is lifted to a top-level key so runs can be
filtered without parsing the message text.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

_JSON_SCALARS = (str, int, float, bool, type(None))

# Attribute names present on every LogRecord; anything else arrived via extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render a record as ``{"ts", "level", "logger", "thread", "msg", ...}``.

    Caller-supplied fields go under ``context`` (scalars kept as JSON
    scalars, everything else stringified); ``event`` is promoted next to
    ``msg``.  Tracebacks land in ``exc``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }

        context = {
            key: value if isinstance(value, _JSON_SCALARS) else str(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        }
        event = context.pop("event", None)
        if event is not None:
            payload["event"] = str(event)
        if context:
            payload["context"] = context

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            payload["exc"] = record.exc_text

        return json.dumps(payload, ensure_ascii=False)


class StructuredLogger:
    """Injectable JSON logger.

    Every service and repository takes one through its constructor::

        logger = StructuredLogger(name="migration", stream=sys.stderr)
        controller = MigrationController(repositories, config, logger)

    Handlers are attached once per logger name.  ``level``, ``log_file``,
    ``max_bytes`` and ``backup_count`` default to ``AppConfig``; an
    empty ``log_file`` keeps output on the stream only.
    """

    def __init__(
        self,
        name: str = "contact_groups",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Imported here: config emits its own startup warnings through logging.
        from contact_groups.config import get_config
        cfg = get_config()

        self._level: int = cfg.log_level if level is None else level
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(self._level)
        self._logger.propagate = False

        if not self._logger.handlers:
            self._attach(logging.StreamHandler(stream or sys.stdout))
            path = cfg.LOG_FILE if log_file is None else log_file
            if path:
                self._attach_file(
                    path,
                    cfg.LOG_MAX_BYTES if max_bytes is None else max_bytes,
                    cfg.LOG_BACKUP_COUNT if backup_count is None else backup_count,
                )

    def _attach(self, handler: logging.Handler) -> None:
        handler.setLevel(self._level)
        handler.setFormatter(JSONFormatter())
        self._logger.addHandler(handler)

    def _attach_file(self, path: str, max_bytes: int, backup_count: int) -> None:
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning("Log file %s unavailable (%s); stream only.", path, exc)
            return
        self._attach(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def log(self, level: int, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self.log(logging.CRITICAL, msg, *args, **kwargs)

    def close(self) -> None:
        """Flush and detach every handler of this logger name.

        The next ``StructuredLogger`` with the same name starts fresh,
        which lets a short-lived console bind to the current stderr.
        """
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()


def get_logger(name: str = "contact_groups") -> StructuredLogger:
    return StructuredLogger(name=name)
