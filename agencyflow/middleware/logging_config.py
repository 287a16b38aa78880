"""
Structured logging for the AgencyFlow core.

Every service logs with ``extra={"event_type": ..., <entity ids>}``. The
``event_type`` is dotted (``project.updated``, ``notification.delivery_failed``)
and its first segment is emitted as ``domain``, so project and notification
activity can be filtered apart in the log aggregator.

Records are stamped with the current request id and requester by
``RequestContextFilter`` whenever they are emitted inside a Flask request, so
service code never has to pass them along.

Production writes one JSON object per line; development and tests use a
single-line readable format.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Entity and actor fields, emitted as top-level keys.
CONTEXT_FIELDS = ("user_id", "role", "project_id", "notification_id")

# Per-request fields written by the timing middleware, nested under "request".
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")


def _domain_of(event_type):
    return event_type.split(".", 1)[0] if event_type else None


class RequestContextFilter(logging.Filter):
    """Fill ``request_id``, ``user_id`` and ``role`` from ``g`` when absent."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        if getattr(record, "request_id", None) is None:
            record.request_id = getattr(g, "request_id", None)
        requester = getattr(g, "requester", None)
        if requester is not None:
            if getattr(record, "user_id", None) is None:
                record.user_id = requester.id
            if getattr(record, "role", None) is None:
                record.role = requester.role
        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        event_type = getattr(record, "event_type", None)
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if event_type:
            entry["event_type"] = event_type
            entry["domain"] = _domain_of(event_type)
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        http = {k: getattr(record, k) for k in REQUEST_FIELDS if getattr(record, k, None) is not None}
        if http:
            entry["request"] = http
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger [event] message (project=.. user=..) [Nms]``"""

    _LEVEL_COLORS = {"WARNING": "\033[33m", "ERROR": "\033[31m", "CRITICAL": "\033[35m"}
    _RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        color = self._LEVEL_COLORS.get(record.levelname, "")
        level = f"{color}{record.levelname:<8}{self._RESET if color else ''}"

        parts = [ts, level, record.name]
        event_type = getattr(record, "event_type", None)
        if event_type:
            parts.append(f"[{event_type}]")
        parts.append(record.getMessage())

        ids = [
            f"{key.removesuffix('_id')}={getattr(record, key)}"
            for key in ("project_id", "notification_id", "user_id")
            if getattr(record, key, None) is not None
        ]
        if ids:
            parts.append(f"({' '.join(ids)})")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger.

    LOG_LEVEL overrides the default (INFO in production, DEBUG otherwise).
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("werkzeug", "sqlalchemy.engine", "flask_limiter"):
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured level=%s json=%s", level_name, is_prod)
