"""
Structured logging for the crisis-response service.

Two renderings of the same records:
    • production  → one JSON object per line, ready for log shipping
    • otherwise   → coloured single-line output for a terminal

Request-scoped fields (request_id, client_ip, endpoint, user_id) live in a
ContextVar filled by RequestLoggingMiddleware and the auth dependency, so
every line written while serving a request carries them. Alert-specific
fields are passed per call through ``extra=``:

    logger.warning("Alert %s activated", alert.id, extra={"alert_id": alert.id})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sereno.app.core.config import settings

_request_context: ContextVar[Dict[str, Any]] = ContextVar("sereno_request_context", default={})

# record attributes copied into JSON output when present
_EXTRA_FIELDS = (
    "alert_id", "user_id", "responder_id", "subscription_id", "channel",
    "category", "recipient_count", "duration_ms", "status_code", "endpoint",
)

# third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = (
    "uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine",
    "urllib3", "google.auth", "firebase_admin",
)


def set_request_context(**fields: Any) -> None:
    """Replace the request context. Called with no arguments to clear it."""
    _request_context.set(fields)


def update_request_context(**fields: Any) -> None:
    _request_context.set({**_request_context.get(), **fields})


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "service": settings.APP_NAME,
            "env": settings.ENVIRONMENT,
        }

        request = get_request_context()
        if request:
            entry["request"] = dict(request)

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["error"] = {
                "type": type(exc).__name__,
                "detail": str(exc),
                "where": f"{record.module}:{record.lineno}",
            }
        return json.dumps(entry, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """Terminal output: time, level, request id, alert id, message."""

    _LEVEL_COLOURS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    _RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self._LEVEL_COLOURS.get(record.levelno, "")
        tags = []
        request_id = get_request_context().get("request_id")
        if request_id:
            tags.append(request_id[:8])
        alert_id = getattr(record, "alert_id", None)
        if alert_id:
            tags.append(f"alert={alert_id[:8]}")
        tag_str = f" [{' '.join(tags)}]" if tags else ""

        line = (
            f"{self.formatTime(record, '%H:%M:%S')} "
            f"{colour}{record.levelname:<8}{self._RESET}"
            f"{tag_str} {record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: Optional[str] = None, *, json_output: Optional[bool] = None) -> None:
    """Install one stdout handler on the root logger."""
    use_json = settings.is_production if json_output is None else json_output
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else PrettyFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
