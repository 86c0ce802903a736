"""
Structured logging for the case workflow.

Services log with ``extra={"case_id": ..., "actor_id": ...}``; those keys
end up as fields of the JSON line in production and as a short suffix in
the readable development format.  A filter stamps every record emitted
inside a request with its ``request_id``.

Selection:
    production (not DEBUG, not TESTING)  JSONFormatter
    development / testing                ReadableFormatter
    LOG_LEVEL env var or config          overrides the level
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Record attributes copied into JSON log lines when set
EXTRA_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "actor_id",
    "case_id",
    "form_id",
    "from_status",
    "to_status",
    "event_type",
)

# Workflow keys shown in the readable format, in this order
_READABLE_KEYS = ("case_id", "form_id", "actor_id", "from_status", "to_status")

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "flask_limiter")


class RequestIdFilter(logging.Filter):
    """Attach the active request's id to records that lack one."""

    def filter(self, record):
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line format for a terminal."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        context = [
            f"{key.split('_')[0]}={getattr(record, key)}"
            for key in _READABLE_KEYS
            if getattr(record, key, None) is not None
        ]
        if context:
            line += f" ({', '.join(context)})"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(app, is_prod):
    name = os.getenv("LOG_LEVEL") or app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")
    return name.upper(), getattr(logging, name.upper(), logging.INFO)


def configure_logging(app):
    """Install a single stderr handler on the root logger for *app*."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing
    level_name, level = _resolve_level(app, is_prod)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestIdFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs more than once under tests
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if is_prod else "readable")
