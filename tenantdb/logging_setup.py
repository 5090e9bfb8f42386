"""Logging configuration.

Goals:
- Structured JSON logs by default (log aggregator friendly)
- Automatically include the request_id when available
- Minimal dependencies (stdlib only)

Validation failures are logged here with their full detail; callers only
ever see the generic error kind. Log records may therefore carry the
rejected identifier, but never a password.

Request IDs:
- Use inbound `X-Request-ID` when present.
- Otherwise generate a UUID4.
"""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Context vars set by middleware
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
request_path_var: ContextVar[Optional[str]] = ContextVar("request_path", default=None)

# Loggers that record why a piece of request input was rejected.
INPUT_LOGGERS = ("tenantdb.forms", "tenantdb.userinput", "tenantdb.dependencies")


class _ContextFilter(logging.Filter):
    """Stamp request_id, and the request path unless the record names one."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        rid = request_id_var.get()
        if rid:
            setattr(record, "request_id", rid)

        path = request_path_var.get()
        if path and getattr(record, "path", None) is None:
            setattr(record, "path", path[:200])
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Common structured fields (set by filter / extra)
        for key in ("request_id", "field", "kind", "owner", "database", "path"):
            v = getattr(record, key, None)
            if v is not None:
                payload[key] = v

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logging(*, log_level: str = "INFO", log_format: str = "json", input_log_level: Optional[str] = None) -> None:
    """Configure root logging.

    `input_log_level` sets the level of the input rejection loggers on their
    own, e.g. "WARNING" to drop per-request validation detail while keeping
    the rest of the app at INFO.

    Idempotent: safe to call multiple times.
    """

    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicate logs when Uvicorn config runs.
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    if (log_format or "json").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    handler.addFilter(_ContextFilter())

    root.addHandler(handler)

    input_level = logging.NOTSET
    if input_log_level:
        input_level = getattr(logging, input_log_level.upper(), logging.NOTSET)
    for name in INPUT_LOGGERS:
        logging.getLogger(name).setLevel(input_level)
