"""Logging setup for the CLI and embedding applications.

With ``SCHEMA_AUDIT_STRUCTURED_LOGGING=true`` every record is emitted as a
single-line JSON object::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "schema_audit.checklist.dispatcher",
        "message": "Check n1 -> fail (3 issue(s), 12ms)",
        "run_id": "...",            // present when passed via ``extra``
        "exc_info": "Traceback ..." // present only on exceptions
    }

Otherwise a plain text handler is installed.  Both write to *stderr*.
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any

from schema_audit.config import Settings

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Context fields copied into the JSON payload when present on the record.
_CONTEXT_FIELDS = ("run_id", "node_id")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Replace the root handlers with one configured from *settings*."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root_logger.addHandler(handler)

    level = logging.DEBUG if settings.debug else logging.getLevelName(settings.log_level.upper())
    root_logger.setLevel(level if isinstance(level, int) else logging.INFO)
