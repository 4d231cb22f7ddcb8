"""Structured JSON logger for notionsource.

Every log record is emitted as a single-line JSON object so that build logs
can be consumed by log aggregation pipelines without additional parsing.

Typical structured output::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "WARNING",
     "logger": "notionsource.fetcher", "message": "Rate limited, retrying",
     "op": "fetch", "delay": 60.0, "attempt": 1}

Usage::

    from notionsource.observability import get_logger

    log = get_logger("notionsource.cache")
    log.info("cache miss", extra={"extra_fields": {"kind": "page", "id": "abc"}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys: ``ts`` (ISO-8601 UTC), ``level``, ``logger`` and
    ``message``.  Fields passed via ``extra={"extra_fields": {...}}`` are
    merged into the top-level object; ``exc_info`` and ``stack_info`` are
    serialised when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str)


# One handler per configured root name so that repeated calls stay
# idempotent.
_configured_loggers: set[str] = set()

_ROOT = "notionsource"


def get_logger(
    name: str = _ROOT,
    *,
    level: int | str = logging.INFO,
    stream: Any | None = None,
) -> logging.Logger:
    """Get a logger under the ``notionsource`` hierarchy.

    The JSON handler is attached once, to the ``notionsource`` root logger;
    child loggers (``"notionsource.fetcher"`` ...) propagate to it.  That
    keeps the children visible to ``caplog`` and other root-level handlers
    while the package still prints structured lines on its own.

    Parameters
    ----------
    name:
        Logger name.  Defaults to ``"notionsource"``.
    level:
        Level applied to the root logger the first time it is configured.
        Accepts an ``int`` or a case-insensitive level name.
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.
    """
    if _ROOT not in _configured_loggers:
        root = logging.getLogger(_ROOT)
        resolved_level = (
            logging.getLevelName(level.upper())
            if isinstance(level, str)
            else level
        )
        root.setLevel(resolved_level)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        root.addHandler(handler)

        _configured_loggers.add(_ROOT)

    return logging.getLogger(name)
