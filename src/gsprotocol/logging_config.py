"""Logging setup for gsprotocol.

Two output formats are supported: ``text`` for people and ``json`` for log
shippers. Request-scoped values passed with ``extra=`` (method, url, bucket,
key, generation, status, duration) become top-level JSON fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# HTTP client libraries that log every upstream call at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "gcloud.aio", "aiohttp.access")

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Formats each record as one line of JSON."""

    EXTRA_FIELDS = (
        "method",
        "url",
        "path",
        "bucket",
        "key",
        "generation",
        "status",
        "duration_ms",
    )

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in self.EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_handler(fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    return handler


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Send all logging to a single stderr handler.

    Unless ``level`` is DEBUG, the HTTP client libraries are held at WARNING
    so a fetched object costs one log line rather than several.

    Args:
        level: Log level name, case-insensitive.
        fmt: 'text' or 'json'.

    Raises:
        ValueError: If the level name is unknown.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level}")

    root = logging.getLogger()
    root.handlers[:] = [_make_handler(fmt)]
    root.setLevel(numeric_level)

    library_level = logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
