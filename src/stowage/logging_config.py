"""Logging setup for Stowage.

Facade callers attach operation context to log records through ``extra=``
(see ``stowage.observability``).  Both output formats surface that context:
JSON as top-level keys, text as a trailing ``[name=value ...]`` block.
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, TextIO

# Record attributes carried into the output when set
EXTRA_FIELDS = (
    "operation",
    "bucket",
    "key",
    "upload_id",
    "status",
    "duration_ms",
    "error_code",
)

# Shown by the text format; the rest already appear in the message
TEXT_FIELDS = ("bucket", "key", "upload_id", "error_code")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def operation_fields(record: logging.LogRecord, names: tuple[str, ...] = EXTRA_FIELDS) -> dict[str, Any]:
    """Return the operation context attached to ``record``, skipping unset fields."""
    fields = {}
    for name in names:
        value = getattr(record, name, None)
        if value is not None and value != "":
            fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Always emits ``timestamp``, ``level``, ``logger`` and ``message``; adds
    ``thread`` for records from transfer worker threads, the operation
    fields that are present, and ``exception`` when one is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName and record.threadName != threading.main_thread().name:
            entry["thread"] = record.threadName
        entry.update(operation_fields(record))
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with the record's bucket/key context appended."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = operation_fields(record, TEXT_FIELDS)
        if not fields:
            return line
        context = " ".join(f"{name}={value}" for name, value in fields.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{context}]{sep}{tail}"


def configure_logging(level: str = "INFO", fmt: str = "text", stream: TextIO | None = None) -> None:
    """Replace the root handlers with one stream handler.

    Replaced handlers are detached, not closed.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL); unknown
            names fall back to INFO.
        fmt: ``"json"`` for JSONFormatter, anything else for TextFormatter.
        stream: Destination, stderr by default.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(
        logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
    )
