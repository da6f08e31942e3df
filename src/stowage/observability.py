"""Operation outcome logging and metrics for facade callers.

The facade itself never logs outcomes; callers wrap each call in
``OperationObserver.track`` to get one log line (and, when enabled, metric
samples) per operation.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from stowage import metrics as _m
from stowage.errors import StowageError

logger = logging.getLogger(__name__)


@dataclass
class OperationRecord:
    """Mutable per-operation context handed to the tracked block."""

    operation: str
    fields: dict[str, Any] = field(default_factory=dict)
    bytes_uploaded: int = 0
    bytes_downloaded: int = 0


class OperationObserver:
    """Logs and counts facade operations.

    Example::

        observer = OperationObserver()
        with observer.track("upload object", bucket="b", key="k") as record:
            facade.upload_object("b", "k", data)
            record.bytes_uploaded = len(data)
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    @contextmanager
    def track(self, operation: str, **fields: Any) -> Iterator[OperationRecord]:
        """Track one operation; failures are logged and re-raised unchanged."""
        record = OperationRecord(operation=operation, fields=fields)
        start = time.monotonic()
        try:
            yield record
        except Exception as exc:
            duration_ms = round((time.monotonic() - start) * 1000, 2)
            error_code = exc.code if isinstance(exc, StowageError) else type(exc).__name__
            self.log.error(
                "Couldn't %s. Here's why: %s",
                operation,
                exc,
                extra={
                    **fields,
                    "operation": operation,
                    "status": "error",
                    "duration_ms": duration_ms,
                    "error_code": error_code,
                },
            )
            self._record(record, "error", duration_ms)
            raise

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        self.log.info(
            "%s succeeded in %.2fms",
            operation,
            duration_ms,
            extra={**fields, "operation": operation, "status": "ok", "duration_ms": duration_ms},
        )
        self._record(record, "ok", duration_ms)

    @staticmethod
    def _record(record: OperationRecord, status: str, duration_ms: float) -> None:
        if not _m.is_enabled():
            return
        if _m.operations_total is not None:
            _m.operations_total.labels(operation=record.operation, status=status).inc()
        if _m.operation_duration_seconds is not None:
            _m.operation_duration_seconds.labels(operation=record.operation).observe(
                duration_ms / 1000
            )
        if record.bytes_uploaded and _m.bytes_uploaded_total is not None:
            _m.bytes_uploaded_total.inc(record.bytes_uploaded)
        if record.bytes_downloaded and _m.bytes_downloaded_total is not None:
            _m.bytes_downloaded_total.inc(record.bytes_downloaded)
