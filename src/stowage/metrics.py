"""Prometheus metrics definitions for Stowage.

All Stowage metrics use the ``stowage_`` prefix.  They live in the global
``prometheus_client`` registry and are only created when metrics are enabled;
until ``init_metrics()`` runs the module-level references stay ``None``.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Operation counter and latency  (labels: operation[, status])
# ---------------------------------------------------------------------------
operations_total: Counter | None = None
operation_duration_seconds: Histogram | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_uploaded_total: Counter | None = None
bytes_downloaded_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Safe to call more than once; collectors are registered only on the
    first call.
    """
    global _initialized
    global operations_total, operation_duration_seconds
    global bytes_uploaded_total, bytes_downloaded_total

    if _initialized:
        return

    operations_total = Counter(
        "stowage_operations_total",
        "Total object-store operations by type and outcome",
        ["operation", "status"],
    )

    operation_duration_seconds = Histogram(
        "stowage_operation_duration_seconds",
        "Object-store operation latency",
        ["operation"],
    )

    bytes_uploaded_total = Counter(
        "stowage_bytes_uploaded_total",
        "Total payload bytes uploaded",
    )

    bytes_downloaded_total = Counter(
        "stowage_bytes_downloaded_total",
        "Total payload bytes downloaded",
    )

    _initialized = True


def is_enabled() -> bool:
    return _initialized
