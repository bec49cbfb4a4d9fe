"""Prometheus metrics definitions for gsprotocol.

All custom metrics use the ``gsprotocol_`` prefix. The gateway's HTTP-level
metrics (request count, duration, sizes) come from
``prometheus-fastapi-instrumentator``; the counters here are recorded by the
transport itself, so they also cover clients that mount the transport
directly.

Counters reset to zero on restart.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Transport request counter  (labels: method, status)
# ---------------------------------------------------------------------------
requests_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte counter
# ---------------------------------------------------------------------------
bytes_streamed_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Call once when metrics are enabled. Until then the module-level
    references stay ``None`` and recording is a no-op.
    """
    global _initialized
    global requests_total, bytes_streamed_total

    if _initialized:
        return

    requests_total = Counter(
        "gsprotocol_requests_total",
        "Total gs:// requests by method and response status",
        ["method", "status"],
    )

    bytes_streamed_total = Counter(
        "gsprotocol_bytes_streamed_total",
        "Total object bytes streamed to callers",
    )

    _initialized = True


def record_request(method: str, status: int) -> None:
    """Count one dispatched request, if metrics are enabled."""
    if requests_total is not None:
        requests_total.labels(method=method, status=str(status)).inc()


def record_bytes(n: int) -> None:
    """Count streamed body bytes, if metrics are enabled."""
    if bytes_streamed_total is not None and n > 0:
        bytes_streamed_total.inc(n)
