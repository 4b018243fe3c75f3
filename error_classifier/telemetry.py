"""
File: telemetry.py
Purpose: Structured JSON logging + lightweight metrics for the classifier.
Dependencies: Standard library only (logging, time).
Performance: O(1) per metric operation, no I/O blocking.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator


# ═══════════════════════════════════════════════════════════════
#  STRUCTURED JSON FORMATTER
# ═══════════════════════════════════════════════════════════════

_EXTRA_FIELDS = ("layer", "cache_key", "breaker_state", "path", "count")


class _JSONFormatter(logging.Formatter):
    """Emit structured JSON log lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = str(record.exc_info[1])
        return json.dumps(payload, default=str)


_CONFIGURED: set[str] = set()


def get_logger(name: str = "error_classifier") -> logging.Logger:
    """Return a JSON-structured logger for *name*."""
    logger = logging.getLogger(name)
    if name not in _CONFIGURED:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_JSONFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
        _CONFIGURED.add(name)
    return logger


def set_log_level(level: str) -> None:
    """Apply *level* to every logger handed out by :func:`get_logger`."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    for name in _CONFIGURED:
        logging.getLogger(name).setLevel(numeric)


# ═══════════════════════════════════════════════════════════════
#  LIGHTWEIGHT METRIC PRIMITIVES
# ═══════════════════════════════════════════════════════════════


class _Counter:
    """Monotonic counter."""

    __slots__ = ("_value",)

    def __init__(self) -> None:
        self._value: int = 0

    def inc(self, n: int = 1) -> None:
        self._value += n

    @property
    def value(self) -> int:
        return self._value


class _Histogram:
    """Histogram (min / max / sum / count)."""

    __slots__ = ("_min", "_max", "_sum", "_count")

    def __init__(self) -> None:
        self._min: float = float("inf")
        self._max: float = 0.0
        self._sum: float = 0.0
        self._count: int = 0

    def observe(self, value: float) -> None:
        self._count += 1
        self._sum += value
        if value < self._min:
            self._min = value
        if value > self._max:
            self._max = value

    @property
    def count(self) -> int:
        return self._count

    @property
    def avg(self) -> float:
        return self._sum / self._count if self._count else 0.0

    def snapshot(self) -> Dict[str, float]:
        return {
            "min": self._min if self._count else 0.0,
            "max": self._max,
            "avg": self.avg,
            "sum": self._sum,
            "count": float(self._count),
        }


# ═══════════════════════════════════════════════════════════════
#  TELEMETRY COLLECTOR
# ═══════════════════════════════════════════════════════════════

_COUNTERS = (
    "classifications_total",
    "classifications_failed",
    "cache_hits",
    "cache_misses",
    "remote_calls_total",
    "remote_calls_failed",
    "remote_unavailable",
    "fallback_triggers",
    "circuit_breaker_trips",
    "records_enqueued",
    "records_dropped",
    "records_written",
    "records_skipped_oversize",
    "batches_flushed",
    "batches_abandoned",
    "state_updates_failed",
)


class TelemetryCollector:
    """Collects latency and throughput metrics for the classifier."""

    _HISTOGRAM_MAP = {
        "classify": "classify_latency",
        "remote": "remote_latency",
        "flush": "flush_latency",
    }

    def __init__(self) -> None:
        # ── latency histograms ──
        self.classify_latency = _Histogram()
        self.remote_latency = _Histogram()
        self.flush_latency = _Histogram()

        # ── throughput counters ──
        for name in _COUNTERS:
            setattr(self, name, _Counter())

    @contextmanager
    def measure(self, layer: str) -> Generator[None, None, None]:
        """Context manager to time a layer.

        Args:
            layer: Layer name (``classify``, ``remote`` or ``flush``).

        Yields:
            None; records elapsed ms on exit.
        """
        hist_attr = self._HISTOGRAM_MAP.get(layer)
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            if hist_attr:
                getattr(self, hist_attr).observe(elapsed_ms)

    def snapshot(self) -> Dict[str, Any]:
        """Return a snapshot of all metrics."""
        return {
            "latency": {
                name: getattr(self, attr).snapshot()
                for name, attr in self._HISTOGRAM_MAP.items()
            },
            "counters": {
                name: getattr(self, name).value for name in _COUNTERS
            },
        }
