"""
Dispatch metrics for Alexandria.

Implements minimal Prometheus-compatible counters and a histogram for sink
dispatch. Collectors use an isolated registry per logger, and keep basic
in-memory counters even when Prometheus export is disabled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram


@dataclass
class DispatchMetrics:
    """Captured runtime metrics for quick assertions in tests."""

    entries_dispatched: int = 0
    sink_errors: int = 0


class MetricsCollector:
    """Per-logger async metrics collector.

    When disabled, all methods are safe no-ops apart from the in-memory
    counters returned by ``snapshot()``.
    """

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = asyncio.Lock()
        self._state = DispatchMetrics()

        self._c_dispatched: Any | None = None
        self._c_sink_errors: Any | None = None
        self._h_dispatch_latency: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            self._registry = CollectorRegistry()
            self._c_dispatched = Counter(
                "alexandria_entries_dispatched_total",
                "Total number of entries delivered to a sink client",
                ["sink"],
                registry=self._registry,
            )
            self._c_sink_errors = Counter(
                "alexandria_sink_errors_total",
                "Total number of failed sink dispatches",
                ["sink"],
                registry=self._registry,
            )
            self._h_dispatch_latency = Histogram(
                "alexandria_sink_dispatch_seconds",
                "Latency of a single sink dispatch",
                ["sink"],
                buckets=(
                    0.0005,
                    0.001,
                    0.0025,
                    0.005,
                    0.01,
                    0.025,
                    0.05,
                    0.1,
                    0.25,
                    0.5,
                    1.0,
                ),
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    async def record_dispatch(
        self, *, sink: str, duration_seconds: float | None = None
    ) -> None:
        async with self._lock:
            self._state.entries_dispatched += 1
        if not self._enabled:
            return
        if self._c_dispatched is not None:
            self._c_dispatched.labels(sink=sink).inc()
        if duration_seconds is not None and self._h_dispatch_latency is not None:
            self._h_dispatch_latency.labels(sink=sink).observe(duration_seconds)

    async def record_sink_error(self, *, sink: str | None = None) -> None:
        async with self._lock:
            self._state.sink_errors += 1
        if not self._enabled:
            return
        if self._c_sink_errors is not None:
            self._c_sink_errors.labels(sink=sink or "unknown").inc()

    async def snapshot(self) -> DispatchMetrics:
        async with self._lock:
            return DispatchMetrics(
                entries_dispatched=self._state.entries_dispatched,
                sink_errors=self._state.sink_errors,
            )
