from __future__ import annotations

import pytest

from alexandria.metrics.metrics import MetricsCollector


@pytest.mark.asyncio
async def test_disabled_metrics_noop_and_state() -> None:
    mc = MetricsCollector(enabled=False)
    # In-memory counters update even when disabled
    await mc.record_dispatch(sink="kafka", duration_seconds=0.001)
    await mc.record_sink_error(sink="sentry")
    snap = await mc.snapshot()
    assert snap.entries_dispatched == 1
    assert snap.sink_errors == 1
    assert mc.registry is None
    assert not mc.is_enabled


@pytest.mark.asyncio
async def test_enabled_counters_and_histogram() -> None:
    mc = MetricsCollector(enabled=True)
    await mc.record_dispatch(sink="kafka", duration_seconds=0.002)
    await mc.record_dispatch(sink="kafka")
    await mc.record_dispatch(sink="fluent", duration_seconds=0.004)
    await mc.record_sink_error(sink="apm")

    reg = mc.registry
    assert reg is not None
    assert reg.get_sample_value(
        "alexandria_entries_dispatched_total", {"sink": "kafka"}
    ) == 2.0
    assert reg.get_sample_value(
        "alexandria_entries_dispatched_total", {"sink": "fluent"}
    ) == 1.0
    # Histogram only observes dispatches with a duration
    assert reg.get_sample_value(
        "alexandria_sink_dispatch_seconds_count", {"sink": "kafka"}
    ) == 1.0
    assert reg.get_sample_value(
        "alexandria_sink_errors_total", {"sink": "apm"}
    ) == 1.0


@pytest.mark.asyncio
async def test_sink_error_without_name_is_labelled_unknown() -> None:
    mc = MetricsCollector(enabled=True)
    await mc.record_sink_error()

    reg = mc.registry
    assert reg is not None
    assert reg.get_sample_value(
        "alexandria_sink_errors_total", {"sink": "unknown"}
    ) == 1.0


def test_registries_are_isolated() -> None:
    a = MetricsCollector(enabled=True)
    b = MetricsCollector(enabled=True)

    assert a.registry is not None
    assert a.registry is not b.registry
