"""
Root pytest configuration.
"""

from __future__ import annotations

import io
import json
import os
from collections.abc import Callable, Generator, Iterator
from dataclasses import dataclass
from typing import Any

import pytest

from alexandria import Alexandria, Settings
from alexandria.plugins.sinks import (
    ApmSink,
    ConsoleSink,
    FluentSink,
    KafkaSink,
    SentrySink,
)
from alexandria.testing import (
    FakeApmClient,
    FakeFluentSender,
    FakeKafkaProducer,
    FakeSentryClient,
)


def get_test_timeout(base: float, max_multiplier: float = 5.0) -> float:
    """Apply CI timeout multiplier to a base timeout value.

    Environment:
        CI_TIMEOUT_MULTIPLIER: Multiplier for CI environments (default: 1.0)
    """
    raw = os.getenv("CI_TIMEOUT_MULTIPLIER", "1.0")
    try:
        multiplier = float(raw) if raw else 1.0
        multiplier = min(multiplier, max_multiplier)
    except ValueError:
        multiplier = 1.0
    return base * multiplier


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "critical: Tests that must never fail - core functionality",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests exercising process-wide hooks or several components",
    )
    config.addinivalue_line(
        "markers",
        "property: Property-based tests (may be slow)",
    )


@pytest.fixture(autouse=True)
def reset_diagnostics_cache() -> Generator[None, None, None]:
    """Reset the diagnostics module cache around each test.

    The diagnostics module caches the ``internal_logging_enabled`` setting at
    first access; resetting it keeps tests from inheriting each other's state.
    """
    import alexandria.core.diagnostics as diag

    diag._internal_logging_enabled = None
    diag._last_emitted.clear()
    yield
    diag._internal_logging_enabled = None
    diag._last_emitted.clear()


@dataclass
class Harness:
    """A facade with every integration enabled against fake clients."""

    logger: Alexandria
    stream: io.StringIO
    sentry: FakeSentryClient
    apm: FakeApmClient
    fluent: FakeFluentSender
    kafka: FakeKafkaProducer

    def flush(self) -> None:
        assert self.logger.flush(timeout=get_test_timeout(2.0))

    def console_lines(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines()]

    def kafka_payloads(self) -> list[dict[str, Any]]:
        return [json.loads(value) for _, value in self.kafka.sent]


@pytest.fixture
def make_harness() -> Iterator[Callable[..., Harness]]:
    """Factory building a ``Harness``; settings are passed as keywords.

    Every integration is enabled unless a keyword overrides its group.
    """
    created: list[Harness] = []

    def _make(
        *,
        kafka_client: FakeKafkaProducer | None = None,
        fluent_client: FakeFluentSender | None = None,
        **config: Any,
    ) -> Harness:
        values: dict[str, Any] = {
            "service_name": "billing",
            "service_version": "1.4.2",
            "service_environment": "test",
            "sentry": {"enable": True},
            "apm": {"enable": True},
            "fluent": {"enable": True},
            "kafka": {"enable": True, "topic": "logs", "brokers": ["kafka:9092"]},
        }
        values.update(config)
        settings = Settings(**values)
        sentry = FakeSentryClient()
        apm = FakeApmClient()
        fluent = fluent_client or FakeFluentSender()
        kafka = kafka_client or FakeKafkaProducer()
        identity = {
            "service_name": settings.service_name,
            "service_version": settings.service_version,
            "environment": settings.service_environment,
        }
        stream = io.StringIO()
        logger = Alexandria(
            settings,
            sinks={
                "sentry": SentrySink(settings.sentry, client=sentry, **identity),
                "apm": ApmSink(settings.apm, client=apm, **identity),
                "fluent": FluentSink(
                    settings.fluent,
                    service_name=settings.service_name,
                    client=fluent,
                ),
                "kafka": KafkaSink(
                    settings.kafka,
                    service_name=settings.service_name,
                    client=kafka,
                ),
            },
            console=ConsoleSink(settings.identity, stream=stream),
        )
        harness = Harness(logger, stream, sentry, apm, fluent, kafka)
        created.append(harness)
        return harness

    yield _make
    for harness in created:
        harness.logger.close(timeout=get_test_timeout(2.0))
