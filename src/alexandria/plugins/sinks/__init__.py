from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Mapping,
    Protocol,
    runtime_checkable,
)

from .apm import ApmSink
from .console import ConsoleSink
from .fluent import FluentSink
from .kafka import ErrorRecorder, FailureHandler, KafkaSink
from .sentry import SentrySink

if TYPE_CHECKING:
    from ...core.entry import Entry
    from ...core.settings import Settings


@runtime_checkable
class BaseSink(Protocol):
    """Base async sink interface.

    Sinks hand finalized entries to an external client (error tracker, APM
    agent, log forwarder, message queue). Implementations should be
    non-blocking: blocking client calls belong in ``asyncio.to_thread``.
    Errors raised by ``write`` are contained by the dispatcher.
    """

    name: str

    async def start(self) -> None:  # Client construction
        ...

    async def stop(self) -> None:  # Flush and close the client
        ...

    async def write(self, entry: Entry, payload: str) -> None:  # noqa: D401
        """Deliver one entry; ``payload`` is its serialized JSON form."""
        ...


def build_sinks(
    settings: Settings,
    *,
    on_kafka_failure: FailureHandler | None = None,
    record_error: ErrorRecorder | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct one sink per enabled integration.

    Sinks are returned unstarted, in ``GATED_SINKS`` order. An entry in
    ``overrides`` replaces the constructed sink for that name, but only when
    the integration is enabled.
    """
    overrides = dict(overrides or {})
    identity = {
        "service_name": settings.service_name,
        "service_version": settings.service_version,
        "environment": settings.service_environment,
    }
    factories: dict[str, Callable[[], Any]] = {
        "sentry": lambda: SentrySink(settings.sentry, **identity),
        "apm": lambda: ApmSink(settings.apm, **identity),
        "fluent": lambda: FluentSink(
            settings.fluent,
            service_name=settings.service_name,
            exceptions_max_frames=settings.core.exceptions_max_frames,
        ),
        "kafka": lambda: KafkaSink(
            settings.kafka,
            service_name=settings.service_name,
        ),
    }
    sinks: dict[str, Any] = {}
    for name in settings.enabled_sinks():
        sink = overrides.get(name) or factories[name]()
        if name == "kafka":
            if hasattr(sink, "set_failure_handler"):
                sink.set_failure_handler(on_kafka_failure)
            if hasattr(sink, "set_error_recorder"):
                sink.set_error_recorder(record_error)
        sinks[name] = sink
    return sinks


__all__ = [
    "ApmSink",
    "BaseSink",
    "ConsoleSink",
    "FluentSink",
    "KafkaSink",
    "SentrySink",
    "build_sinks",
]
