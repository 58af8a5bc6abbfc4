"""
Logging facade and per-call entry builders.

``Alexandria`` is configured once per process. Each ``log()`` call returns a
fresh ``AlexandriaEntry``; nothing is emitted until one of its severity
methods runs:

```python
from alexandria import Alexandria

alexa = Alexandria({"service_name": "billing", "kafka": {...}})
alexa.log(code=2200, data={"invoice": 42}, message="Success").info()
```

On a severity call the entry is stamped, serialized once, written to the
console synchronously, and handed to every other enabled sink whose threshold
admits the level. Those writes are independent background tasks; none of them
can block or raise into the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from types import TracebackType
from typing import Any, Iterable, Mapping

from ..metrics.metrics import MetricsCollector
from ..plugins.sinks import BaseSink, ConsoleSink, build_sinks
from . import diagnostics
from .caller import find_caller
from .dispatcher import SinkDispatcher
from .entry import Entry, build_entry
from .levels import SeverityThresholds, normalize_level
from .serialization import serialize_entry
from .settings import Settings
from .shutdown import register_logger, unregister_logger

# Sinks reached by synthesized failure entries
_KAFKA_FAILURE_TARGETS = ("sentry", "apm", "fluent")
_UNHANDLED_TARGETS = ("sentry", "apm")


@dataclass(frozen=True)
class SinkRuntime:
    """Shared, read-only handles bound into every entry builder."""

    settings: Settings
    thresholds: SeverityThresholds
    console: ConsoleSink
    sinks: Mapping[str, BaseSink]
    dispatcher: SinkDispatcher


def broadcast(
    runtime: SinkRuntime,
    entry: Entry,
    *,
    targets: Iterable[str] | None = None,
) -> str:
    """Send a level-stamped entry to the console and every admitted sink.

    Args:
        runtime: Sink handles, thresholds and dispatcher.
        entry: Record with its level set.
        targets: Restrict optional sinks to these names; the console always
            receives the entry.

    Returns:
        The serialized payload handed to the sinks.
    """
    level = entry.level or "info"
    payload = serialize_entry(
        entry.to_dict(
            exceptions_max_frames=runtime.settings.core.exceptions_max_frames
        )
    )
    runtime.console.write(level, payload)
    allowed = None if targets is None else frozenset(targets)
    for name, sink in runtime.sinks.items():
        if allowed is not None and name not in allowed:
            continue
        if not runtime.thresholds.admits(name, level):
            continue
        runtime.dispatcher.submit(name, partial(sink.write, entry, payload))
    return payload


class AlexandriaEntry:
    """One log call waiting for its severity.

    Exactly one of ``debug``/``info``/``warn``/``error``/``fatal`` is meant to
    be called. Calling another one dispatches again with a new record; this
    is not guarded.
    """

    def __init__(self, entry: Entry, runtime: SinkRuntime) -> None:
        self._base = entry
        self._runtime = runtime
        self._record: Entry | None = None
        self._payload: str | None = None

    @property
    def record(self) -> Entry:
        """The dispatched record, or the level-less base record."""
        return self._record if self._record is not None else self._base

    @property
    def payload(self) -> str | None:
        """Serialized payload of the last dispatch."""
        return self._payload

    @property
    def dispatched(self) -> bool:
        return self._record is not None

    def _emit(self, level: str) -> None:
        caller = None
        if self._runtime.settings.core.trace_caller:
            caller = find_caller()
        record = self._base.with_level(level, caller=caller)
        self._record = record
        try:
            self._payload = broadcast(self._runtime, record)
        except Exception as e:
            # The log call itself must never fail
            diagnostics.warn(
                "logger",
                "broadcast failed",
                level=level,
                error=type(e).__name__,
                detail=str(e),
            )

    def log(self, level: str) -> None:
        """Dispatch at a level given by name (``warning``/``critical`` accepted)."""
        self._emit(normalize_level(level))

    def debug(self) -> None:
        """Send to enabled sinks configured at ``debug``."""
        self._emit("debug")

    def info(self) -> None:
        """Send to enabled sinks configured at ``info`` or ``debug``."""
        self._emit("info")

    def print(self) -> None:
        """Alias of ``info()``."""
        self._emit("info")

    def warn(self) -> None:
        """Send to enabled sinks configured at ``warn`` or below."""
        self._emit("warn")

    def error(self) -> None:
        """Send to enabled sinks configured at ``error`` or below."""
        self._emit("error")

    def fatal(self) -> None:
        """Send to every enabled sink regardless of threshold."""
        self._emit("fatal")


def _coerce_settings(config: Settings | Mapping[str, Any] | None) -> Settings:
    if config is None:
        return Settings()
    if isinstance(config, Settings):
        return config
    return Settings(**dict(config))


class Alexandria:
    """Process-wide logging facade fanning entries out to configured sinks.

    Args:
        config: ``Settings``, a mapping of settings values, or ``None`` for
            environment-only configuration (console sink only by default).
        sinks: Prebuilt sink objects by name. Used in place of the built-in
            sink for an enabled integration; ignored for disabled ones.
        console: Console sink replacing the stdout one.

    Raises:
        pydantic.ValidationError: For malformed configuration.
        SinkConfigurationError: If an enabled sink's client cannot be built.
    """

    def __init__(
        self,
        config: Settings | Mapping[str, Any] | None = None,
        *,
        sinks: Mapping[str, Any] | None = None,
        console: ConsoleSink | None = None,
    ) -> None:
        settings = _coerce_settings(config)
        if settings.core.internal_logging_enabled:
            diagnostics.configure(enabled=True)
        self._settings = settings
        self._closed = False
        self._metrics = MetricsCollector(enabled=settings.core.enable_metrics)
        dispatcher = SinkDispatcher(
            max_workers=settings.core.dispatch_workers,
            metrics=self._metrics,
        )
        built = build_sinks(
            settings,
            on_kafka_failure=self._handle_kafka_failure,
            record_error=dispatcher.record_error,
            overrides=sinks,
        )
        dispatcher.start()
        try:
            for sink in built.values():
                dispatcher.run(sink.start())
        except BaseException:
            dispatcher.close(timeout=0)
            raise
        self._runtime = SinkRuntime(
            settings=settings,
            thresholds=SeverityThresholds.from_settings(settings),
            console=console or ConsoleSink(settings.identity),
            sinks=built,
            dispatcher=dispatcher,
        )
        register_logger(self)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def thresholds(self) -> SeverityThresholds:
        return self._runtime.thresholds

    @property
    def enabled_sinks(self) -> tuple[str, ...]:
        """Names of the constructed optional sinks."""
        return tuple(self._runtime.sinks)

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def closed(self) -> bool:
        return self._closed

    def log(
        self,
        base: Mapping[str, Any] | None = None,
        /,
        **fields: Any,
    ) -> AlexandriaEntry:
        """Create an entry builder; nothing is emitted yet.

        Args:
            base: Optional mapping with ``code``, ``data``, ``error`` and
                ``message``.
            **fields: The same fields as keywords.

        Example:
            >>> alexa.log({"code": 2200, "message": "Success"}).info()
            >>> alexa.log(code=4100, error=exc).error()
        """
        return AlexandriaEntry(build_entry(base, **fields), self._runtime)

    def _handle_kafka_failure(self, exc: BaseException, failed: Entry) -> None:
        """Report a kafka delivery failure as one fatal entry.

        The report goes to the console, sentry, apm and fluent, never back to
        kafka. It carries the caller of the failed entry, which is only set
        when ``core.trace_caller`` is enabled.
        """
        runtime = getattr(self, "_runtime", None)
        if runtime is None:
            return
        topic = self._settings.kafka.topic
        entry = build_entry(
            error=exc,
            message=f"An error occurred when sending a message to topic {topic}",
        ).with_level("fatal", caller=failed.caller)
        broadcast(runtime, entry, targets=_KAFKA_FAILURE_TARGETS)

    def capture_exception(self, exc: BaseException) -> None:
        """Report an uncaught exception as a fatal entry.

        Sent to the console, error tracker and APM agent only, then waits up
        to ``core.drain_timeout_seconds`` for delivery since the process is
        usually about to exit.
        """
        entry = build_entry(
            error=exc,
            message=f"Unhandled exception: {type(exc).__name__}: {exc}",
        ).with_level("fatal")
        broadcast(self._runtime, entry, targets=_UNHANDLED_TARGETS)
        self.flush(timeout=self._settings.core.drain_timeout_seconds)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for in-flight dispatches; True if all completed in time."""
        return self._runtime.dispatcher.flush(timeout)

    def close(self, timeout: float | None = None) -> None:
        """Drain dispatches, stop every sink and the dispatcher."""
        if self._closed:
            return
        self._closed = True
        if timeout is None:
            timeout = self._settings.core.drain_timeout_seconds
        runtime = self._runtime
        runtime.dispatcher.flush(timeout)
        for name, sink in runtime.sinks.items():
            try:
                runtime.dispatcher.run(sink.stop(), timeout=timeout)
            except Exception as e:
                diagnostics.warn(
                    "sink",
                    "sink stop failed",
                    sink=name,
                    error=type(e).__name__,
                )
        runtime.console.flush()
        runtime.dispatcher.close(timeout)
        unregister_logger(self)

    def __enter__(self) -> Alexandria:
        return self

    def __exit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc: BaseException | None,
        _tb: TracebackType | None,
    ) -> None:
        self.close()
