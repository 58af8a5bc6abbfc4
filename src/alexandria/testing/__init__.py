"""
Testing utilities for Alexandria.

Recording stand-ins for every sink client, so tests can build a facade with
all integrations enabled and assert on what each backend received without a
network.

Example:
    from alexandria import Alexandria, Settings
    from alexandria.plugins.sinks import SentrySink
    from alexandria.testing import FakeSentryClient

    settings = Settings(sentry={"enable": True, "level": "info"})
    client = FakeSentryClient()
    alexa = Alexandria(
        settings,
        sinks={"sentry": SentrySink(settings.sentry, client=client)},
    )
    alexa.log(message="hello").info()
    alexa.flush()
    assert client.messages[0][1] == "info"
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from ..core.entry import Entry


@dataclass
class RecordingSink:
    """Async sink that records every write; optionally fails."""

    name: str = "recording"
    fail_with: BaseException | None = None
    writes: list[tuple[Entry, str]] = field(default_factory=list)
    started: bool = False
    stopped: bool = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def write(self, entry: Entry, payload: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.writes.append((entry, payload))

    @property
    def levels(self) -> list[str | None]:
        return [entry.level for entry, _ in self.writes]


class FakeSentryClient:
    """Mimics the ``sentry_sdk`` capture API."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str | None]] = []
        self.exceptions: list[BaseException] = []
        self.exception_kwargs: list[dict[str, Any]] = []
        self.flushed = False

    def capture_message(self, message: str, level: str | None = None) -> None:
        self.messages.append((message, level))

    def capture_exception(
        self, error: BaseException | None = None, **scope_kwargs: Any
    ) -> None:
        if error is not None:
            self.exceptions.append(error)
            self.exception_kwargs.append(scope_kwargs)

    def flush(self, timeout: float | None = None) -> None:
        self.flushed = True


class FakeApmClient:
    """Mimics ``elasticapm.Client`` capture methods."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []
        self.errors: list[tuple[Any, ...]] = []
        self.error_kwargs: list[dict[str, Any]] = []
        self.closed = False

    def capture_message(self, message: str | None = None, **kwargs: Any) -> None:
        self.messages.append({"message": message, **kwargs})

    def capture_exception(self, exc_info: Any = None, **kwargs: Any) -> None:
        self.errors.append(exc_info)
        self.error_kwargs.append(kwargs)

    def close(self) -> None:
        self.closed = True


class FakeFluentSender:
    """Mimics ``fluent.sender.FluentSender``; ``accept=False`` rejects emits."""

    def __init__(self, tag: str = "alexandria", *, accept: bool = True) -> None:
        self.tag = tag
        self.accept = accept
        self.events: list[tuple[str | None, int, dict[str, Any]]] = []
        self.last_error: BaseException | None = None
        self.closed = False

    def emit_with_time(
        self, label: str | None, timestamp: int, data: dict[str, Any]
    ) -> bool:
        if not self.accept:
            self.last_error = ConnectionError("fluentd unreachable")
            return False
        self.events.append((label, timestamp, data))
        return True

    def clear_last_error(self) -> None:
        self.last_error = None

    def close(self) -> None:
        self.closed = True


class FakeSendFuture:
    """Minimal stand-in for kafka-python's ``FutureRecordMetadata``."""

    def __init__(self, error: BaseException | None = None) -> None:
        self._error = error

    def add_errback(self, fn: Callable[[BaseException], Any]) -> FakeSendFuture:
        if self._error is not None:
            fn(self._error)
        return self


class FakeKafkaProducer:
    """Mimics ``kafka.KafkaProducer``.

    ``fail_with`` makes deliveries fail: through the errback when
    ``fail_mode == "errback"``, or by raising from ``send`` when
    ``fail_mode == "raise"``.
    """

    def __init__(
        self,
        *,
        fail_with: BaseException | None = None,
        fail_mode: str = "errback",
    ) -> None:
        self.fail_with = fail_with
        self.fail_mode = fail_mode
        self.sent: list[tuple[str, bytes]] = []
        self.closed = False
        self._lock = threading.Lock()

    def send(self, topic: str, value: bytes | None = None) -> FakeSendFuture:
        if self.fail_with is not None and self.fail_mode == "raise":
            raise self.fail_with
        with self._lock:
            self.sent.append((topic, value or b""))
        if self.fail_with is not None:
            return FakeSendFuture(self.fail_with)
        return FakeSendFuture()

    def flush(self, timeout: float | None = None) -> None:
        return None

    def close(self, timeout: float | None = None) -> None:
        self.closed = True


__all__ = [
    "FakeApmClient",
    "FakeFluentSender",
    "FakeKafkaProducer",
    "FakeSendFuture",
    "FakeSentryClient",
    "RecordingSink",
]
