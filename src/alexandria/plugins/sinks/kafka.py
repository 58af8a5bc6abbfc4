from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Callable

from ...core import diagnostics
from ...core.entry import Entry
from ...core.errors import SinkConfigurationError, SinkWriteError
from ...core.settings import KafkaSettings

KafkaProducer: Any = None  # Lazy import; populated in _ensure_kafka

# Receives the delivery error and the entry that failed
FailureHandler = Callable[[BaseException, Entry], None]
ErrorRecorder = Callable[[str], None]


def _ensure_kafka() -> None:
    global KafkaProducer
    if KafkaProducer is None:
        from kafka import KafkaProducer as _KafkaProducer

        KafkaProducer = _KafkaProducer


class KafkaSink:
    """Queue-producer sink backed by ``kafka-python``.

    Sends the serialized payload as one message to the configured topic.
    Delivery failures, whether raised by ``send`` or reported later by the
    producer's errback, go to ``on_failure`` exactly once per message. A raised
    failure also fails the write so the dispatcher counts it; errback
    failures are counted through ``record_error``.
    """

    name = "kafka"

    def __init__(
        self,
        config: KafkaSettings,
        *,
        service_name: str | None = None,
        on_failure: FailureHandler | None = None,
        record_error: ErrorRecorder | None = None,
        client: Any | None = None,
    ) -> None:
        self._config = config
        self._service_name = service_name
        self._on_failure = on_failure
        self._record_error = record_error
        self._client = client

    @property
    def topic(self) -> str:
        return self._config.topic_name

    def set_failure_handler(self, handler: FailureHandler | None) -> None:
        self._on_failure = handler

    def set_error_recorder(self, recorder: ErrorRecorder | None) -> None:
        self._record_error = recorder

    async def start(self) -> None:
        if self._client is not None:
            return
        if not self._config.topic:
            raise SinkConfigurationError(self.name, "topic is required")
        if not self._config.brokers:
            raise SinkConfigurationError(self.name, "at least one broker is required")
        try:
            _ensure_kafka()
        except ImportError as e:
            raise SinkConfigurationError(
                self.name, "kafka-python is not installed"
            ) from e
        try:
            self._client = await asyncio.to_thread(
                KafkaProducer,
                bootstrap_servers=list(self._config.brokers),
                client_id=self._service_name or "alexandria",
            )
        except Exception as e:
            raise SinkConfigurationError(self.name, str(e)) from e

    async def stop(self) -> None:
        client = self._client
        if client is None:
            return
        flush = getattr(client, "flush", None)
        if flush is not None:
            await asyncio.to_thread(flush, 2.0)
        close = getattr(client, "close", None)
        if close is not None:
            await asyncio.to_thread(close, 2.0)

    async def write(self, entry: Entry, payload: str) -> None:
        client = self._client
        if client is None:
            raise SinkWriteError(self.name, "sink not started")
        try:
            future = await asyncio.to_thread(
                client.send, self.topic, payload.encode("utf-8")
            )
        except Exception as exc:
            self._report_failure(exc, entry)
            raise SinkWriteError(self.name, f"send failed: {exc}") from exc
        add_errback = getattr(future, "add_errback", None)
        if add_errback is not None:
            add_errback(partial(self._on_delivery_error, entry))

    def _on_delivery_error(self, entry: Entry, exc: BaseException) -> None:
        # Runs on the producer's I/O thread after write() has returned
        self._report_failure(exc, entry)
        recorder = self._record_error
        if recorder is None:
            return
        try:
            recorder(self.name)
        except Exception as e:
            diagnostics.warn(
                "sink",
                "kafka error recording failed",
                sink=self.name,
                error=type(e).__name__,
            )

    def _report_failure(self, exc: BaseException, entry: Entry) -> None:
        handler = self._on_failure
        if handler is None:
            diagnostics.warn(
                "sink",
                "kafka delivery failed",
                sink=self.name,
                topic=self.topic,
                error=type(exc).__name__,
            )
            return
        try:
            handler(exc, entry)
        except Exception as e:
            diagnostics.warn(
                "sink",
                "kafka failure handler raised",
                sink=self.name,
                error=type(e).__name__,
            )
