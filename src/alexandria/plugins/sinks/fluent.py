from __future__ import annotations

import asyncio
import time
from typing import Any

from ...core.entry import Entry
from ...core.errors import SinkConfigurationError, SinkWriteError
from ...core.settings import FluentSettings

fluent_sender: Any = None  # Lazy import; populated in _ensure_fluent


def _ensure_fluent() -> None:
    global fluent_sender
    if fluent_sender is None:
        from fluent import sender as _sender

        fluent_sender = _sender


class FluentSink:
    """Log-forwarder sink backed by ``fluent-logger``.

    Receives the unserialized record mapping, labelled with the service name
    and stamped with the current time. The sender buffers internally; a
    rejected emit surfaces as ``SinkWriteError`` inside the dispatch task.
    """

    name = "fluent"

    def __init__(
        self,
        config: FluentSettings,
        *,
        service_name: str | None = None,
        exceptions_max_frames: int = 50,
        client: Any | None = None,
    ) -> None:
        self._config = config
        self._service_name = service_name
        self._max_frames = exceptions_max_frames
        self._client = client

    @property
    def tag(self) -> str:
        return self._config.tag or self._service_name or "alexandria"

    @property
    def label(self) -> str | None:
        return self._service_name

    async def start(self) -> None:
        if self._client is not None:
            return
        try:
            _ensure_fluent()
        except ImportError as e:
            raise SinkConfigurationError(
                self.name, "fluent-logger is not installed"
            ) from e
        self._client = fluent_sender.FluentSender(
            self.tag,
            host=self._config.host,
            port=self._config.port,
            timeout=self._config.timeout,
        )

    async def stop(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await asyncio.to_thread(close)

    async def write(self, entry: Entry, payload: str) -> None:
        client = self._client
        if client is None:
            raise SinkWriteError(self.name, "sink not started")
        record = entry.to_dict(exceptions_max_frames=self._max_frames)
        ok = await asyncio.to_thread(
            client.emit_with_time,
            self.label,
            int(time.time()),
            record,
        )
        if ok is False:
            error = getattr(client, "last_error", None)
            clear = getattr(client, "clear_last_error", None)
            if clear is not None:
                clear()
            raise SinkWriteError(self.name, f"emit failed: {error!r}")
