from __future__ import annotations

import asyncio
from typing import Any

from ...core.entry import Entry
from ...core.errors import SinkConfigurationError, SinkWriteError
from ...core.settings import SentrySettings

sentry_sdk: Any = None  # Lazy import; populated in _ensure_sentry_sdk

_SENTRY_LEVELS: dict[str, str] = {
    "debug": "debug",
    "info": "info",
    "warn": "warning",
    "error": "error",
    "fatal": "fatal",
}


def _ensure_sentry_sdk() -> None:
    global sentry_sdk
    if sentry_sdk is None:
        import sentry_sdk as _sentry_sdk

        sentry_sdk = _sentry_sdk


class SentrySink:
    """Error-tracking sink backed by ``sentry-sdk``.

    Error and fatal entries carrying an exception object are sent with
    ``capture_exception`` with the serialized payload attached as an extra;
    everything else goes through ``capture_message`` with the payload as the
    message.
    """

    name = "sentry"

    def __init__(
        self,
        config: SentrySettings,
        *,
        service_name: str | None = None,
        service_version: str | None = None,
        environment: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._config = config
        self._service_name = service_name
        self._service_version = service_version
        self._environment = environment
        self._client = client

    @property
    def tags(self) -> dict[str, str]:
        tags = {
            "name": self._service_name,
            "version": self._service_version,
            "environment": self._environment,
        }
        merged = {k: v for k, v in tags.items() if v is not None}
        merged.update(self._config.tags)
        return merged

    async def start(self) -> None:
        if self._client is not None:
            return
        if not self._config.dsn:
            raise SinkConfigurationError(self.name, "dsn is required")
        try:
            _ensure_sentry_sdk()
        except ImportError as e:
            raise SinkConfigurationError(
                self.name, "sentry-sdk is not installed"
            ) from e
        release = None
        if self._service_name and self._service_version:
            release = f"{self._service_name}@{self._service_version}"
        try:
            sentry_sdk.init(
                dsn=self._config.dsn,
                environment=self._environment,
                release=release,
                attach_stacktrace=self._config.use_stack_trace,
            )
        except Exception as e:
            raise SinkConfigurationError(self.name, str(e)) from e
        scope = sentry_sdk.get_global_scope()
        for key, value in self.tags.items():
            scope.set_tag(key, value)
        self._client = sentry_sdk

    async def stop(self) -> None:
        flush = getattr(self._client, "flush", None)
        if flush is not None:
            await asyncio.to_thread(flush, 2.0)

    async def write(self, entry: Entry, payload: str) -> None:
        client = self._client
        if client is None:
            raise SinkWriteError(self.name, "sink not started")
        level = entry.level or "info"
        error = entry.error
        if level in ("error", "fatal") and isinstance(error, BaseException):
            await asyncio.to_thread(
                client.capture_exception,
                error,
                extras={"payload": payload},
            )
            return
        await asyncio.to_thread(
            client.capture_message,
            payload,
            level=_SENTRY_LEVELS.get(level, level),
        )
