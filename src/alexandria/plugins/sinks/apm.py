from __future__ import annotations

import asyncio
from typing import Any

from ...core.entry import Entry
from ...core.errors import SinkConfigurationError, SinkWriteError
from ...core.settings import ApmSettings

elasticapm: Any = None  # Lazy import; populated in _ensure_elasticapm

_APM_LEVELS: dict[str, str] = {
    "debug": "debug",
    "info": "info",
    "warn": "warning",
    "error": "error",
    "fatal": "critical",
}


def _ensure_elasticapm() -> None:
    global elasticapm
    if elasticapm is None:
        import elasticapm as _elasticapm

        elasticapm = _elasticapm


class ApmSink:
    """Elastic APM sink.

    Entries are captured as APM log messages at their own level. Error and
    fatal entries carrying an exception are captured as APM errors with the
    payload in their custom context.
    """

    name = "apm"

    def __init__(
        self,
        config: ApmSettings,
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

    def _connect(self) -> Any:
        options: dict[str, Any] = {
            "SERVICE_NAME": self._service_name,
            "SERVER_URL": self._config.url,
            "SECRET_TOKEN": self._config.token,
            "SERVICE_VERSION": self._service_version,
            "ENVIRONMENT": self._environment,
        }
        return elasticapm.Client(
            {k: v for k, v in options.items() if v is not None}
        )

    async def start(self) -> None:
        if self._client is not None:
            return
        if not self._config.url:
            raise SinkConfigurationError(self.name, "url is required")
        try:
            _ensure_elasticapm()
        except ImportError as e:
            raise SinkConfigurationError(
                self.name, "elastic-apm is not installed"
            ) from e
        try:
            self._client = await asyncio.to_thread(self._connect)
        except Exception as e:
            raise SinkConfigurationError(self.name, str(e)) from e

    async def stop(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await asyncio.to_thread(close)

    async def write(self, entry: Entry, payload: str) -> None:
        client = self._client
        if client is None:
            raise SinkWriteError(self.name, "sink not started")
        level = entry.level or "info"
        error = entry.error
        if level in ("error", "fatal") and isinstance(error, BaseException):
            await asyncio.to_thread(
                client.capture_exception,
                exc_info=(type(error), error, error.__traceback__),
                custom={"payload": payload},
            )
            return
        await asyncio.to_thread(
            client.capture_message,
            payload,
            level=_APM_LEVELS.get(level, level),
            logger_name=self._service_name,
            stack=self._config.use_stack_trace,
        )
