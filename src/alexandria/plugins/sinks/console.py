from __future__ import annotations

import sys
import threading
from typing import IO, Any, Mapping

import orjson

from ...core import diagnostics
from ...core.levels import CONSOLE_LEVELS


class ConsoleSink:
    """Synchronous stdout sink writing one JSON object per line.

    Each line carries the console level, the serialized entry payload as
    ``message``, and the service identity:

        {"level":"warning","message":"{...}","name":"billing","version":"1.0",...}

    Never raises upstream; errors are contained.
    """

    name = "console"

    def __init__(
        self,
        identity: Mapping[str, Any] | None = None,
        *,
        stream: IO[str] | None = None,
    ) -> None:
        self._identity = dict(identity or {})
        self._stream = stream
        self._lock = threading.Lock()

    async def start(self) -> None:  # lifecycle placeholder
        return None

    async def stop(self) -> None:
        self.flush()

    def flush(self) -> None:
        try:
            (self._stream or sys.stdout).flush()
        except Exception:
            return None

    def write(self, level: str, payload: str) -> None:
        try:
            line = orjson.dumps(
                {
                    "level": CONSOLE_LEVELS.get(level, level),
                    "message": payload,
                    **self._identity,
                },
                default=str,
            ).decode("utf-8")
            stream = self._stream or sys.stdout
            with self._lock:
                stream.write(line + "\n")
                stream.flush()
        except Exception as e:
            # Contain sink errors; do not propagate
            diagnostics.warn(
                "sink",
                "console write failed",
                sink=self.name,
                error=type(e).__name__,
                _rate_limit_key="console-write",
            )
            return None
