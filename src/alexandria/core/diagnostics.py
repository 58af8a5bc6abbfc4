"""Internal diagnostics for contained failures.

Sink failures never reach application code. When internal logging is enabled
they are reported here instead, as one JSON line per event on stderr:

    {"component": "sink", "level": "WARN", "message": "sink dispatch failed", ...}

Enable with ``Settings(core={"internal_logging_enabled": True})`` or the
``ALEXANDRIA_CORE__INTERNAL_LOGGING_ENABLED=true`` environment variable.
"""

from __future__ import annotations

import sys
import threading
import time
from typing import Any

import orjson

# Cached on first use; ``None`` means "not resolved yet"
_internal_logging_enabled: bool | None = None

_RATE_LIMIT_WINDOW_SECONDS = 5.0
_last_emitted: dict[str, float] = {}
_lock = threading.Lock()


def configure(*, enabled: bool) -> None:
    """Explicitly turn diagnostics on or off for the process."""
    global _internal_logging_enabled
    _internal_logging_enabled = enabled


def is_enabled() -> bool:
    global _internal_logging_enabled
    if _internal_logging_enabled is None:
        try:
            from .settings import Settings

            _internal_logging_enabled = Settings().core.internal_logging_enabled
        except Exception:
            _internal_logging_enabled = False
    return _internal_logging_enabled


def _rate_limited(key: str | None) -> bool:
    if key is None:
        return False
    now = time.monotonic()
    with _lock:
        last = _last_emitted.get(key)
        if last is not None and now - last < _RATE_LIMIT_WINDOW_SECONDS:
            return True
        _last_emitted[key] = now
    return False


def warn(
    component: str,
    message: str,
    *,
    _rate_limit_key: str | None = None,
    **fields: Any,
) -> None:
    """Emit a WARN diagnostic; never raises."""
    if not is_enabled() or _rate_limited(_rate_limit_key):
        return
    record = {
        "timestamp": time.time(),
        "level": "WARN",
        "component": component,
        "message": message,
        **fields,
    }
    try:
        line = orjson.dumps(record, default=str)
        with _lock:
            sys.stderr.write(line.decode("utf-8") + "\n")
            sys.stderr.flush()
    except Exception:
        # Diagnostics must never break the caller
        return
