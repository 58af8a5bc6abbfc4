"""Graceful shutdown handling for Alexandria.

This module provides:
- Atexit handler to drain in-flight sink dispatches on normal exit
- WeakSet-based logger registration to avoid memory leaks

The handler is best-effort: it attempts to flush and close loggers but will
not block longer than each logger's drain timeout.
"""

from __future__ import annotations

import atexit
import weakref
from typing import TYPE_CHECKING, Any

from . import diagnostics

if TYPE_CHECKING:
    from .logger import Alexandria


# Module-level state
_shutdown_in_progress: bool = False
_registered_loggers: weakref.WeakSet[Any] = weakref.WeakSet()


def register_logger(logger: Alexandria) -> None:
    """Register a logger for automatic drain on exit.

    Uses WeakSet to avoid preventing garbage collection.
    """
    _registered_loggers.add(logger)


def unregister_logger(logger: Alexandria) -> None:
    """Unregister a logger; called after an explicit ``close()``."""
    _registered_loggers.discard(logger)


def _drain_single_logger(logger: Any) -> None:
    try:
        core = logger.settings.core
        if not core.atexit_drain_enabled:
            return
        logger.close(timeout=core.drain_timeout_seconds)
    except Exception as e:
        diagnostics.warn(
            "shutdown",
            "logger drain failed",
            error=type(e).__name__,
        )


def _atexit_handler() -> None:
    """Best-effort drain of all loggers on normal exit; never raises."""
    global _shutdown_in_progress

    if _shutdown_in_progress:
        return
    _shutdown_in_progress = True

    # Snapshot the loggers (WeakSet iteration can fail if GC runs)
    try:
        loggers = list(_registered_loggers)
    except Exception:  # pragma: no cover - rare GC race
        return

    for logger in loggers:
        _drain_single_logger(logger)


atexit.register(_atexit_handler)
