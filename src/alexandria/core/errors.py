"""
Error types and process-wide uncaught exception capture.

The capture hooks are global state with a single lifecycle. They are never
installed implicitly by a logger; the owning application (or the
``alexandria.get_logger`` bootstrap helper) installs them once:

```python
from alexandria import Alexandria
from alexandria.core.errors import capture_unhandled_exceptions

logger = Alexandria(settings)
capture_unhandled_exceptions(logger, delay_seconds=30.0)
```

Installed hooks chain to the previously installed handlers, so the process
still reports and terminates as it would without them.
"""

from __future__ import annotations

import asyncio
import sys
import threading
from types import TracebackType
from typing import Any, Callable, Protocol

from . import diagnostics


class AlexandriaError(Exception):
    """Base class for Alexandria errors."""


class SinkConfigurationError(AlexandriaError):
    """A sink client could not be constructed from its settings."""

    def __init__(self, sink: str, message: str) -> None:
        super().__init__(f"{sink}: {message}")
        self.sink = sink


class SinkWriteError(AlexandriaError):
    """A sink client reported a failed write."""

    def __init__(self, sink: str, message: str) -> None:
        super().__init__(f"{sink}: {message}")
        self.sink = sink


class _ExceptionCapturer(Protocol):
    def capture_exception(self, exc: BaseException) -> None: ...


_unhandled_installed: bool = False
_pending_timer: threading.Timer | None = None
_previous_excepthook: Callable[..., Any] | None = None
_previous_threading_hook: Callable[..., Any] | None = None
_hooked_loop: asyncio.AbstractEventLoop | None = None
_previous_loop_handler: Any = None


def _capture(logger: _ExceptionCapturer, exc: BaseException | None) -> None:
    if exc is None or isinstance(exc, (KeyboardInterrupt, SystemExit)):
        return
    try:
        logger.capture_exception(exc)
    except Exception as e:
        diagnostics.warn(
            "unhandled",
            "failed to capture unhandled exception",
            error=type(e).__name__,
        )


def _install(logger: _ExceptionCapturer) -> None:
    global _unhandled_installed, _previous_excepthook, _previous_threading_hook
    global _hooked_loop, _previous_loop_handler, _pending_timer

    _pending_timer = None
    if _unhandled_installed:
        return
    _unhandled_installed = True

    previous = sys.excepthook
    _previous_excepthook = previous

    def _excepthook(
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        _capture(logger, exc)
        previous(exc_type, exc, tb)

    sys.excepthook = _excepthook

    previous_thread = threading.excepthook
    _previous_threading_hook = previous_thread

    def _threading_hook(args: threading.ExceptHookArgs) -> None:
        _capture(logger, args.exc_value)
        previous_thread(args)

    threading.excepthook = _threading_hook

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop is not None:
        previous_handler = loop.get_exception_handler()
        _hooked_loop = loop
        _previous_loop_handler = previous_handler

        def _loop_handler(
            lp: asyncio.AbstractEventLoop, context: dict[str, Any]
        ) -> None:
            _capture(logger, context.get("exception"))
            if previous_handler is not None:
                previous_handler(lp, context)
            else:
                lp.default_exception_handler(context)

        loop.set_exception_handler(_loop_handler)


def capture_unhandled_exceptions(
    logger: _ExceptionCapturer,
    *,
    delay_seconds: float = 0.0,
) -> None:
    """Install process-wide hooks forwarding uncaught exceptions to ``logger``.

    Only the first call has an effect until ``uninstall_unhandled_hooks()``.

    Args:
        logger: Object exposing ``capture_exception(exc)``, normally an
            ``Alexandria`` facade.
        delay_seconds: Install after this many seconds on a daemon timer;
            ``0`` installs immediately (and also hooks the running asyncio
            loop, if any).
    """
    global _pending_timer
    if _unhandled_installed or _pending_timer is not None:
        return
    if delay_seconds > 0:
        timer = threading.Timer(delay_seconds, _install, args=(logger,))
        timer.daemon = True
        _pending_timer = timer
        timer.start()
        return
    _install(logger)


def uninstall_unhandled_hooks() -> None:
    """Restore the handlers that were active before installation."""
    global _unhandled_installed, _previous_excepthook, _previous_threading_hook
    global _hooked_loop, _previous_loop_handler, _pending_timer

    if _pending_timer is not None:
        _pending_timer.cancel()
        _pending_timer = None
    if not _unhandled_installed:
        return
    if _previous_excepthook is not None:
        sys.excepthook = _previous_excepthook
    if _previous_threading_hook is not None:
        threading.excepthook = _previous_threading_hook
    if _hooked_loop is not None and not _hooked_loop.is_closed():
        _hooked_loop.set_exception_handler(_previous_loop_handler)
    _previous_excepthook = None
    _previous_threading_hook = None
    _hooked_loop = None
    _previous_loop_handler = None
    _unhandled_installed = False
