"""Fire-and-forget sink dispatch.

A ``SinkDispatcher`` owns a background thread running an asyncio event loop.
Every sink write submitted to it becomes an independent task, so one sink's
I/O never delays another sink or the caller. Blocking client calls made by
sinks through ``asyncio.to_thread`` run on a bounded thread pool owned by the
dispatcher.

Callers never observe results. Failures are contained per task and reported
through diagnostics and metrics. ``flush()`` and ``close()`` exist so tests
and shutdown can wait for in-flight work deterministically.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
import time
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

from ..metrics.metrics import MetricsCollector
from . import diagnostics

T = TypeVar("T")

# Factory producing the coroutine for one sink write
SinkWrite = Callable[[], Awaitable[None]]


class SinkDispatcher:
    """Background event loop running one task per sink write.

    Args:
        max_workers: Threads available for blocking client calls.
        metrics: Optional collector for dispatch counts and errors.
        name: Prefix for thread names.
    """

    def __init__(
        self,
        *,
        max_workers: int = 4,
        metrics: MetricsCollector | None = None,
        name: str = "alexandria",
    ) -> None:
        self._max_workers = max(1, max_workers)
        self._metrics = metrics
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._pending: set[concurrent.futures.Future[None]] = set()
        self._pending_lock = threading.Lock()
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._loop is not None and not self._closed

    @property
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def start(self) -> None:
        if self._thread is not None or self._closed:
            return
        loop = asyncio.new_event_loop()
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=f"{self._name}-sink",
        )
        loop.set_default_executor(executor)
        ready = threading.Event()

        def _run_loop() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            loop.run_forever()

        thread = threading.Thread(
            target=_run_loop,
            name=f"{self._name}-dispatch",
            daemon=True,
        )
        thread.start()
        ready.wait()
        self._loop = loop
        self._thread = thread
        self._executor = executor

    def run(
        self,
        coro: Coroutine[Any, Any, T],
        *,
        timeout: float | None = None,
    ) -> T:
        """Run ``coro`` on the dispatch loop and wait for its result.

        Used for sink lifecycle hooks, whose errors must reach the caller.
        """
        if self._loop is None:
            coro.close()
            raise RuntimeError("Dispatcher is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def submit(self, sink_name: str, write: SinkWrite) -> None:
        """Schedule ``write`` as an independent task and return immediately."""
        loop = self._loop
        if loop is None or self._closed:
            diagnostics.warn(
                "dispatcher",
                "dispatch after close",
                sink=sink_name,
                _rate_limit_key="dispatch-closed",
            )
            return
        try:
            future = asyncio.run_coroutine_threadsafe(
                self._deliver(sink_name, write), loop
            )
        except RuntimeError:
            # Loop stopped between the check and the submission
            diagnostics.warn("dispatcher", "dispatch after close", sink=sink_name)
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def record_error(self, sink_name: str) -> None:
        """Count a failure reported outside a dispatch task; thread-safe."""
        loop, metrics = self._loop, self._metrics
        if metrics is None or loop is None or self._closed:
            return
        coro = metrics.record_sink_error(sink=sink_name)
        try:
            future = asyncio.run_coroutine_threadsafe(coro, loop)
        except RuntimeError:
            coro.close()
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future: concurrent.futures.Future[None]) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    async def _deliver(self, sink_name: str, write: SinkWrite) -> None:
        started = time.perf_counter()
        try:
            await write()
        except Exception as exc:
            diagnostics.warn(
                "sink",
                "sink dispatch failed",
                sink=sink_name,
                error=type(exc).__name__,
                detail=str(exc),
            )
            if self._metrics is not None:
                await self._metrics.record_sink_error(sink=sink_name)
            return
        if self._metrics is not None:
            await self._metrics.record_dispatch(
                sink=sink_name,
                duration_seconds=time.perf_counter() - started,
            )

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until no dispatch is in flight.

        Dispatches submitted while waiting (e.g. failure reports) are
        waited for as well.

        Returns:
            True if everything completed within ``timeout``.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._pending_lock:
                pending = list(self._pending)
            if not pending:
                return True
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
            concurrent.futures.wait(pending, timeout=remaining)

    def close(self, timeout: float | None = None) -> None:
        """Drain pending work, then stop the loop and its threads."""
        if self._closed:
            return
        self.flush(timeout)
        self._closed = True
        loop, thread, executor = self._loop, self._thread, self._executor
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout)
        if loop is not None and not loop.is_running():
            loop.close()
        if executor is not None:
            executor.shutdown(wait=False)
