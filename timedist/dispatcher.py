"""Ordered, single-consumer task dispatcher.

Producers on any thread hand callables to ``submit``; a single daemon thread
executes them strictly in the order they were enqueued. ``drain_and_wait``
blocks until everything submitted before it has run, which is what the
metric test accessors rely on for deterministic reads.
"""
from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from typing import Optional

from .config import DispatcherConfig
from .telemetry.logging import get_logger


Task = Callable[[], object]

_STOP = object()


class OrderedDispatcher:
    def __init__(self, config: Optional[DispatcherConfig] = None) -> None:
        self.config = config or DispatcherConfig()
        self._queue: "queue.Queue[object]" = queue.Queue()
        # Guards thread start/stop; the queue itself is thread-safe.
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self._log = get_logger("timedist.dispatcher")

    @property
    def is_running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _ensure_started(self) -> None:
        if self._thread is not None:
            return
        t = threading.Thread(target=self._loop, name=self.config.thread_name, daemon=True)
        t.start()
        self._thread = t

    def submit(self, task: Task) -> None:
        """Enqueue ``task``; never blocks and never raises to the producer."""
        with self._lock:
            if self._closed:
                self._log.warning("dispatcher is shut down; dropping task %r", task)
                return
            self._ensure_started()
            # Enqueue under the lock so shutdown's sentinel is always last.
            self._queue.put(task)

    # Name used by metric types for recording calls.
    launch_api = submit

    def drain_and_wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every task submitted before this call has completed.

        Must not be called from inside a task. Returns False on timeout. After
        shutdown it waits for the consumer thread to finish the queue instead.
        """
        done = threading.Event()
        with self._lock:
            closed = self._closed
            t = self._thread
            if not closed:
                self._ensure_started()
                self._queue.put(done.set)
        if closed:
            # Join outside the lock so producers calling submit never wait.
            if t is None:
                return True
            t.join(timeout=timeout)
            return not t.is_alive()
        return done.wait(timeout=timeout)

    def assert_in_testing_mode(self) -> None:
        if not self.config.testing_mode:
            self._log.warning(
                "test accessors used outside testing mode; set TIMEDIST_TESTING_MODE=1"
            )

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            t = self._thread
            if t is None:
                return
            self._queue.put(_STOP)
        if wait:
            t.join(timeout=timeout)

    def _loop(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                try:
                    task()  # type: ignore[operator]
                except Exception:
                    # Failures are terminal to the task only.
                    self._log.exception("dispatched task failed: %r", task)
                except BaseException:
                    # Keep consuming; queued drains still wait on their events.
                    self._log.exception("dispatched task aborted: %r", task)
            finally:
                self._queue.task_done()
