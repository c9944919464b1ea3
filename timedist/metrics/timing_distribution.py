"""Developer facing API for recording timing distribution metrics.

Only ``start()``, ``stop_and_accumulate()`` and ``cancel()`` (plus the
``measure``/``timed``/``measured`` conveniences built on them) are meant for
application code. The ``test_*`` accessors exist for tests: they drain the
dispatcher first so every previously submitted commit or cancel is visible.

Timestamps are taken on the calling thread. The engine write runs later on
the dispatcher thread, so the clock read must not wait for the queue.
"""
from __future__ import annotations

import functools
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Optional, TypeVar

from ..clock import timestamp_nanos
from ..core.errors import NoValueError
from ..datatypes import CommonMetricData, DistributionData, ErrorType, TimerId, TimeUnit
from ..dispatcher import OrderedDispatcher
from ..engine.base import StorageEngine
from ..handle import MetricHandle
from ..telemetry.logging import get_logger
from ..timers import TimerRegistry


T = TypeVar("T")


class TimingDistributionMetric:
    def __init__(
        self,
        meta: CommonMetricData,
        *,
        engine: StorageEngine,
        dispatcher: OrderedDispatcher,
        time_unit: TimeUnit = TimeUnit.NANOSECOND,
    ) -> None:
        self.meta = meta
        self.time_unit = time_unit
        self._engine = engine
        self._dispatcher = dispatcher
        self._closed = False
        self._handle = MetricHandle.allocate(engine, meta, time_unit)
        self._timers = TimerRegistry()
        self._log = get_logger("timedist.metrics", {"metric": meta.identifier})

    @property
    def disabled(self) -> bool:
        return self.meta.disabled or self._closed or not self._handle.is_available

    @property
    def handle(self) -> MetricHandle:
        return self._handle

    # -- recording -----------------------------------------------------

    def start(self) -> Optional[TimerId]:
        """Start tracking time and return the id to pass to stop or cancel.

        Returns None for a disabled metric; passing that None on is fine.
        """
        if self.disabled:
            return None
        start_ns = timestamp_nanos()
        raw = self._handle.raw
        if raw is None:
            return None
        # No dispatcher, we need the return value.
        try:
            timer_id = self._engine.set_start(raw, start_ns)
            return self._timers.begin(timer_id, start_ns)
        except Exception:
            self._log.exception("start failed")
            return None

    def stop_and_accumulate(self, timer_id: Optional[TimerId]) -> None:
        """Stop ``timer_id`` and add the elapsed time to the distribution.

        Records an ``invalid_state`` error if the timer is not running.
        """
        if timer_id is None or self.disabled:
            return
        stop_ns = timestamp_nanos()
        self._dispatcher.launch_api(functools.partial(self._commit, timer_id, stop_ns))

    def cancel(self, timer_id: Optional[TimerId]) -> None:
        """Abort a previous ``start()``. Cancelling an unknown timer is silent."""
        if timer_id is None or self.disabled:
            return
        self._dispatcher.launch_api(functools.partial(self._discard, timer_id))

    def _commit(self, timer_id: TimerId, stop_ns: int) -> None:
        raw = self._handle.raw
        if raw is None:
            return
        if self._timers.consume_for_commit(timer_id, stop_ns) is None:
            self._engine.record_error(raw, ErrorType.INVALID_STATE, f"Timer {timer_id} is not running")
            return
        self._engine.set_stop_and_accumulate(raw, timer_id, stop_ns)

    def _discard(self, timer_id: TimerId) -> None:
        raw = self._handle.raw
        if raw is None:
            return
        if self._timers.consume_for_discard(timer_id):
            self._engine.cancel(raw, timer_id)

    # -- scoped helpers ------------------------------------------------

    @contextmanager
    def timed(self) -> Iterator[Optional[TimerId]]:
        """Time the ``with`` body; an exception cancels the timer and propagates."""
        timer_id = self.start()
        try:
            yield timer_id
        except BaseException:
            self.cancel(timer_id)
            raise
        self.stop_and_accumulate(timer_id)

    def measure(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Call ``fn`` and record its duration.

        If ``fn`` raises, the measurement is cancelled and the exception is
        re-raised unchanged.
        """
        with self.timed():
            return fn(*args, **kwargs)

    def measured(self, fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):  # noqa: ANN202
            return self.measure(fn, *args, **kwargs)

        return wrapper

    # -- lifecycle -----------------------------------------------------

    def close(self) -> None:
        """Release the engine metric after already submitted work has run."""
        if self._closed:
            return
        self._closed = True
        self._dispatcher.submit(self._handle.release)

    def __enter__(self) -> "TimingDistributionMetric":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: ANN001
        self.close()
        return False

    # -- test accessors ------------------------------------------------

    def _ping(self, ping_name: Optional[str]) -> str:
        return ping_name or self.meta.default_ping

    def _drain(self) -> None:
        self._dispatcher.assert_in_testing_mode()
        self._dispatcher.drain_and_wait()

    def test_has_value(self, ping_name: Optional[str] = None) -> bool:
        """Whether a value is stored for ``ping_name`` (default: first ping)."""
        self._drain()
        raw = self._handle.raw
        if raw is None:
            return False
        return self._engine.test_has_value(raw, self._ping(ping_name))

    def test_get_value(self, ping_name: Optional[str] = None) -> DistributionData:
        """Return the stored distribution or raise NoValueError."""
        ping = self._ping(ping_name)
        if not self.test_has_value(ping):
            raise NoValueError(self.meta.identifier, ping)
        raw = self._handle.raw
        if raw is None:
            raise NoValueError(self.meta.identifier, ping)
        return DistributionData.from_json(self._engine.test_get_value_as_json(raw, ping))

    def test_get_num_recorded_errors(self, error_type: ErrorType, ping_name: Optional[str] = None) -> int:
        self._drain()
        raw = self._handle.raw
        if raw is None:
            return 0
        return self._engine.test_get_num_recorded_errors(raw, error_type, self._ping(ping_name))

    def __repr__(self) -> str:
        return f"TimingDistributionMetric({self.meta.identifier!r}, unit={self.time_unit.value})"
