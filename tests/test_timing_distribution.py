from __future__ import annotations

import threading
import time

import pytest

from timedist.core.errors import EngineUnavailableError, NoValueError
from timedist.datatypes import ErrorType, TimeUnit
from timedist.engine.histogram import FunctionalHistogram


def _busy_wait(seconds: float) -> None:
    end = time.perf_counter() + seconds
    while time.perf_counter() < end:
        pass


def test_disabled_metric_is_a_noop(make_metric, engine):
    metric = make_metric(disabled=True)
    assert metric.start() is None
    metric.stop_and_accumulate(None)
    metric.stop_and_accumulate(12345)
    metric.cancel(12345)
    assert metric.measure(lambda: 3) == 3
    assert metric.test_has_value() is False
    for et in ErrorType:
        assert metric.test_get_num_recorded_errors(et) == 0


def test_none_timer_is_silent(make_metric):
    metric = make_metric()
    metric.stop_and_accumulate(None)
    metric.cancel(None)
    assert metric.test_has_value() is False
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 0


def test_start_stop_records_one_sample(make_metric):
    metric = make_metric(time_unit=TimeUnit.MILLISECOND)
    t0 = time.monotonic_ns()
    timer_id = metric.start()
    assert timer_id is not None
    _busy_wait(0.01)
    metric.stop_and_accumulate(timer_id)
    elapsed_ms = (time.monotonic_ns() - t0) // 1_000_000
    assert metric.test_has_value() is True
    value = metric.test_get_value()
    assert value.count == 1
    assert 10 <= value.sum <= elapsed_ms
    assert sum(value.values.values()) == 1


def test_cancel_discards_without_error(make_metric):
    metric = make_metric()
    timer_id = metric.start()
    metric.cancel(timer_id)
    assert metric.test_has_value() is False
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 0
    # Cancelling again stays silent.
    metric.cancel(timer_id)
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 0


def test_double_stop_records_invalid_state_once(make_metric):
    metric = make_metric()
    timer_id = metric.start()
    metric.stop_and_accumulate(timer_id)
    metric.stop_and_accumulate(timer_id)
    assert metric.test_get_value().count == 1
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 1


def test_stop_after_cancel_is_invalid_state(make_metric):
    metric = make_metric()
    timer_id = metric.start()
    metric.cancel(timer_id)
    metric.stop_and_accumulate(timer_id)
    assert metric.test_has_value() is False
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 1


def test_stop_with_unknown_id_is_invalid_state(make_metric):
    metric = make_metric()
    metric.stop_and_accumulate(987654)
    assert metric.test_has_value() is False
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 1


def test_concurrent_timers_do_not_mix(make_metric):
    metric = make_metric(time_unit=TimeUnit.MILLISECOND)
    # Durations far enough apart that every timer lands in its own bucket range.
    sleeps_ms = [10, 40, 160, 640]
    bounds: dict[int, tuple[int, int]] = {}
    lock = threading.Lock()
    barrier = threading.Barrier(len(sleeps_ms))

    def worker(ms: int) -> None:
        barrier.wait()
        t0 = time.monotonic_ns()
        timer_id = metric.start()
        time.sleep(ms / 1000)
        metric.stop_and_accumulate(timer_id)
        t1 = time.monotonic_ns()
        with lock:
            bounds[ms] = (ms, (t1 - t0) // 1_000_000)

    threads = [threading.Thread(target=worker, args=(ms,)) for ms in sleeps_ms]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    value = metric.test_get_value()
    assert value.count == len(sleeps_ms)
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 0

    hist = FunctionalHistogram()
    observed = sorted(b for b, n in value.values.items() for _ in range(n))
    assert len(observed) == len(sleeps_ms)
    for bucket, ms in zip(observed, sorted(sleeps_ms)):
        lo, hi = bounds[ms]
        assert hist.sample_to_bucket_minimum(lo) <= bucket <= hist.sample_to_bucket_minimum(hi)
    assert sum(lo for lo, _ in bounds.values()) <= value.sum <= sum(hi for _, hi in bounds.values())


def test_engine_metric_limit_degrades_to_disabled(dispatcher):
    from timedist.config import EngineConfig
    from timedist.datatypes import CommonMetricData
    from timedist.engine.memory import MemoryEngine
    from timedist.metrics.timing_distribution import TimingDistributionMetric

    engine = MemoryEngine(EngineConfig(max_metrics=1))
    first = TimingDistributionMetric(
        CommonMetricData(category="app", name="first", send_in_pings=["metrics"]),
        engine=engine,
        dispatcher=dispatcher,
    )
    second = TimingDistributionMetric(
        CommonMetricData(category="app", name="second", send_in_pings=["metrics"]),
        engine=engine,
        dispatcher=dispatcher,
    )
    assert first.handle.is_available is True
    assert second.handle.is_available is False
    assert second.start() is None
    first.stop_and_accumulate(first.start())
    assert first.test_get_value().count == 1
    assert second.test_has_value() is False


def test_measure_returns_value_and_records(make_metric):
    metric = make_metric(time_unit=TimeUnit.MILLISECOND)

    def work(x: int, y: int = 0) -> int:
        _busy_wait(0.005)
        return x + y

    assert metric.measure(work, 2, y=3) == 5
    value = metric.test_get_value()
    assert value.count == 1
    assert value.sum >= 5


def test_measure_failure_cancels_and_reraises(make_metric):
    metric = make_metric()
    err = KeyError("boom")

    def fail() -> None:
        raise err

    with pytest.raises(KeyError) as info:
        metric.measure(fail)
    assert info.value is err
    assert metric.test_has_value() is False
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 0


def test_timed_context_and_decorator(make_metric):
    metric = make_metric()
    with metric.timed() as timer_id:
        assert timer_id is not None

    @metric.measured
    def add(a: int, b: int) -> int:
        return a + b

    assert add(1, 2) == 3
    assert add.__name__ == "add"
    with pytest.raises(RuntimeError):
        with metric.timed():
            raise RuntimeError("fails")
    assert metric.test_get_value().count == 2


def test_each_ping_can_be_queried(make_metric):
    metric = make_metric(pings=("metrics", "baseline"))
    metric.stop_and_accumulate(metric.start())
    assert metric.test_get_value("baseline").count == 1
    assert metric.test_has_value("events") is False
    with pytest.raises(NoValueError):
        metric.test_get_value("events")


def test_missing_value_raises(make_metric):
    metric = make_metric()
    with pytest.raises(NoValueError):
        metric.test_get_value()


def test_metrics_share_commit_order(make_metric, dispatcher):
    a = make_metric(name="a")
    b = make_metric(name="b")
    order: list[str] = []
    ta, tb = a.start(), b.start()
    b.stop_and_accumulate(tb)
    dispatcher.submit(lambda: order.append("after-b"))
    a.stop_and_accumulate(ta)
    dispatcher.submit(lambda: order.append("after-a"))
    assert a.test_has_value() and b.test_has_value()
    assert order == ["after-b", "after-a"]


def test_engine_unavailable_degrades_to_disabled(dispatcher, caplog):
    from timedist.datatypes import CommonMetricData
    from timedist.metrics.timing_distribution import TimingDistributionMetric

    class _BrokenEngine:
        def create_metric(self, *args, **kwargs):  # noqa: ANN002, ANN003
            raise EngineUnavailableError("no storage")

    meta = CommonMetricData(category="app", name="broken", send_in_pings=["metrics"])
    metric = TimingDistributionMetric(meta, engine=_BrokenEngine(), dispatcher=dispatcher)
    assert metric.disabled is True
    assert metric.handle.is_available is False
    assert metric.start() is None
    metric.stop_and_accumulate(1)
    metric.cancel(1)
    assert metric.test_has_value() is False
    assert metric.test_get_num_recorded_errors(ErrorType.INVALID_STATE) == 0
    assert "could not allocate app.broken" in caplog.text


def test_close_flushes_pending_commits_before_release(make_metric, engine, dispatcher):
    metric = make_metric()
    raw = metric.handle.raw
    timer_id = metric.start()
    metric.stop_and_accumulate(timer_id)
    metric.close()
    metric.close()
    dispatcher.drain_and_wait(timeout=5)
    assert metric.handle.raw is None
    assert engine.live_handles == 0
    # Data recorded before close is still in storage under the metric id.
    assert engine.snapshot("metrics")["metrics"]["timing_distribution"]["app.startup"]["count"] == 1
    assert metric.start() is None
    assert raw is not None


def test_end_to_end_app_startup(make_metric):
    metric = make_metric(category="app", name="startup", pings=("metrics",), time_unit=TimeUnit.MILLISECOND)
    t1 = metric.start()
    time.sleep(0.05)
    metric.stop_and_accumulate(t1)
    value = metric.test_get_value()
    assert value.count == 1
    assert 45 <= value.sum <= 200
