from __future__ import annotations

import gc

from timedist.datatypes import CommonMetricData, TimeUnit
from timedist.engine.memory import MemoryEngine
from timedist.handle import MetricHandle


class _CountingEngine(MemoryEngine):
    def __init__(self) -> None:
        super().__init__()
        self.destroyed: list[int] = []

    def destroy_metric(self, handle: int) -> None:
        self.destroyed.append(handle)
        super().destroy_metric(handle)


def _meta(**kw) -> CommonMetricData:  # noqa: ANN003
    return CommonMetricData(category="app", name="startup", send_in_pings=["metrics"], **kw)


def test_release_is_idempotent():
    engine = _CountingEngine()
    h = MetricHandle.allocate(engine, _meta(), TimeUnit.MILLISECOND)
    assert h.is_available
    raw = h.raw
    h.release()
    h.release()
    assert h.raw is None
    assert engine.destroyed == [raw]


def test_garbage_collection_releases_once():
    engine = _CountingEngine()
    h = MetricHandle.allocate(engine, _meta(), TimeUnit.MILLISECOND)
    raw = h.raw
    del h
    gc.collect()
    assert engine.destroyed == [raw]
    assert engine.live_handles == 0


def test_failed_allocation_yields_unavailable_handle():
    class _Failing(MemoryEngine):
        def create_metric(self, *args, **kwargs):  # noqa: ANN002, ANN003
            raise RuntimeError("disk full")

    engine = _Failing()
    h = MetricHandle.allocate(engine, _meta(), TimeUnit.MILLISECOND)
    assert h.is_available is False
    h.release()
    assert h.raw is None


def test_destroy_errors_are_logged(caplog):
    class _Exploding(MemoryEngine):
        def destroy_metric(self, handle: int) -> None:
            raise RuntimeError("gone")

    h = MetricHandle.allocate(_Exploding(), _meta(), TimeUnit.MILLISECOND)
    h.release()
    assert "failed to destroy app.startup" in caplog.text
