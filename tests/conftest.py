from __future__ import annotations

import pytest

from timedist.config import DispatcherConfig
from timedist.datatypes import CommonMetricData, Lifetime, TimeUnit
from timedist.dispatcher import OrderedDispatcher
from timedist.engine.memory import MemoryEngine
from timedist.metrics.timing_distribution import TimingDistributionMetric


@pytest.fixture
def dispatcher():
    d = OrderedDispatcher(DispatcherConfig(thread_name="timedist-test", testing_mode=True))
    yield d
    d.shutdown(timeout=5)


@pytest.fixture
def engine() -> MemoryEngine:
    return MemoryEngine()


@pytest.fixture
def make_metric(engine, dispatcher):
    def _make(
        name: str = "startup",
        category: str = "app",
        pings: tuple[str, ...] = ("metrics",),
        disabled: bool = False,
        time_unit: TimeUnit = TimeUnit.NANOSECOND,
        lifetime: Lifetime = Lifetime.PING,
    ) -> TimingDistributionMetric:
        meta = CommonMetricData(
            category=category,
            name=name,
            send_in_pings=pings,
            lifetime=lifetime,
            disabled=disabled,
        )
        return TimingDistributionMetric(meta, engine=engine, dispatcher=dispatcher, time_unit=time_unit)

    return _make
