"""Startup phase timing demo (CPU-only).

Times a few fake startup phases from worker threads, then prints the
collected ping payload.
"""
from __future__ import annotations

import json
import random
import threading
import time

from timedist.config import DispatcherConfig
from timedist.datatypes import CommonMetricData, TimeUnit
from timedist.dispatcher import OrderedDispatcher
from timedist.engine.memory import MemoryEngine
from timedist.metrics.timing_distribution import TimingDistributionMetric


def main() -> None:
    engine = MemoryEngine()
    dispatcher = OrderedDispatcher(DispatcherConfig(testing_mode=True))
    startup = TimingDistributionMetric(
        CommonMetricData(category="app", name="startup", send_in_pings=["metrics"]),
        engine=engine,
        dispatcher=dispatcher,
        time_unit=TimeUnit.MILLISECOND,
    )

    def phase() -> None:
        startup.measure(time.sleep, random.uniform(0.01, 0.05))

    threads = [threading.Thread(target=phase) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    dispatcher.drain_and_wait()
    print(json.dumps(engine.snapshot("metrics"), indent=2))
    startup.close()
    dispatcher.shutdown()


if __name__ == "__main__":
    main()
