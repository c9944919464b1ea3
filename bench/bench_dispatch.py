from __future__ import annotations

import argparse
import json
import threading
import time

from timedist.config import DispatcherConfig
from timedist.datatypes import CommonMetricData, TimeUnit
from timedist.dispatcher import OrderedDispatcher
from timedist.engine.memory import MemoryEngine
from timedist.metrics.timing_distribution import TimingDistributionMetric


def run_once(producers: int, per_producer: int) -> dict:
    engine = MemoryEngine()
    dispatcher = OrderedDispatcher(DispatcherConfig(testing_mode=True))
    metric = TimingDistributionMetric(
        CommonMetricData(category="bench", name="noop", send_in_pings=["metrics"]),
        engine=engine,
        dispatcher=dispatcher,
        time_unit=TimeUnit.NANOSECOND,
    )

    def produce() -> None:
        for _ in range(per_producer):
            metric.stop_and_accumulate(metric.start())

    t0 = time.perf_counter()
    threads = [threading.Thread(target=produce) for _ in range(producers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    submit_s = time.perf_counter() - t0
    metric.test_has_value()
    total_s = time.perf_counter() - t0
    count = metric.test_get_value().count
    dispatcher.shutdown()
    return {
        "producer_seconds": submit_s,
        "drained_seconds": total_s,
        "timings": count,
        "commits_per_second": (count / total_s) if total_s > 0 else 0,
    }


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--producers", type=int, default=4)
    ap.add_argument("--per-producer", type=int, default=10_000)
    ap.add_argument("--repeat", type=int, default=3)
    args = ap.parse_args()
    results = [run_once(args.producers, args.per_producer) for _ in range(args.repeat)]
    out = {
        "runs": results,
        "avg_commits_per_second": sum(r["commits_per_second"] for r in results) / len(results),
    }
    print(json.dumps(out, indent=2))


if __name__ == "__main__":
    main()
