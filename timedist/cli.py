"""timedist CLI."""
from __future__ import annotations

import argparse
import json
import os
import subprocess

from .config import DispatcherConfig
from .core.errors import NoValueError
from .datatypes import CommonMetricData, ErrorType, Lifetime, TimeUnit
from .dispatcher import OrderedDispatcher
from .engine.memory import MemoryEngine
from .metrics.timing_distribution import TimingDistributionMetric
from .telemetry.prom import PrometheusExporter, start_http_server


def _cmd_time(args: argparse.Namespace) -> int:
    cmd = list(args.command)
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]
    if not cmd:
        print("No command given; usage: timedist time [options] -- CMD ...")
        return 2

    exporter = None
    if args.prom_port is not None:
        exporter = PrometheusExporter()
        start_http_server(args.prom_port, exporter)
        print(f"Metrics server started on port {args.prom_port}")

    engine = MemoryEngine(exporter=exporter)
    # Values are read back below, so this process is its own test harness.
    dispatcher = OrderedDispatcher(DispatcherConfig(testing_mode=True))
    meta = CommonMetricData(
        category=args.category,
        name=args.name,
        send_in_pings=[args.ping],
        lifetime=Lifetime.PING,
    )
    metric = TimingDistributionMetric(
        meta, engine=engine, dispatcher=dispatcher, time_unit=TimeUnit(args.unit)
    )

    rc = 0
    failed = 0
    for _ in range(max(1, args.repeat)):
        try:
            metric.measure(subprocess.run, cmd, check=True)
        except subprocess.CalledProcessError as e:
            failed += 1
            rc = rc or e.returncode
        except OSError as e:
            print(f"Failed to run {cmd[0]}: {e}")
            failed += 1
            rc = rc or 127

    try:
        value = metric.test_get_value().to_payload()
    except NoValueError:
        value = None
    errors = {et.value: metric.test_get_num_recorded_errors(et) for et in ErrorType}
    out = {
        "metric": meta.identifier,
        "unit": args.unit,
        "ping": args.ping,
        "value": value,
        "errors": {k: v for k, v in errors.items() if v},
        "failed_runs": failed,
    }
    print(json.dumps(out, indent=2, sort_keys=True))
    metric.close()
    dispatcher.shutdown()
    return rc


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="timedist")
    sub = p.add_subparsers(dest="cmd", required=True)

    # time
    sp = sub.add_parser("time", help="Run a command repeatedly and report its timing distribution")
    sp.add_argument("--repeat", type=int, default=1, help="Number of runs (default 1)")
    sp.add_argument(
        "--unit",
        choices=[u.value for u in TimeUnit],
        default=os.getenv("TIMEDIST_CLI_UNIT", TimeUnit.MILLISECOND.value),
        help="Time unit samples are recorded in",
    )
    sp.add_argument("--category", default="cli", help="Metric category")
    sp.add_argument("--name", default="command_duration", help="Metric name")
    sp.add_argument("--ping", default="metrics", help="Ping the metric reports into")
    sp.add_argument("--prom-port", type=int, default=None, help="Expose Prometheus metrics on this port")
    sp.add_argument("command", nargs=argparse.REMAINDER, help="Command to run (after --)")
    sp.set_defaults(func=_cmd_time)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
