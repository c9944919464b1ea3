from __future__ import annotations

import json
import sys

from timedist.cli import build_parser, main


def test_cli_times_successful_command(capsys):
    rc = main(["time", "--repeat", "3", "--", sys.executable, "-c", "pass"])
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["metric"] == "cli.command_duration"
    assert out["value"]["count"] == 3
    assert out["failed_runs"] == 0
    assert out["errors"] == {}


def test_cli_failed_runs_are_cancelled(capsys):
    rc = main(["time", "--repeat", "2", "--", sys.executable, "-c", "raise SystemExit(3)"])
    assert rc == 3
    out = json.loads(capsys.readouterr().out)
    assert out["value"] is None
    assert out["failed_runs"] == 2
    assert out["errors"] == {}


def test_cli_requires_command(capsys):
    assert main(["time"]) == 2
    assert "No command given" in capsys.readouterr().out


def test_parser_defaults():
    args = build_parser().parse_args(["time", "--", "true"])
    assert args.repeat == 1
    assert args.unit == "millisecond"
    assert args.ping == "metrics"
