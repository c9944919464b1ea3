"""Timestamp source shared by start and stop captures."""
from __future__ import annotations

import time


def timestamp_nanos() -> int:
    return time.monotonic_ns()
