"""Per-metric timer correlation.

Tracks which timer ids are running and enforces that each one is consumed
exactly once, either by a commit (stop) or a discard (cancel).
"""
from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple

from .datatypes import TimerId


class TimerRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        # Only running timers are kept; consumed ids are dropped, so a consumed
        # id and an id that was never started look the same.
        self._running: Dict[TimerId, int] = {}

    @property
    def running(self) -> int:
        with self._lock:
            return len(self._running)

    def is_running(self, timer_id: TimerId) -> bool:
        with self._lock:
            return timer_id in self._running

    def begin(self, timer_id: TimerId, start_ns: int) -> TimerId:
        with self._lock:
            if timer_id in self._running:
                raise ValueError(f"timer id {timer_id} is already running")
            self._running[timer_id] = start_ns
        return timer_id

    def consume_for_commit(self, timer_id: TimerId, stop_ns: int) -> Optional[Tuple[int, int]]:
        """Return ``(start_ns, stop_ns)`` or None when the id is not running."""
        with self._lock:
            start_ns = self._running.pop(timer_id, None)
        if start_ns is None:
            return None
        return start_ns, stop_ns

    def consume_for_discard(self, timer_id: TimerId) -> bool:
        with self._lock:
            return self._running.pop(timer_id, None) is not None
