"""Storage engine interface.

The engine owns aggregation, persistence and error counters. The metric
types only talk to it through this protocol.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..datatypes import ErrorType, Lifetime, TimeUnit, TimerId


# Opaque handle issued by ``create_metric``.
EngineHandle = int


class StorageEngine(Protocol):
    """Protocol for timing distribution storage engines."""

    def create_metric(
        self,
        category: str,
        name: str,
        ping_names: Sequence[str],
        lifetime: Lifetime,
        disabled: bool,
        time_unit: TimeUnit,
    ) -> EngineHandle:
        ...

    def destroy_metric(self, handle: EngineHandle) -> None:
        ...

    def set_start(self, handle: EngineHandle, timestamp_ns: int) -> TimerId:
        ...

    def set_stop_and_accumulate(self, handle: EngineHandle, timer_id: TimerId, timestamp_ns: int) -> None:
        ...

    def cancel(self, handle: EngineHandle, timer_id: TimerId) -> None:
        ...

    def record_error(
        self,
        handle: EngineHandle,
        error_type: ErrorType,
        message: str,
        ping_name: Optional[str] = None,
    ) -> None:
        ...

    def test_has_value(self, handle: EngineHandle, ping_name: str) -> bool:
        ...

    def test_get_value_as_json(self, handle: EngineHandle, ping_name: str) -> str:
        ...

    def test_get_num_recorded_errors(self, handle: EngineHandle, error_type: ErrorType, ping_name: str) -> int:
        ...
