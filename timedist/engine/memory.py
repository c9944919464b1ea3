"""In-memory storage engine.

Keeps timing distributions and error counters per ping in process memory.
Used by tests, the CLI and embedders that do not need persistence. All
public methods are safe to call from any thread.
"""
from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from ..config import EngineConfig
from ..core.errors import EngineUnavailableError, NoValueError
from ..core.schemas import PING_SCHEMA_VERSION, PingPayload
from ..datatypes import CommonMetricData, ErrorType, Lifetime, TimeUnit, TimerId
from ..telemetry.logging import get_logger
from ..telemetry.prom import PrometheusExporter
from .base import EngineHandle
from .histogram import FunctionalHistogram


@dataclass
class _MetricEntry:
    meta: CommonMetricData
    time_unit: TimeUnit
    timers: Dict[TimerId, int] = field(default_factory=dict)


class MemoryEngine:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        exporter: Optional[PrometheusExporter] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.exporter = exporter
        self._lock = threading.RLock()
        self._metrics: Dict[EngineHandle, _MetricEntry] = {}
        self._handle_ids = itertools.count(1)
        self._timer_ids = itertools.count(1)
        # ping name -> metric identifier -> histogram
        self._store: Dict[str, Dict[str, FunctionalHistogram]] = {}
        self._lifetimes: Dict[str, Lifetime] = {}
        # (metric identifier, error type, ping name) -> count
        self._errors: Dict[Tuple[str, ErrorType, str], int] = {}
        self._log = get_logger("timedist.engine.memory")

    # -- lifecycle -----------------------------------------------------

    def create_metric(
        self,
        category: str,
        name: str,
        ping_names: Sequence[str],
        lifetime: Lifetime,
        disabled: bool,
        time_unit: TimeUnit,
    ) -> EngineHandle:
        try:
            meta = CommonMetricData(
                category=category,
                name=name,
                send_in_pings=tuple(ping_names),
                lifetime=lifetime,
                disabled=disabled,
            )
        except ValueError as e:
            raise EngineUnavailableError(f"cannot register metric: {e}") from e
        with self._lock:
            limit = self.config.max_metrics
            if limit and len(self._metrics) >= limit:
                raise EngineUnavailableError(
                    f"cannot register {meta.identifier}: {limit} metrics already live"
                )
            handle = next(self._handle_ids)
            self._metrics[handle] = _MetricEntry(meta=meta, time_unit=time_unit)
            self._lifetimes[meta.identifier] = lifetime
        self._log.debug("created %s (handle=%d, unit=%s)", meta.identifier, handle, time_unit.value)
        return handle

    def destroy_metric(self, handle: EngineHandle) -> None:
        with self._lock:
            entry = self._metrics.pop(handle, None)
        if entry is None:
            self._log.debug("destroy of unknown handle %d ignored", handle)
            return
        if entry.timers:
            self._log.debug(
                "%s destroyed with %d running timers", entry.meta.identifier, len(entry.timers)
            )

    @property
    def live_handles(self) -> int:
        with self._lock:
            return len(self._metrics)

    def _entry(self, handle: EngineHandle) -> Optional[_MetricEntry]:
        entry = self._metrics.get(handle)
        if entry is None:
            self._log.debug("operation on unknown handle %d ignored", handle)
        return entry

    # -- recording -----------------------------------------------------

    def set_start(self, handle: EngineHandle, timestamp_ns: int) -> TimerId:
        with self._lock:
            timer_id = next(self._timer_ids)
            entry = self._entry(handle)
            if entry is not None and not entry.meta.disabled:
                entry.timers[timer_id] = timestamp_ns
            return timer_id

    def set_stop_and_accumulate(self, handle: EngineHandle, timer_id: TimerId, timestamp_ns: int) -> None:
        with self._lock:
            entry = self._entry(handle)
            if entry is None or entry.meta.disabled:
                return
            start_ns = entry.timers.pop(timer_id, None)
            if start_ns is None:
                self._record_error(entry, ErrorType.INVALID_STATE, "Timing not running", None)
                return
            duration_ns = timestamp_ns - start_ns
            if duration_ns < 0:
                self._record_error(entry, ErrorType.INVALID_VALUE, "Timer stopped with negative duration", None)
                return
            self._accumulate(entry, duration_ns)

    def cancel(self, handle: EngineHandle, timer_id: TimerId) -> None:
        with self._lock:
            entry = self._entry(handle)
            if entry is not None:
                entry.timers.pop(timer_id, None)

    def record_error(
        self,
        handle: EngineHandle,
        error_type: ErrorType,
        message: str,
        ping_name: Optional[str] = None,
    ) -> None:
        with self._lock:
            entry = self._entry(handle)
            if entry is None or entry.meta.disabled:
                return
            self._record_error(entry, error_type, message, ping_name)

    def _record_error(
        self,
        entry: _MetricEntry,
        error_type: ErrorType,
        message: str,
        ping_name: Optional[str],
    ) -> None:
        identifier = entry.meta.identifier
        pings = (ping_name,) if ping_name else entry.meta.send_in_pings
        for ping in pings:
            key = (identifier, error_type, ping)
            self._errors[key] = self._errors.get(key, 0) + 1
            if self.exporter is not None:
                self.exporter.inc_error(identifier, error_type.value, ping)
        self._log.warning("%s: %s (%s)", identifier, message, error_type.value)

    def _accumulate(self, entry: _MetricEntry, duration_ns: int) -> None:
        unit = entry.time_unit
        sample = max(1, unit.from_nanos(duration_ns))
        max_sample = max(1, unit.from_nanos(self.config.max_sample_nanos))
        if sample > max_sample:
            self._record_error(
                entry,
                ErrorType.INVALID_OVERFLOW,
                f"Sample is longer than the max for a time_unit of {unit.value} ({sample} > {max_sample})",
                None,
            )
            sample = max_sample
        identifier = entry.meta.identifier
        for ping in entry.meta.send_in_pings:
            metrics = self._store.setdefault(ping, {})
            hist = metrics.get(identifier)
            if hist is None:
                hist = FunctionalHistogram(
                    log_base=self.config.log_base,
                    buckets_per_magnitude=self.config.buckets_per_magnitude,
                )
                metrics[identifier] = hist
            hist.accumulate(sample)
            if self.exporter is not None:
                self.exporter.observe(identifier, ping, duration_ns)

    # -- test accessors ------------------------------------------------

    def _histogram(self, handle: EngineHandle, ping_name: str) -> Optional[FunctionalHistogram]:
        entry = self._entry(handle)
        if entry is None:
            return None
        hist = self._store.get(ping_name, {}).get(entry.meta.identifier)
        if hist is None or hist.is_empty():
            return None
        return hist

    def test_has_value(self, handle: EngineHandle, ping_name: str) -> bool:
        with self._lock:
            return self._histogram(handle, ping_name) is not None

    def test_get_value_as_json(self, handle: EngineHandle, ping_name: str) -> str:
        with self._lock:
            hist = self._histogram(handle, ping_name)
            if hist is None:
                entry = self._metrics.get(handle)
                identifier = entry.meta.identifier if entry is not None else f"<handle {handle}>"
                raise NoValueError(identifier, ping_name)
            return hist.snapshot().to_json()

    def test_get_num_recorded_errors(self, handle: EngineHandle, error_type: ErrorType, ping_name: str) -> int:
        with self._lock:
            entry = self._entry(handle)
            if entry is None:
                return 0
            return self._errors.get((entry.meta.identifier, error_type, ping_name), 0)

    # -- ping collection -----------------------------------------------

    def snapshot(self, ping_name: str, clear: bool = True) -> PingPayload:
        """Collect everything stored for ``ping_name``.

        With ``clear`` set, ping-lifetime distributions and the ping's error
        counters are removed afterwards; application and user lifetime data
        stays in place.
        """
        with self._lock:
            metrics = self._store.get(ping_name, {})
            distributions = {
                ident: hist.snapshot().to_payload()
                for ident, hist in sorted(metrics.items())
                if not hist.is_empty()
            }
            errors: Dict[str, Dict[str, int]] = {}
            for (ident, error_type, ping), count in sorted(
                self._errors.items(), key=lambda kv: (kv[0][0], kv[0][1].value, kv[0][2])
            ):
                if ping == ping_name:
                    errors.setdefault(error_type.value, {})[ident] = count
            if clear:
                for ident in list(metrics):
                    if self._lifetimes.get(ident, Lifetime.PING) is Lifetime.PING:
                        del metrics[ident]
                for key in [k for k in self._errors if k[2] == ping_name]:
                    del self._errors[key]
        payload: PingPayload = {
            "schema_version": PING_SCHEMA_VERSION,
            "ping": ping_name,
            "metrics": {"timing_distribution": distributions} if distributions else {},
            "errors": errors,
        }
        return payload

    def clear_all(self) -> None:
        with self._lock:
            self._store.clear()
            self._errors.clear()
            for entry in self._metrics.values():
                entry.timers.clear()
