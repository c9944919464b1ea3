"""Owning reference to a metric registered in a storage engine.

The engine-side metric is destroyed exactly once: either through an explicit
``release()`` or, failing that, when the handle is garbage collected.
"""
from __future__ import annotations

import threading
import weakref
from typing import Optional

from .datatypes import CommonMetricData, TimeUnit
from .engine.base import EngineHandle, StorageEngine
from .telemetry.logging import get_logger


_log = get_logger("timedist.handle")


def _destroy(engine: StorageEngine, raw: EngineHandle, identifier: str) -> None:
    try:
        engine.destroy_metric(raw)
    except Exception:
        _log.exception("failed to destroy %s (handle=%s)", identifier, raw)


class MetricHandle:
    def __init__(
        self,
        engine: StorageEngine,
        meta: CommonMetricData,
        time_unit: TimeUnit,
        raw: Optional[EngineHandle],
    ) -> None:
        self.engine = engine
        self.meta = meta
        self.time_unit = time_unit
        self._raw = raw
        self._lock = threading.Lock()
        self._finalizer: Optional[weakref.finalize] = None
        if raw is not None:
            self._finalizer = weakref.finalize(self, _destroy, engine, raw, meta.identifier)

    @classmethod
    def allocate(cls, engine: StorageEngine, meta: CommonMetricData, time_unit: TimeUnit) -> "MetricHandle":
        """Register ``meta`` with ``engine``.

        Allocation failures never propagate: the returned handle is simply
        unavailable and every operation on it behaves as if disabled.
        """
        try:
            raw = engine.create_metric(
                meta.category,
                meta.name,
                list(meta.send_in_pings),
                meta.lifetime,
                meta.disabled,
                time_unit,
            )
        except Exception as e:
            _log.warning("could not allocate %s; recording disabled: %s", meta.identifier, e)
            raw = None
        return cls(engine, meta, time_unit, raw)

    @property
    def raw(self) -> Optional[EngineHandle]:
        return self._raw

    @property
    def is_available(self) -> bool:
        return self._raw is not None

    def release(self) -> None:
        with self._lock:
            finalizer, self._finalizer = self._finalizer, None
            self._raw = None
        if finalizer is not None:
            # finalize objects run at most once, GC included.
            finalizer()

    def __repr__(self) -> str:
        return f"MetricHandle({self.meta.identifier!r}, raw={self._raw!r})"
