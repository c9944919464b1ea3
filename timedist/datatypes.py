"""Value types shared by the metric facade and the storage engines."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple

from .core.schemas import DistributionPayload


# Opaque correlation id handed out by ``start()``.
TimerId = int


class Lifetime(Enum):
    PING = 0
    APPLICATION = 1
    USER = 2


_NANOS_PER_UNIT = {
    "nanosecond": 1,
    "microsecond": 1_000,
    "millisecond": 1_000_000,
    "second": 1_000_000_000,
    "minute": 60 * 1_000_000_000,
    "hour": 60 * 60 * 1_000_000_000,
    "day": 24 * 60 * 60 * 1_000_000_000,
}


class TimeUnit(Enum):
    NANOSECOND = "nanosecond"
    MICROSECOND = "microsecond"
    MILLISECOND = "millisecond"
    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    @property
    def nanos(self) -> int:
        return _NANOS_PER_UNIT[self.value]

    def as_nanos(self, value: int) -> int:
        return value * self.nanos

    def from_nanos(self, duration_ns: int) -> int:
        # Truncates, like integer division of the raw duration.
        return duration_ns // self.nanos


class ErrorType(Enum):
    INVALID_VALUE = "invalid_value"
    INVALID_LABEL = "invalid_label"
    INVALID_STATE = "invalid_state"
    INVALID_OVERFLOW = "invalid_overflow"


@dataclass(frozen=True)
class CommonMetricData:
    category: str
    name: str
    send_in_pings: Tuple[str, ...]
    lifetime: Lifetime = Lifetime.PING
    disabled: bool = False

    def __post_init__(self) -> None:
        # Accept any iterable of ping names but store an immutable tuple.
        object.__setattr__(self, "send_in_pings", tuple(self.send_in_pings))
        if not self.send_in_pings:
            raise ValueError(f"{self.identifier}: send_in_pings must not be empty")
        if not self.name:
            raise ValueError("metric name must not be empty")

    @property
    def identifier(self) -> str:
        if not self.category:
            return self.name
        return f"{self.category}.{self.name}"

    @property
    def default_ping(self) -> str:
        return self.send_in_pings[0]


@dataclass
class DistributionData:
    """Aggregated timing distribution: sum, count and bucketed histogram.

    ``sum`` is expressed in the metric's time unit; ``values`` maps a bucket's
    lower bound to the number of observations that landed in it.
    """

    sum: int = 0
    count: int = 0
    values: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: DistributionPayload) -> "DistributionData":
        values = {int(k): int(v) for k, v in payload.get("values", {}).items()}
        return cls(sum=int(payload["sum"]), count=int(payload["count"]), values=values)

    @classmethod
    def from_json(cls, raw: str) -> "DistributionData":
        return cls.from_payload(json.loads(raw))

    def to_payload(self) -> DistributionPayload:
        return {
            "sum": self.sum,
            "count": self.count,
            "values": {str(k): v for k, v in sorted(self.values.items())},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), sort_keys=True)
