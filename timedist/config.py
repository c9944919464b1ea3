"""Configuration helpers for timedist.

Values are read from the environment once, when a config object is built.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from .utils.env import env_bool, env_int, env_str


@dataclass(slots=True)
class DispatcherConfig:
    thread_name: str = field(
        default_factory=lambda: env_str("TIMEDIST_DISPATCHER_THREAD_NAME", "timedist-dispatcher")
    )
    testing_mode: bool = field(default_factory=lambda: env_bool("TIMEDIST_TESTING_MODE", False))


@dataclass(slots=True)
class EngineConfig:
    # Functional histogram: buckets grow by 2 ** (1 / buckets_per_magnitude).
    log_base: int = 2
    buckets_per_magnitude: int = field(
        default_factory=lambda: env_int("TIMEDIST_BUCKETS_PER_MAGNITUDE", 8, minimum=1)
    )
    max_sample_minutes: int = field(
        default_factory=lambda: env_int("TIMEDIST_MAX_SAMPLE_MINUTES", 10, minimum=1)
    )
    # 0 means no limit on live metric handles.
    max_metrics: int = field(default_factory=lambda: env_int("TIMEDIST_MAX_METRICS", 0, minimum=0))

    @property
    def max_sample_nanos(self) -> int:
        return self.max_sample_minutes * 60 * 1_000_000_000
