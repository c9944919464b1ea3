"""Functional exponential histogram used by timing distributions.

Bucket boundaries are not stored; they are computed from the sample:
``index = floor(log(sample + 1, base ** (1 / buckets_per_magnitude)))`` and
the bucket is keyed by its minimum, ``floor(exponent ** index) - 1``.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict

from ..datatypes import DistributionData


@dataclass
class FunctionalHistogram:
    log_base: int = 2
    buckets_per_magnitude: int = 8
    values: Dict[int, int] = field(default_factory=dict)
    sum: int = 0
    count: int = 0

    @property
    def exponent(self) -> float:
        return math.pow(self.log_base, 1.0 / self.buckets_per_magnitude)

    def sample_to_bucket_index(self, sample: int) -> int:
        return int(math.log(sample + 1) / math.log(self.exponent))

    def bucket_index_to_bucket_minimum(self, index: int) -> int:
        return int(math.pow(self.exponent, index)) - 1

    def sample_to_bucket_minimum(self, sample: int) -> int:
        if sample == 0:
            return 0
        return self.bucket_index_to_bucket_minimum(self.sample_to_bucket_index(sample))

    def accumulate(self, sample: int) -> None:
        if sample < 0:
            raise ValueError(f"negative sample: {sample}")
        bucket = self.sample_to_bucket_minimum(sample)
        self.values[bucket] = self.values.get(bucket, 0) + 1
        self.sum += sample
        self.count += 1

    def is_empty(self) -> bool:
        return self.count == 0

    def snapshot(self) -> DistributionData:
        return DistributionData(sum=self.sum, count=self.count, values=dict(self.values))
