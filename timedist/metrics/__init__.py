"""Metric types."""

from .timing_distribution import TimingDistributionMetric

__all__ = ["TimingDistributionMetric"]
