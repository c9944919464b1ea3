"""Shared schema types for engine payloads.

Define stable TypedDicts for interchange between the engine and callers.
"""
from __future__ import annotations

from typing import Dict, TypedDict


# Versioning for ping payloads produced by MemoryEngine.snapshot
PING_SCHEMA_VERSION: str = "1"


class DistributionPayload(TypedDict):
    sum: int
    count: int
    values: Dict[str, int]  # bucket minimum (as string) -> observations


class PingPayload(TypedDict):
    schema_version: str
    ping: str
    metrics: Dict[str, Dict[str, DistributionPayload]]
    errors: Dict[str, Dict[str, int]]  # error type -> metric id -> count
