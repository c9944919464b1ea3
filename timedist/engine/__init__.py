"""Storage engine subpackage.

Provides the engine protocol and the in-memory reference engine:
- StorageEngine: the operations metric types rely on
- MemoryEngine: thread-safe in-process storage with functional histograms
"""

from .base import EngineHandle, StorageEngine
from .histogram import FunctionalHistogram
from .memory import MemoryEngine

__all__ = [
    "EngineHandle",
    "StorageEngine",
    "FunctionalHistogram",
    "MemoryEngine",
]
