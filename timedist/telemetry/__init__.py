"""Telemetry subpackage (lightweight).

Exposes logging helpers and the Prometheus mirror.
"""

from .logging import get_logger
from .prom import PrometheusExporter, start_http_server

__all__ = [
    "get_logger",
    "PrometheusExporter",
    "start_http_server",
]
