"""Prometheus integration.

Mirrors accumulated timing samples and recorded errors into
prometheus_client collectors so they can be scraped alongside the engine's
own storage.
"""
from __future__ import annotations

import re
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY
from prometheus_client import start_http_server as _p_start


_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def _sanitize(identifier: str) -> str:
    return _INVALID_CHARS.sub("_", identifier)


class PrometheusExporter:
    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "timedist") -> None:
        self.registry = registry if registry is not None else REGISTRY
        self.namespace = namespace
        # Cache created metrics to avoid duplicate registration errors when
        # several metric objects share an identifier (e.g. in tests).
        self._hists: dict[str, Histogram] = {}
        self._errors = Counter(
            "errors",
            "Instrumentation errors recorded by timedist metrics",
            ["metric", "error_type", "ping"],
            namespace=namespace,
            registry=self.registry,
        )

    def histogram_name(self, identifier: str) -> str:
        return f"{self.namespace}_{_sanitize(identifier)}_seconds"

    def _histogram(self, identifier: str) -> Histogram:
        h = self._hists.get(identifier)
        if h is None:
            h = Histogram(
                self.histogram_name(identifier),
                f"Timing distribution {identifier}",
                ["ping"],
                registry=self.registry,
            )
            self._hists[identifier] = h
        return h

    def observe(self, identifier: str, ping_name: str, duration_ns: int) -> None:
        self._histogram(identifier).labels(ping=ping_name).observe(duration_ns / 1e9)

    def inc_error(self, identifier: str, error_type: str, ping_name: str) -> None:
        self._errors.labels(metric=identifier, error_type=error_type, ping=ping_name).inc()


def start_http_server(port: int = 9099, exporter: Optional[PrometheusExporter] = None) -> None:
    registry = exporter.registry if exporter is not None else REGISTRY
    _p_start(port, registry=registry)
