"""Prometheus metrics implementation using prometheus_client."""

from __future__ import annotations

from typing import Any

from ingest_platform.services.metrics.interface import MetricsInterface
from ingest_platform.services.secrets.interface import SecretsInterface


class PrometheusMetrics(MetricsInterface):
    """Exposes pipeline metrics on a Prometheus ``/metrics`` endpoint.

    Config (via secrets):
        METRICS_PROMETHEUS_PORT - port for the scrape endpoint (default 9091,
                                  0 disables the built-in HTTP server).
        METRICS_PREFIX          - prefix added to every metric name
                                  (default ``ingest``).

    Dashes and dots in names are replaced with underscores. One collector is
    created per (name, label-set) pair on first use.
    """

    def __init__(self, secrets: SecretsInterface) -> None:
        import prometheus_client as prom

        self._prom = prom
        self._prefix = secrets.get_or_default("METRICS_PREFIX", "ingest")
        self._collectors: dict[tuple[str, str, tuple[str, ...]], Any] = {}

        port = secrets.get_int("METRICS_PROMETHEUS_PORT", 9091)
        if port:
            prom.start_http_server(port)

    def _name(self, name: str) -> str:
        safe = name.replace("-", "_").replace(".", "_")
        return f"{self._prefix}_{safe}" if self._prefix else safe

    def _collector(self, kind: str, name: str, tags: dict[str, str] | None) -> Any:
        label_names = tuple(sorted(tags)) if tags else ()
        key = (kind, name, label_names)
        collector = self._collectors.get(key)
        if collector is None:
            factory = {
                "counter": self._prom.Counter,
                "gauge": self._prom.Gauge,
                "histogram": self._prom.Histogram,
            }[kind]
            full = self._name(name)
            collector = factory(full, full, list(label_names))
            self._collectors[key] = collector
        if label_names:
            return collector.labels(*[tags[n] for n in label_names])  # type: ignore[index]
        return collector

    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        self._collector("counter", name, tags).inc(value)

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self._collector("gauge", name, tags).set(value)

    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self._collector("histogram", name, tags).observe(value)
