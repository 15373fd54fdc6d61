"""Request counters exposed on /metrics."""

from __future__ import annotations

from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest


class ProxyMetrics:
    """Inbound and outbound request counters bound to one registry.

    A private registry is created unless one is passed in, so several
    applications (tests, mostly) can coexist in one process.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.in_requests = Counter(
            "calproxy_in_requests",
            "incoming requests",
            ["status"],
            registry=self.registry,
        )
        self.out_requests = Counter(
            "calproxy_outgoing_reqs",
            "outgoing requests",
            registry=self.registry,
        )

    def record_inbound(self, status: str) -> None:
        self.in_requests.labels(status).inc()

    def record_outbound(self) -> None:
        self.out_requests.inc()

    def sample(self, name: str, labels: Optional[dict[str, str]] = None) -> float:
        """Current value of a sample, 0.0 when it has not been observed."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
