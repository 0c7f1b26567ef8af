"""Metrics collection for control plane services.

Provides a thin convenience wrapper around ``prometheus_client`` so the API
consistently records HTTP, inference, and health probe metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (inject one in tests)
- Inference outcomes are a closed set: ``success``, ``failure``, ``invalid``
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = structlog.get_logger("metrics")

INFERENCE_OUTCOMES = ("success", "failure", "invalid")


class MetricsCollector:
    """Centralized metrics collection for the control plane.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.inference_requests = Counter(
            'cp_inference_requests_total',
            'Total inference requests partitioned by outcome',
            ['model_name', 'outcome'],
            registry=self.registry
        )

        self.inference_latency = Histogram(
            'cp_inference_latency_milliseconds',
            'Inference latency from pre-validation to completion',
            ['model_name', 'outcome'],
            buckets=(10, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000),
            registry=self.registry
        )

        self.health_probes = Counter(
            'cp_health_probes_total',
            'Endpoint liveness probe results',
            ['status'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_inference_metrics(
        self,
        model_name: str,
        outcome: str,
        latency_ms: int
    ) -> None:
        """Record one inference request outcome and its latency."""
        if outcome not in INFERENCE_OUTCOMES:
            raise ValueError(f"unknown inference outcome: {outcome}")
        self.inference_requests.labels(model_name=model_name, outcome=outcome).inc()
        self.inference_latency.labels(model_name=model_name, outcome=outcome).observe(latency_ms)

    def record_health_probe(self, status: str) -> None:
        """Record a liveness probe classification."""
        self.health_probes.labels(status=status).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the process-wide metrics collector for a service."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector
