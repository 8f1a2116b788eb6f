"""Metrics collection for the node scoring platform.

Provides a thin convenience wrapper around ``prometheus_client`` so the
service can consistently record HTTP, lifecycle, training and ranking metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
- Model ids are never used as label values
"""

from typing import Optional
from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for the node scoring service.

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

        self.lifecycle_operations = Counter(
            'ml_lifecycle_operations_total',
            'Model lifecycle operations partitioned by outcome',
            ['operation', 'outcome'],
            registry=self.registry
        )

        self.training_duration = Histogram(
            'ml_training_duration_seconds',
            'Incremental training duration (load, fit and save)',
            registry=self.registry
        )

        self.training_samples = Counter(
            'ml_training_samples_total',
            'Labeled samples consumed by incremental training',
            registry=self.registry
        )

        self.inference_requests = Counter(
            'ml_inference_requests_total',
            'Total ranking requests',
            ['outcome'],
            registry=self.registry
        )

        self.inference_duration = Histogram(
            'ml_inference_duration_seconds',
            'Ranking duration (load and batch predict)',
            registry=self.registry
        )

        self.candidates_scored = Counter(
            'ml_candidates_scored_total',
            'Candidates scored by the ranking engine',
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

    def record_lifecycle_operation(self, operation: str, outcome: str) -> None:
        """Count a lifecycle operation (``create``, ``train``, ``delete``)."""
        self.lifecycle_operations.labels(operation=operation, outcome=outcome).inc()

    def record_training(self, duration: float, samples: int) -> None:
        """Record a successful incremental training run."""
        self.training_duration.observe(duration)
        self.training_samples.inc(samples)

    def record_inference(self, outcome: str, duration: Optional[float] = None, candidates: int = 0) -> None:
        """Record a ranking request."""
        self.inference_requests.labels(outcome=outcome).inc()
        if duration is not None:
            self.inference_duration.observe(duration)
        if candidates:
            self.candidates_scored.inc(candidates)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')

