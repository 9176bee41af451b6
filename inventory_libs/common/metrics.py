"""Metrics collection for the inventory search service.

Thin wrapper around ``prometheus_client`` so the API, the search manager and
the write-path hooks record HTTP, search, cache, and vector index metrics with
consistent label sets.

Design notes
- Metrics and labels are predeclared to keep cardinality bounded
- Each collector owns its registry (tests inject a fresh one)
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")

BREAKER_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name of the service owning the collector
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

        self.search_requests = Counter(
            'inventory_search_requests_total',
            'Total search requests',
            ['mode', 'path'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'inventory_search_duration_seconds',
            'Search duration',
            ['mode'],
            registry=self.registry
        )

        self.search_degraded = Counter(
            'inventory_search_degraded_total',
            'Searches answered from a degraded path after a live failure',
            ['path'],
            registry=self.registry
        )

        self.cache_hits = Counter(
            'inventory_search_cache_hits_total',
            'Total search cache hits',
            ['cache_type'],
            registry=self.registry
        )

        self.cache_misses = Counter(
            'inventory_search_cache_misses_total',
            'Total search cache misses',
            ['cache_type'],
            registry=self.registry
        )

        self.vector_index_operations = Counter(
            'inventory_vector_index_operations_total',
            'Total vector index operations',
            ['operation', 'status'],
            registry=self.registry
        )

        self.circuit_breaker_state = Gauge(
            'inventory_circuit_breaker_state',
            'Circuit breaker state (0 closed, 1 half-open, 2 open)',
            ['name'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics (duration in seconds)."""
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_search(self, mode: str, path: str, duration: float) -> None:
        """Record a completed search and which path produced it."""
        self.search_requests.labels(mode=mode, path=path).inc()
        self.search_duration.labels(mode=mode).observe(duration)

    def record_degraded_search(self, path: str) -> None:
        """Record a search served from the stale cache or the local fallback."""
        self.search_degraded.labels(path=path).inc()

    def record_cache_hit(self, cache_type: str) -> None:
        """Record cache hit."""
        self.cache_hits.labels(cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str) -> None:
        """Record cache miss."""
        self.cache_misses.labels(cache_type=cache_type).inc()

    def record_vector_index_operation(self, operation: str, status: str) -> None:
        """Record vector index operation outcome (``ok`` or ``error``)."""
        self.vector_index_operations.labels(operation=operation, status=status).inc()

    def record_breaker_state(self, name: str, state: Any) -> None:
        """Record a circuit breaker transition; ``state`` is a state enum or its value."""
        value = getattr(state, "value", state)
        self.circuit_breaker_state.labels(name=name).set(BREAKER_STATE_VALUES[value])

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


_metrics_collectors: Dict[str, MetricsCollector] = {}


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the metrics collector for a service name."""
    collector = _metrics_collectors.get(service_name)
    if collector is None:
        collector = MetricsCollector(service_name)
        _metrics_collectors[service_name] = collector
        logger.debug("Metrics collector created", service=service_name)
    return collector
