"""Metrics collection facade for the search service.

Re-exports shared metrics helpers so callers can import from a consistent
local path within the service.
"""

from inventory_libs.common.metrics import MetricsCollector, get_metrics_collector

SERVICE_NAME = "inventory-search"


def get_search_metrics() -> MetricsCollector:
    """Collector shared by the API and the search manager."""
    return get_metrics_collector(SERVICE_NAME)
