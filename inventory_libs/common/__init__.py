"""Common utilities shared across the search service and scripts.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.
- ``circuit_breaker``: async circuit breaker for external calls.
- ``scope``: tenant partition keys for every search.

Import pattern:
- from inventory_libs.common.config import SearchConfig
- from inventory_libs.common.logging import configure_logging
"""
