"""Shared libraries for the inventory search platform.

Subpackages:
- ``inventory_libs.common``: configuration, logging, metrics, and resilience helpers.
- ``inventory_libs.vector_index``: external vector index contract and clients.

Notes:
- Keep search-service logic out of here; modules should stay reusable by the
  write path and maintenance scripts as well as the search API.
"""
