"""Inventory search service package.

Layout:
- ``api``: HTTP endpoints for search and the index write-path hooks.
- ``hybrid``: search orchestration and the response model.
- ``ranking``: query expansion, score fusion and pruning.
- ``retrievers``: candidate fetch and the response cache.
- ``encoders``: deterministic text embeddings.
- ``runtime``: service-local metrics helpers.
"""
