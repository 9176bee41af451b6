"""Operational scripts for the inventory search service.

Scripts include:
- ``reindex_items.py``: re-upsert every item into the external vector index.
"""
