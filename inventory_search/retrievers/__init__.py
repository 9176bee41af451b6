"""Candidate retrieval and result caching.

Retrievers fetch scoped item rows before ranking; the cache manager stores
ranked pages per scope so a data change can drop them together.
"""
