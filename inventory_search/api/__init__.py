"""API subpackage for the search service.

Routers expose the scoped item search and the index write-path hooks.
Transport layer remains thin and delegates to ``SearchManager``.
"""
