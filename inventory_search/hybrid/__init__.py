"""Hybrid search components for lexical + semantic ranking.

Includes the ``SearchManager`` which chooses the provider path, applies the
fresh/stale cache and falls back to local scoring when the index fails.
"""
