"""Tests for the inventory search service.

Fast, dependency-free tests: external services are replaced by in-memory
fakes (``fakes.py``) and ``fakeredis``.
"""
