"""External vector index adapters.

Primary components:
- ``base``: abstract ``VectorIndex`` interface, hit/record types, exceptions.
- ``pinecone_records``: Pinecone records API implementation over ``httpx``.
- ``writer``: fire-and-forget write-path wrapper around an index.
- ``factory``: build the configured index from ``SearchConfig``.
"""
