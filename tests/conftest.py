"""Shared fixtures: in-memory candidate store, fake vector index, fakeredis."""

import pytest
import pytest_asyncio
from fakeredis import aioredis as fakeredis_aioredis
from prometheus_client import CollectorRegistry

from inventory_libs.common.config import SearchConfig
from inventory_libs.common.metrics import MetricsCollector
from inventory_search.encoders.hash_embedding import HashingEmbeddingProvider
from inventory_search.hybrid.search_manager import SearchManager
from inventory_search.retrievers.cache_manager import SearchCacheManager

from .fakes import FakeClock, FakeVectorIndex, InMemoryCandidateStore, pinecone_config


@pytest.fixture
def store():
    return InMemoryCandidateStore()


@pytest.fixture
def fake_index():
    return FakeVectorIndex()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return MetricsCollector("test-service", registry=CollectorRegistry())


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide a fakeredis asyncio client for Redis-backed tests."""
    client = fakeredis_aioredis.FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest_asyncio.fixture
async def cache(fake_redis_client, clock):
    return SearchCacheManager(fake_redis_client, fresh_seconds=60, stale_seconds=900, clock=clock)


@pytest.fixture
def local_manager(store, metrics):
    """Manager on the local provider (no index, no cache)."""
    return SearchManager(
        config=SearchConfig(inv_search_provider="local"),
        candidate_store=store,
        embedding_provider=HashingEmbeddingProvider(dimension=256),
        metrics=metrics,
    )


@pytest.fixture
def external_manager(store, fake_index, cache, metrics):
    """Manager on the external index path with a fakeredis cache."""
    return SearchManager(
        config=pinecone_config(),
        candidate_store=store,
        embedding_provider=HashingEmbeddingProvider(dimension=256),
        vector_index=fake_index,
        cache_manager=cache,
        metrics=metrics,
    )
