"""Tests for environment-driven configuration."""

import pytest

from inventory_libs.common.config import (
    BaseConfig,
    ConfigurationError,
    IndexerConfig,
    SearchConfig,
    get_config,
)
from inventory_libs.vector_index.factory import create_vector_index
from inventory_libs.vector_index.pinecone_records import PineconeVectorIndex


def test_defaults():
    """Test the local provider and cache windows are the defaults."""
    config = SearchConfig(_env_file=None)

    assert config.inv_search_provider == "local"
    assert config.inv_embedding_dimension == 256
    assert config.inv_search_cache_fresh_seconds == 60
    assert config.inv_search_cache_stale_seconds == 900
    assert config.uses_external_index is False
    assert config.validate_search() is config


def test_reads_environment(monkeypatch):
    """Test settings come from INV_* variables."""
    monkeypatch.setenv("INV_SEARCH_PROVIDER", " Pinecone ")
    monkeypatch.setenv("INV_PINECONE_API_KEY", "env-key")
    monkeypatch.setenv("INV_PINECONE_INDEX_NAME", "inventory")
    monkeypatch.setenv("INV_SEARCH_CACHE_FRESH_SECONDS", "30")

    config = SearchConfig(_env_file=None)

    assert config.inv_search_provider == "pinecone"
    assert config.uses_external_index is True
    assert config.inv_search_cache_fresh_seconds == 30
    config.validate_search()


@pytest.mark.parametrize("value,expected", [(1, 8), (256, 256), (4096, 2048)])
def test_embedding_dimension_clamped(value, expected):
    """Test the embedding dimension is clamped to [8, 2048]."""
    assert SearchConfig(_env_file=None, inv_embedding_dimension=value).inv_embedding_dimension == expected


@pytest.mark.parametrize("overrides", [
    {"inv_search_provider": "opensearch"},
    {"inv_search_provider": "pinecone", "inv_pinecone_index_name": "inventory"},
    {"inv_search_provider": "pinecone", "inv_pinecone_api_key": "key"},
    {"inv_search_cache_fresh_seconds": 0},
    {"inv_search_cache_fresh_seconds": 120, "inv_search_cache_stale_seconds": 60},
    {"inv_vector_query_timeout_seconds": 0},
])
def test_validate_search_rejects_unusable_settings(overrides):
    """Test startup validation fails fast instead of substituting defaults."""
    config = SearchConfig(_env_file=None, **overrides)

    with pytest.raises(ConfigurationError):
        config.validate_search()


def test_get_config():
    """Test configs are selected by entrypoint name."""
    assert isinstance(get_config("search"), SearchConfig)
    indexer = get_config("indexer")
    assert isinstance(indexer, IndexerConfig)
    assert indexer.inv_reindex_batch_size == 100
    assert type(get_config("other")) is BaseConfig


def test_factory_returns_none_for_local():
    """Test the local provider has no external index."""
    assert create_vector_index(SearchConfig(_env_file=None, inv_search_provider="local")) is None


@pytest.mark.asyncio
async def test_factory_builds_pinecone_client():
    """Test the Pinecone provider builds a records client from settings."""
    config = SearchConfig(
        _env_file=None,
        inv_search_provider="pinecone",
        inv_pinecone_api_key="key",
        inv_pinecone_index_host="inventory.svc.pinecone.io",
        inv_pinecone_namespace="items",
    )

    index = create_vector_index(config)

    assert isinstance(index, PineconeVectorIndex)
    assert index.namespace == "items"
    await index.close()


def test_factory_rejects_unknown_provider():
    """Test unknown providers raise ConfigurationError."""
    with pytest.raises(ConfigurationError):
        create_vector_index(SearchConfig(_env_file=None, inv_search_provider="faiss"))
