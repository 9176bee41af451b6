"""Vector index factory.

Centralizes construction of the configured ``VectorIndex`` so the search
manager, the API and the reindex script never depend on a concrete client.
"""

from enum import Enum
from typing import Optional

import structlog

from inventory_libs.common.config import ConfigurationError, SearchConfig
from .base import VectorIndex
from .pinecone_records import PineconeVectorIndex

logger = structlog.get_logger("vector_index.factory")


class VectorIndexType(Enum):
    """Supported search providers."""
    PINECONE = "pinecone"
    LOCAL = "local"


def create_vector_index(config: SearchConfig, **kwargs) -> Optional[VectorIndex]:
    """Create the external index selected by ``config``.

    Returns ``None`` for the local provider, which needs no external index.
    Raises ``ConfigurationError`` for unusable settings; extra ``kwargs`` are
    forwarded to the client (e.g. a test transport).
    """
    try:
        index_type = VectorIndexType(config.inv_search_provider)
    except ValueError:
        raise ConfigurationError(f"Unsupported search provider: {config.inv_search_provider}")

    if index_type == VectorIndexType.LOCAL:
        logger.info("Using local search provider; no external vector index")
        return None

    config.validate_search()
    index = PineconeVectorIndex(
        api_key=config.inv_pinecone_api_key,
        index_name=config.inv_pinecone_index_name,
        index_host=config.inv_pinecone_index_host,
        namespace=config.inv_pinecone_namespace,
        text_field=config.inv_pinecone_text_field,
        api_version=config.inv_pinecone_api_version,
        timeout=config.inv_vector_query_timeout_seconds,
        control_plane_url=config.inv_pinecone_control_plane_url,
        **kwargs
    )
    logger.info(
        "Created Pinecone vector index client",
        index_name=config.inv_pinecone_index_name,
        namespace=config.inv_pinecone_namespace
    )
    return index
