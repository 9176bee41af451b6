"""Base vector index interface.

Defines the contract the search service depends on for an external, managed
vector search service, independent of the backing provider. The index embeds
record text itself (integrated inference), so callers send text, not vectors.

All methods are asynchronous and any of them may raise; write-path callers go
through ``IndexWriter`` so failures never reach the write transaction, and
the search manager treats query failures as recoverable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog

from inventory_libs.common.scope import (
    LEGACY_OWNER_TOKEN,
    NO_HOUSEHOLD_TOKEN,
    SearchScope,
)

logger = structlog.get_logger("vector_index.base")

MIN_TOP_K = 64
MAX_TOP_K = 512
TOP_K_HEADROOM = 50


@dataclass(frozen=True)
class IndexHit:
    """One hit returned by the index: external id and index-assigned score."""
    id: str
    score: float


@dataclass
class IndexableItem:
    """Item fields the index needs for a record and its scope tags."""
    id: str
    name: str
    location_id: Optional[str] = None
    description: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    owner_user_id: Optional[str] = None
    household_id: Optional[str] = None

    @classmethod
    def in_scope(cls, scope: SearchScope, **fields: Any) -> "IndexableItem":
        """Build an item whose scope tags come from ``scope``."""
        return cls(owner_user_id=scope.owner_user_id, household_id=scope.household_id, **fields)

    @property
    def source_text(self) -> str:
        return item_source_text(self.name, self.description, self.keywords)


def top_k_for(limit: int, offset: int) -> int:
    """Index query size leaving room for post-filtering and re-ranking."""
    return min(max(limit + offset + TOP_K_HEADROOM, MIN_TOP_K), MAX_TOP_K)


def scope_tags(item: IndexableItem) -> Dict[str, str]:
    """Metadata tags partitioning an item record by tenant."""
    return {
        "owner_user_id": item.owner_user_id or LEGACY_OWNER_TOKEN,
        "household_id": item.household_id or NO_HOUSEHOLD_TOKEN,
    }


def scope_filter(scope: SearchScope) -> Dict[str, Any]:
    """Metadata filter matching exactly the records tagged for ``scope``."""
    if scope.household_id:
        return {"household_id": {"$eq": scope.household_id}}

    return {
        "$and": [
            {"household_id": {"$eq": NO_HOUSEHOLD_TOKEN}},
            {"owner_user_id": {"$eq": scope.owner_user_id or LEGACY_OWNER_TOKEN}},
        ]
    }


def item_source_text(name: Optional[str], description: Optional[str], keywords: Optional[Sequence[str]]) -> str:
    """Text the index embeds for an item: name, description, keywords on separate lines."""
    parts = [
        (name or "").strip(),
        (description or "").strip(),
        " ".join(normalize_keywords(keywords)),
    ]
    return "\n".join(part for part in parts if part)


def normalize_keywords(keywords: Optional[Sequence[str]]) -> List[str]:
    if not keywords:
        return []
    return [k.strip() for k in keywords if isinstance(k, str) and k.strip()]


class VectorIndex(ABC):
    """Abstract external vector index."""

    @abstractmethod
    async def upsert(self, item: IndexableItem, tags: Dict[str, str], source_text: str) -> None:
        """Create or replace the record for ``item``."""

    @abstractmethod
    async def delete(self, item_id: str) -> None:
        """Delete the record for ``item_id`` (missing records are not an error)."""

    @abstractmethod
    async def query(
        self,
        text: str,
        top_k: int,
        filter: Dict[str, Any],
        rerank_model: Optional[str] = None
    ) -> List[IndexHit]:
        """Return hits ranked by the index for ``text`` within ``filter``."""

    async def health_check(self) -> bool:
        """Check if the index is reachable."""
        return True

    async def close(self) -> None:
        """Release client resources."""


class VectorIndexError(Exception):
    """Base exception for vector index operations."""
    pass


class VectorIndexConnectionError(VectorIndexError):
    """The index could not be reached."""
    pass


class VectorIndexQueryError(VectorIndexError):
    """The index rejected or failed a request."""
    pass
