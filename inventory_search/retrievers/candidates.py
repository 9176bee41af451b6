"""Candidate retrieval from the relational inventory store.

The search core never owns item data. It asks a ``CandidateStore`` for the
rows of one scope (all of them, or a given id set when re-hydrating vector
index hits) with each item's fully-rendered location path.

``PgCandidateStore`` implements the contract on PostgreSQL with a recursive
CTE over ``locations``. Stored embeddings (``item_embeddings``) of the active
model are joined in; the local path reuses one only when it was computed from
the current item text.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import asyncpg
from asyncpg import Pool
import numpy as np
import structlog

from inventory_libs.common.scope import SearchScope
from inventory_libs.vector_index.base import IndexableItem, item_source_text

logger = structlog.get_logger("search_service.candidates")

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-8][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

LOCATION_PATH_SEPARATOR = " > "
DEFAULT_EMBEDDING_MODEL = "hashing-v1"


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_PATTERN.match(value))


@dataclass
class CandidateRow:
    """One item as seen by the scoring engine."""
    id: str
    name: str
    location_path: str
    description: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    image_ref: Optional[str] = None
    quantity: Optional[int] = None
    embedding: Optional[np.ndarray] = None
    embedding_model: Optional[str] = None
    embedding_source_text: Optional[str] = None

    @property
    def search_text(self) -> str:
        """Lowercased ``name description keywords`` used for substring signals."""
        return f"{self.name} {self.description or ''} {' '.join(self.keywords)}".lower().strip()

    @property
    def source_text(self) -> str:
        """Text embedded for this item; same shape as the vector index source text."""
        return item_source_text(self.name, self.description, self.keywords)


class CandidateStore(ABC):
    """Scoped, hierarchy-aware item fetch."""

    @abstractmethod
    async def fetch(self, scope: SearchScope, ids: Optional[Sequence[str]] = None) -> List[CandidateRow]:
        """Return rows of ``scope``; all rows when ``ids`` is ``None``.

        Ids outside the scope are silently absent from the result.
        """

    async def close(self) -> None:
        """Release resources held by the store."""


def scope_sql(
    scope: SearchScope,
    household_column: str,
    owner_column: str,
    param_index: int
) -> Tuple[str, List[Optional[str]]]:
    """SQL predicate and parameters restricting rows to ``scope``."""
    if scope.household_id:
        return f"{household_column} = ${param_index}", [scope.household_id]

    return (
        f"({household_column} IS NULL AND ({owner_column} = ${param_index}::uuid "
        f"OR (${param_index}::uuid IS NULL AND {owner_column} IS NULL)))",
        [scope.owner_user_id],
    )


def build_candidate_query(
    scope: SearchScope,
    with_ids: bool,
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
) -> Tuple[str, List[Any]]:
    """Build the candidate fetch statement for ``scope``.

    Parameter ``$1`` is the id array when ``with_ids`` is set; the scope
    parameter follows, then the embedding model name. Only embeddings stored
    by ``embedding_model`` are joined.
    """
    param_index = 2 if with_ids else 1
    model_param = param_index + 1
    root_scope, params = scope_sql(scope, "household_id", "owner_user_id", param_index)
    recursive_scope, _ = scope_sql(scope, "l.household_id", "l.owner_user_id", param_index)
    item_scope, _ = scope_sql(scope, "i.household_id", "i.owner_user_id", param_index)

    id_filter = "i.id = ANY($1::uuid[]) AND " if with_ids else ""
    sql = f"""
        WITH RECURSIVE location_paths AS (
            SELECT id, parent_id, name, name::text AS path
            FROM locations
            WHERE parent_id IS NULL AND {root_scope}
            UNION ALL
            SELECT l.id, l.parent_id, l.name, lp.path || '{LOCATION_PATH_SEPARATOR}' || l.name
            FROM locations l
            JOIN location_paths lp ON l.parent_id = lp.id
            WHERE {recursive_scope}
        )
        SELECT
            i.id::text AS id,
            i.name,
            i.description,
            COALESCE(i.keywords, ARRAY[]::text[]) AS keywords,
            i.image_url,
            i.quantity,
            lp.path AS location_path,
            e.embedding,
            e.model AS embedding_model,
            e.source_text AS embedding_source_text
        FROM items i
        JOIN location_paths lp ON lp.id = i.location_id
        LEFT JOIN item_embeddings e ON e.item_id = i.id AND e.model = ${model_param}
        WHERE {id_filter}{item_scope}
        ORDER BY i.id
    """
    return sql, [*params, embedding_model]


def row_to_candidate(row: Mapping[str, Any]) -> CandidateRow:
    """Convert a fetched record to a ``CandidateRow``."""
    embedding = row.get("embedding")
    return CandidateRow(
        id=str(row["id"]),
        name=row["name"],
        description=row.get("description"),
        keywords=[k for k in (row.get("keywords") or []) if k],
        image_ref=row.get("image_url"),
        quantity=row.get("quantity"),
        location_path=row["location_path"],
        embedding=np.asarray(embedding, dtype=np.float64) if embedding is not None and len(embedding) else None,
        embedding_model=row.get("embedding_model"),
        embedding_source_text=row.get("embedding_source_text"),
    )


class PgCandidateStore(CandidateStore):
    """PostgreSQL implementation of ``CandidateStore``.

    Parameters
    - dsn: PostgreSQL DSN including database and credentials
    - pool_size: Max size of the asyncpg pool
    - command_timeout: Seconds to allow per statement
    - embedding_model: Only stored embeddings written by this model are fetched
    """

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        command_timeout: float = 30.0,
        embedding_model: str = DEFAULT_EMBEDDING_MODEL
    ):
        self.dsn = dsn
        self.embedding_model = embedding_model
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self._pool: Optional[Pool] = None

    async def _get_pool(self) -> Pool:
        """Create the pool on first use."""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=1,
                max_size=self.pool_size,
                command_timeout=self.command_timeout,
            )
            logger.info("Created candidate store pool", pool_size=self.pool_size)
        return self._pool

    async def fetch(self, scope: SearchScope, ids: Optional[Sequence[str]] = None) -> List[CandidateRow]:
        if ids is not None:
            ids = [item_id for item_id in ids if is_uuid(item_id)]
            if not ids:
                return []

        sql, params = build_candidate_query(scope, with_ids=ids is not None, embedding_model=self.embedding_model)
        args = [list(ids), *params] if ids is not None else params

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)

        candidates = [row_to_candidate(row) for row in rows]
        logger.debug("Candidates fetched", scope=scope.key, requested=len(ids) if ids is not None else None, count=len(candidates))
        return candidates

    async def fetch_index_batch(self, after_id: Optional[str], batch_size: int) -> List[IndexableItem]:
        """Page every item (all scopes) by id for reindexing."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT i.id::text AS id, i.name, i.description, i.keywords,
                       i.location_id::text AS location_id,
                       i.owner_user_id::text AS owner_user_id,
                       i.household_id::text AS household_id
                FROM items i
                WHERE ($1::uuid IS NULL OR i.id > $1::uuid)
                ORDER BY i.id ASC
                LIMIT $2
                """,
                after_id,
                batch_size,
            )
        return [
            IndexableItem(
                id=row["id"],
                name=row["name"],
                description=row["description"],
                keywords=list(row["keywords"] or []),
                location_id=row["location_id"],
                owner_user_id=row["owner_user_id"],
                household_id=row["household_id"],
            )
            for row in rows
        ]

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Candidate store pool closed")
