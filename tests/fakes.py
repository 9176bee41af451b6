"""In-memory fakes and helpers shared by the test modules."""

import asyncio
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

import redis

from inventory_libs.common.config import SearchConfig
from inventory_libs.common.scope import SearchScope
from inventory_libs.vector_index.base import IndexableItem, IndexHit, VectorIndex, scope_tags
from inventory_search.encoders.hash_embedding import HashingEmbeddingProvider, similarity
from inventory_search.retrievers.candidates import CandidateRow, CandidateStore


HOUSEHOLD_A = SearchScope.household("4f6c8a52-1d1e-4b7a-9c1e-2f6d5a3b7c10")
HOUSEHOLD_B = SearchScope.household("7b2d9e41-3c5f-4a8b-8d2e-6a1f0c9b4e21")


class InMemoryCandidateStore(CandidateStore):
    """Candidate store over a list of ``(scope, row, item)`` entries."""

    def __init__(self):
        self.entries: List[Tuple[SearchScope, CandidateRow, IndexableItem]] = []
        self.fetch_calls = 0

    def add(
        self,
        scope: SearchScope,
        name: str,
        description: Optional[str] = None,
        keywords: Sequence[str] = (),
        location_path: str = "Garage > Shelf",
        quantity: Optional[int] = 1,
        item_id: Optional[str] = None,
    ) -> IndexableItem:
        item_id = item_id or str(uuid.uuid4())
        row = CandidateRow(
            id=item_id,
            name=name,
            location_path=location_path,
            description=description,
            keywords=list(keywords),
            quantity=quantity,
        )
        item = IndexableItem.in_scope(scope, id=item_id, name=name, description=description, keywords=list(keywords))
        self.entries.append((scope, row, item))
        return item

    def remove(self, item_id: str) -> None:
        self.entries = [entry for entry in self.entries if entry[1].id != item_id]

    def items(self, scope: Optional[SearchScope] = None) -> List[IndexableItem]:
        return [item for s, _, item in self.entries if scope is None or s == scope]

    async def fetch(self, scope: SearchScope, ids: Optional[Sequence[str]] = None) -> List[CandidateRow]:
        self.fetch_calls += 1
        wanted = set(ids) if ids is not None else None
        return [
            row for s, row, _ in self.entries
            if s == scope and (wanted is None or row.id in wanted)
        ]


def _matches(filter: Dict[str, Any], tags: Dict[str, str]) -> bool:
    if "$and" in filter:
        return all(_matches(clause, tags) for clause in filter["$and"])
    return all(tags.get(field) == condition["$eq"] for field, condition in filter.items())


class FakeVectorIndex(VectorIndex):
    """Vector index that ranks stored records with the hashing embedder."""

    def __init__(self):
        self.provider = HashingEmbeddingProvider(dimension=256)
        self.records: Dict[str, Tuple[Dict[str, str], Any]] = {}
        self.extra_hits: List[IndexHit] = []
        self.fail_with: Optional[Exception] = None
        self.delay = 0.0
        self.upsert_delay = 0.0
        self.queries: List[Dict[str, Any]] = []
        self.deleted: List[str] = []

    async def upsert(self, item: IndexableItem, tags: Dict[str, str], source_text: str) -> None:
        if self.upsert_delay:
            await asyncio.sleep(self.upsert_delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.records[item.id] = (dict(tags), self.provider.embed(source_text))

    async def delete(self, item_id: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.records.pop(item_id, None)
        self.deleted.append(item_id)

    async def query(self, text, top_k, filter, rerank_model=None) -> List[IndexHit]:
        self.queries.append({"text": text, "top_k": top_k, "filter": filter, "rerank_model": rerank_model})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

        query_vector = self.provider.embed(text)
        hits = [
            IndexHit(id=item_id, score=similarity(query_vector, vector))
            for item_id, (tags, vector) in self.records.items()
            if _matches(filter, tags)
        ]
        hits.sort(key=lambda hit: (-hit.score, hit.id))
        return (self.extra_hits + hits)[:top_k]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def pinecone_config(**overrides) -> SearchConfig:
    settings = {
        "inv_search_provider": "pinecone",
        "inv_pinecone_api_key": "test-key",
        "inv_pinecone_index_host": "inventory-test.svc.pinecone.io",
        "inv_vector_query_timeout_seconds": 0.5,
        "inv_vector_breaker_failure_threshold": 100,
        "inv_search_cache_fresh_seconds": 60,
        "inv_search_cache_stale_seconds": 900,
    }
    settings.update(overrides)
    return SearchConfig(**settings)


async def index_all(index: VectorIndex, store: InMemoryCandidateStore) -> None:
    for item in store.items():
        await index.upsert(item, scope_tags(item), item.source_text)


class BrokenRedis:
    """Redis client whose every call fails."""

    def _fail(self, *args, **kwargs):
        raise redis.exceptions.ConnectionError("redis unavailable")

    async def _afail(self, *args, **kwargs):
        self._fail()

    get = smembers = delete = srem = aclose = _afail
    pipeline = _fail
