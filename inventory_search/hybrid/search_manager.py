"""Search manager for hybrid inventory search.

Fuses a lexical substring signal, a token-overlap signal and a semantic
similarity signal into one ranking per mode. With an external vector index
configured, each request runs cache-then-compute-then-cache:

    fresh cache hit                      -> cached response
    miss -> live compute                 -> cache write -> response
    live failure -> stale cache hit      -> degraded response
    live failure -> stale miss -> local  -> degraded, uncached response

With the local provider, every request is computed locally from candidate
rows and the hashing embedder; caching and stale fallback are bypassed.
"""

import asyncio
import time
from typing import Dict, List, Optional

import structlog

from inventory_libs.common.circuit_breaker import CircuitBreaker
from inventory_libs.common.config import ConfigurationError, SearchConfig
from inventory_libs.common.logging import log_performance
from inventory_libs.common.metrics import MetricsCollector
from inventory_libs.common.scope import SearchScope, require_scope
from inventory_libs.vector_index.base import (
    IndexableItem,
    IndexHit,
    VectorIndex,
    scope_filter,
    top_k_for,
)
from inventory_libs.vector_index.factory import create_vector_index
from inventory_libs.vector_index.writer import IndexWriter
from ..encoders.hash_embedding import EmbeddingProvider, create_embedding_provider, similarity
from ..ranking.fusion import (
    ScoredCandidate,
    ScoringEngine,
    SearchMode,
    create_scoring_engine,
    parse_search_mode,
    sort_by_rank,
)
from ..ranking.pruning import ResultPruner
from ..ranking.query_expansion import QueryExpander, create_query_expander
from ..retrievers.cache_manager import CacheKey, SearchCacheManager, create_search_cache_manager
from ..retrievers.candidates import CandidateRow, CandidateStore, PgCandidateStore, is_uuid
from .response import SearchResponse, SearchResult

logger = structlog.get_logger("search_service.search_manager")

MIN_LIMIT = 1
MAX_LIMIT = 100


def validate_window(limit: int, offset: int) -> None:
    """Reject page windows outside ``1 <= limit <= 100`` and ``offset >= 0``."""
    if isinstance(limit, bool) or not isinstance(limit, int) or not MIN_LIMIT <= limit <= MAX_LIMIT:
        raise ValueError(f"limit must be an integer between {MIN_LIMIT} and {MAX_LIMIT}")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValueError("offset must be a non-negative integer")


class SearchManager:
    """Orchestrates scoped inventory searches and the search write path.

    Parameters
    - config: ``SearchConfig`` with cache windows and the vector query timeout
    - candidate_store: scoped candidate fetch
    - embedding_provider: embedder for the local path and local fallback
    - vector_index: external index; ``None`` selects the local provider
    - cache_manager: response cache, used only with an external index
    - scoring_engine / pruner / expander: ranking components
    - metrics: optional ``MetricsCollector``
    - circuit_breaker: guards vector index queries
    """

    def __init__(
        self,
        config: SearchConfig,
        candidate_store: CandidateStore,
        embedding_provider: EmbeddingProvider,
        vector_index: Optional[VectorIndex] = None,
        cache_manager: Optional[SearchCacheManager] = None,
        scoring_engine: Optional[ScoringEngine] = None,
        pruner: Optional[ResultPruner] = None,
        expander: Optional[QueryExpander] = None,
        metrics: Optional[MetricsCollector] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config
        self.candidate_store = candidate_store
        self.embedding_provider = embedding_provider
        self.vector_index = vector_index
        self.cache_manager = cache_manager
        self.scoring_engine = scoring_engine or create_scoring_engine()
        self.pruner = pruner or ResultPruner()
        self.expander = expander or create_query_expander()
        self.metrics = metrics
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=config.inv_vector_breaker_failure_threshold,
            recovery_timeout=config.inv_vector_breaker_recovery_seconds,
            name="vector_index",
            on_state_change=metrics.record_breaker_state if metrics is not None else None,
        )
        self.index_writer = IndexWriter(vector_index, metrics) if vector_index is not None else None

    @property
    def uses_external_index(self) -> bool:
        return self.vector_index is not None

    async def search(
        self,
        scope: SearchScope,
        query: str,
        mode: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> SearchResponse:
        """Run one scoped search.

        Raises ``InvalidSearchModeError`` for an unknown mode and ``ValueError``
        for a missing scope or an invalid page window, before any work is done.
        """
        scope = require_scope(scope)
        search_mode = parse_search_mode(mode)
        validate_window(limit, offset)
        start_time = time.time()

        if not self.uses_external_index:
            response = await self._compute_local(scope, query, search_mode, limit, offset, source="local")
            self._finish(scope, search_mode, response, start_time)
            return response

        key = CacheKey.build(scope.key, query, search_mode.value, limit, offset)
        response = await self._read_cache(key, fresh=True)
        if response is not None:
            self._finish(scope, search_mode, response, start_time)
            return response

        try:
            response = await self._compute_live(scope, query, search_mode, limit, offset)
        except Exception as e:
            logger.warning(
                "Live search failed, trying stale cache",
                scope=scope.key,
                mode=search_mode.value,
                error=str(e) or type(e).__name__
            )
            response = await self._degraded(key, scope, query, search_mode, limit, offset)
            self._finish(scope, search_mode, response, start_time)
            return response

        if self.cache_manager is not None:
            await self.cache_manager.write(
                key,
                response,
                fresh_seconds=self.config.inv_search_cache_fresh_seconds,
                stale_seconds=self.config.inv_search_cache_stale_seconds,
            )

        self._finish(scope, search_mode, response, start_time)
        return response

    async def _read_cache(self, key: CacheKey, fresh: bool) -> Optional[SearchResponse]:
        if self.cache_manager is None:
            return None

        cache_type = "fresh" if fresh else "stale"
        if fresh:
            response = await self.cache_manager.read_fresh(key)
        else:
            response = await self.cache_manager.read_stale(key)

        if self.metrics is not None:
            if response is None:
                self.metrics.record_cache_miss(cache_type)
            else:
                self.metrics.record_cache_hit(cache_type)
        return response

    async def _degraded(
        self,
        key: CacheKey,
        scope: SearchScope,
        query: str,
        mode: SearchMode,
        limit: int,
        offset: int
    ) -> SearchResponse:
        stale = await self._read_cache(key, fresh=False)
        if stale is not None:
            logger.info("Serving stale search results", scope=scope.key, total=stale.total)
            self._record_degraded("stale_cache")
            return stale

        # Errors from the local path propagate.
        response = await self._compute_local(scope, query, mode, limit, offset, source="local_fallback")
        logger.info("Serving local fallback search results", scope=scope.key, total=response.total)
        self._record_degraded("local_fallback")
        return response

    def _record_degraded(self, path: str) -> None:
        if self.metrics is not None:
            self.metrics.record_degraded_search(path)

    async def _query_index(self, query: str, scope: SearchScope, top_k: int) -> List[IndexHit]:
        return await asyncio.wait_for(
            self.vector_index.query(
                query,
                top_k,
                scope_filter(scope),
                rerank_model=self.config.inv_pinecone_rerank_model,
            ),
            timeout=self.config.inv_vector_query_timeout_seconds,
        )

    async def _compute_live(
        self,
        scope: SearchScope,
        query: str,
        mode: SearchMode,
        limit: int,
        offset: int
    ) -> SearchResponse:
        """Query the external index, re-hydrate hits in scope and rank them."""
        top_k = top_k_for(limit, offset)
        hits = await self.circuit_breaker.call(self._query_index, query, scope, top_k)

        semantic_by_id: Dict[str, float] = {}
        for hit in hits:
            if not is_uuid(hit.id) or hit.id in semantic_by_id:
                continue
            semantic_by_id[hit.id] = float(hit.score)

        if not semantic_by_id:
            return SearchResponse(total=0, results=[], source="live")

        rows = await self.candidate_store.fetch(scope, list(semantic_by_id))
        terms = self.expander.expand(query)
        scored = [
            self.scoring_engine.score(row, query, terms, semantic_by_id[row.id], mode)
            for row in rows
            if row.id in semantic_by_id
        ]
        return self._rank(scored, mode, limit, offset, source="live")

    async def _compute_local(
        self,
        scope: SearchScope,
        query: str,
        mode: SearchMode,
        limit: int,
        offset: int,
        source: str
    ) -> SearchResponse:
        """Score every scoped candidate with the local embedder."""
        rows = await self.candidate_store.fetch(scope)
        terms = self.expander.expand(query)
        query_vector = self.embedding_provider.embed(query)

        scored = [
            self.scoring_engine.score(row, query, terms, similarity(query_vector, self._item_vector(row)), mode)
            for row in rows
        ]
        return self._rank(scored, mode, limit, offset, source=source)

    def _item_vector(self, row: CandidateRow):
        """Stored embedding when the active provider made it from the current text, else embed."""
        if self._stored_embedding_usable(row):
            return row.embedding
        return self.embedding_provider.embed(row.source_text)

    def _stored_embedding_usable(self, row: CandidateRow) -> bool:
        return (
            row.embedding is not None
            and row.embedding.shape == (self.embedding_provider.dimension,)
            and row.embedding_model == self.embedding_provider.name
            and row.embedding_source_text == row.source_text
        )

    def _rank(
        self,
        scored: List[Optional[ScoredCandidate]],
        mode: SearchMode,
        limit: int,
        offset: int,
        source: str
    ) -> SearchResponse:
        kept = [candidate for candidate in scored if candidate is not None]
        ranked = sort_by_rank(self.pruner.prune(kept, mode))
        page = ranked[offset:offset + limit]
        return SearchResponse(
            total=len(ranked),
            results=[SearchResult.from_candidate(candidate) for candidate in page],
            source=source,
        )

    def _finish(self, scope: SearchScope, mode: SearchMode, response: SearchResponse, start_time: float) -> None:
        duration = time.time() - start_time
        if self.metrics is not None:
            self.metrics.record_search(mode.value, response.source, duration)
        log_performance(
            "inventory_search",
            duration * 1000,
            scope=scope.key,
            mode=mode.value,
            source=response.source,
            total=response.total,
            returned=len(response.results)
        )

    async def on_item_changed(self, scope: SearchScope, item: IndexableItem) -> bool:
        """Write-path hook after an item create/update commits.

        Upserts the item into the index, then invalidates the scope's cache so
        no search can re-cache results computed against the old index entry.
        Returns whether the index accepted the item (always ``True`` locally).
        """
        scope = require_scope(scope)
        indexed = True
        if self.index_writer is not None:
            indexed = await self.index_writer.upsert(item)
        await self.invalidate_scope(scope)
        return indexed

    async def on_item_deleted(self, scope: SearchScope, item_id: str) -> bool:
        """Write-path hook after an item delete commits; index first, then cache."""
        scope = require_scope(scope)
        indexed = True
        if self.index_writer is not None:
            indexed = await self.index_writer.delete(item_id)
        await self.invalidate_scope(scope)
        return indexed

    async def on_scope_changed(self, scope: SearchScope) -> int:
        """Write-path hook for location changes, moves and bulk imports."""
        return await self.invalidate_scope(require_scope(scope))

    async def invalidate_scope(self, scope: SearchScope) -> int:
        if self.cache_manager is None:
            return 0
        return await self.cache_manager.invalidate_scope(scope.key)

    async def health_check(self) -> bool:
        """Healthy when the external index (if any) answers."""
        if self.vector_index is None:
            return True
        try:
            return await self.vector_index.health_check()
        except Exception as e:
            logger.error("Vector index health check failed", error=str(e))
            return False

    def get_stats(self) -> Dict[str, object]:
        return {
            "provider": "pinecone" if self.uses_external_index else "local",
            "embedding_dimension": self.embedding_provider.dimension,
            "circuit_breaker": self.circuit_breaker.get_stats(),
        }

    async def cleanup(self) -> None:
        """Release the store pool, the index client and the cache connection."""
        await self.candidate_store.close()
        if self.vector_index is not None:
            await self.vector_index.close()
        if self.cache_manager is not None:
            await self.cache_manager.close()
        logger.info("Search manager cleaned up")


def create_search_manager(
    config: SearchConfig,
    metrics: Optional[MetricsCollector] = None,
    candidate_store: Optional[CandidateStore] = None
) -> SearchManager:
    """Build a ``SearchManager`` wired for ``config``.

    Raises ``ConfigurationError`` when the configuration is unusable; a
    misconfigured external provider is never replaced by the local one.
    """
    config.validate_search()
    embedding_provider = create_embedding_provider(config.inv_embedding_dimension)
    if candidate_store is None:
        if not config.inv_database_dsn:
            raise ConfigurationError("INV_DATABASE_DSN is required")
        candidate_store = PgCandidateStore(config.inv_database_dsn, embedding_model=embedding_provider.name)

    vector_index = create_vector_index(config)
    cache_manager = None
    if vector_index is not None:
        cache_manager = create_search_cache_manager(
            redis_url=config.inv_redis_url,
            fresh_seconds=config.inv_search_cache_fresh_seconds,
            stale_seconds=config.inv_search_cache_stale_seconds,
        )

    manager = SearchManager(
        config=config,
        candidate_store=candidate_store,
        embedding_provider=embedding_provider,
        vector_index=vector_index,
        cache_manager=cache_manager,
        metrics=metrics,
    )
    logger.info(
        "Search manager created",
        provider=config.inv_search_provider,
        embedding_dimension=manager.embedding_provider.dimension
    )
    return manager
