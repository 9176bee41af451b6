"""API routes for the inventory search service."""

import math
import time
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field
import structlog

from inventory_libs.common.logging import search_log_context
from inventory_libs.common.scope import SearchScope
from inventory_libs.vector_index.base import IndexableItem, normalize_keywords
from ..hybrid.search_manager import MAX_LIMIT, MIN_LIMIT, SearchManager
from ..ranking.fusion import InvalidSearchModeError, parse_search_mode

logger = structlog.get_logger("search_service.api")

router = APIRouter()

DEFAULT_LIMIT = 20


class ItemSearchResult(BaseModel):
    """One ranked item."""
    id: str = Field(..., description="Item ID")
    name: str = Field(..., description="Item name")
    image_ref: Optional[str] = Field(None, description="Item image reference")
    quantity: Optional[int] = Field(None, description="Item quantity")
    location_path: str = Field(..., description="Rendered location path")
    lexical_score: float = Field(..., description="Substring match score")
    semantic_score: float = Field(..., description="Vector similarity score")
    fused_score: float = Field(..., description="Mode-weighted relevance score")


class ItemSearchResponse(BaseModel):
    """Response model for the item search endpoint."""
    results: List[ItemSearchResult] = Field(..., description="Ranked page of items")
    total: int = Field(..., description="Number of matching items across all pages")
    limit: int = Field(..., description="Page size")
    offset: int = Field(..., description="Page offset")
    mode: str = Field(..., description="Fusion mode used")


class IndexItemRequest(BaseModel):
    """Request model for the item write-path hook."""
    id: str = Field(..., description="Item ID")
    name: str = Field(..., min_length=1, description="Item name")
    description: Optional[str] = Field(None, description="Item description")
    keywords: List[str] = Field(default_factory=list, description="Item keywords")
    location_id: Optional[str] = Field(None, description="Location ID")


class IndexResponse(BaseModel):
    """Response model for write-path hooks."""
    status: str = Field(..., description="Hook status")
    scope: str = Field(..., description="Scope whose cache was invalidated")
    item_id: Optional[str] = Field(None, description="Affected item ID")
    indexed: bool = Field(True, description="Whether the vector index accepted the change")


def get_search_manager(request: Request) -> SearchManager:
    """Get search manager from application state."""
    return request.app.state.search_manager


def get_scope(x_search_scope: Optional[str] = Header(None)) -> SearchScope:
    """Resolve the caller's scope from ``X-Search-Scope``."""
    if not x_search_scope:
        raise HTTPException(status_code=400, detail="X-Search-Scope header is required")
    try:
        return SearchScope.parse(x_search_scope)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _read_int(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if not math.isfinite(value):
        return default
    return int(value)


def read_limit_offset(limit: Optional[str], offset: Optional[str]) -> Tuple[int, int]:
    """Clamp query-string paging into the accepted window."""
    return (
        min(max(_read_int(limit, DEFAULT_LIMIT), MIN_LIMIT), MAX_LIMIT),
        max(_read_int(offset, 0), 0),
    )


@router.get("/items/search/semantic", response_model=ItemSearchResponse)
async def search_items(
    q: Optional[str] = Query(None, description="Search query"),
    mode: Optional[str] = Query(None, description="hybrid, semantic or lexical"),
    limit: Optional[str] = Query(None, description="Page size (1-100)"),
    offset: Optional[str] = Query(None, description="Page offset"),
    scope: SearchScope = Depends(get_scope),
    search_manager: SearchManager = Depends(get_search_manager)
):
    """Scoped hybrid item search."""
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="q is required")

    try:
        search_mode = parse_search_mode(mode)
    except InvalidSearchModeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    page_limit, page_offset = read_limit_offset(limit, offset)
    start_time = time.time()

    with search_log_context(scope.key, search_mode.value):
        try:
            response = await search_manager.search(
                scope=scope,
                query=query,
                mode=search_mode,
                limit=page_limit,
                offset=page_offset
            )
        except Exception as e:
            logger.error("Search failed", query=query, error=str(e))
            raise HTTPException(status_code=500, detail="Search failed")

        logger.info(
            "Search completed",
            source=response.source,
            results_count=len(response.results),
            total=response.total,
            latency_ms=(time.time() - start_time) * 1000
        )

    return ItemSearchResponse(
        results=[ItemSearchResult(**result.to_dict()) for result in response.results],
        total=response.total,
        limit=page_limit,
        offset=page_offset,
        mode=search_mode.value
    )


@router.post("/index/items", response_model=IndexResponse)
async def index_item(
    request: IndexItemRequest,
    scope: SearchScope = Depends(get_scope),
    search_manager: SearchManager = Depends(get_search_manager)
):
    """Write-path hook after an item create or update commits."""
    item = IndexableItem.in_scope(
        scope,
        id=request.id,
        name=request.name,
        description=request.description,
        keywords=normalize_keywords(request.keywords),
        location_id=request.location_id,
    )

    try:
        indexed = await search_manager.on_item_changed(scope, item)
    except Exception as e:
        logger.error("Item change hook failed", scope=scope.key, item_id=request.id, error=str(e))
        raise HTTPException(status_code=500, detail="Item change hook failed")

    logger.info("Item change handled", scope=scope.key, item_id=request.id, indexed=indexed)
    return IndexResponse(status="success", scope=scope.key, item_id=request.id, indexed=indexed)


@router.delete("/index/items/{item_id}", response_model=IndexResponse)
async def remove_item(
    item_id: str,
    scope: SearchScope = Depends(get_scope),
    search_manager: SearchManager = Depends(get_search_manager)
):
    """Write-path hook after an item delete commits."""
    try:
        indexed = await search_manager.on_item_deleted(scope, item_id)
    except Exception as e:
        logger.error("Item delete hook failed", scope=scope.key, item_id=item_id, error=str(e))
        raise HTTPException(status_code=500, detail="Item delete hook failed")

    logger.info("Item delete handled", scope=scope.key, item_id=item_id, indexed=indexed)
    return IndexResponse(status="success", scope=scope.key, item_id=item_id, indexed=indexed)


@router.post("/index/scopes/invalidate", response_model=IndexResponse)
async def invalidate_scope(
    scope: SearchScope = Depends(get_scope),
    search_manager: SearchManager = Depends(get_search_manager)
):
    """Write-path hook for location changes and bulk imports."""
    deleted = await search_manager.on_scope_changed(scope)
    logger.info("Scope invalidated", scope=scope.key, deleted_keys=deleted)
    return IndexResponse(status="success", scope=scope.key)
