"""Tests for the Pinecone records-API client against an httpx mock transport."""

import json

import httpx
import pytest

from inventory_libs.common.scope import SearchScope
from inventory_libs.vector_index.base import (
    IndexableItem,
    VectorIndexConnectionError,
    VectorIndexQueryError,
    scope_filter,
    scope_tags,
)
from inventory_libs.vector_index.pinecone_records import PineconeVectorIndex

HOST = "https://inventory-test.svc.pinecone.io"


class Recorder:
    """Mock transport handler that records requests and replays canned responses."""

    def __init__(self, responses=None):
        self.requests = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, response in self.responses.items():
            if request.url.path.endswith(suffix):
                return response(request) if callable(response) else response
        return httpx.Response(200, json={})


def client_for(handler, **kwargs):
    kwargs.setdefault("index_host", "inventory-test.svc.pinecone.io")
    return PineconeVectorIndex(
        api_key="test-key",
        namespace="items",
        transport=httpx.MockTransport(handler),
        **kwargs
    )


@pytest.mark.asyncio
async def test_query_sends_text_filter_and_headers():
    """Test the search request carries the text, top_k, filter and auth headers."""
    recorder = Recorder({
        "/search": httpx.Response(200, json={"result": {"hits": [
            {"_id": "a", "_score": 0.91, "fields": {"item_id": "a"}},
            {"_id": "b", "_score": 0.42},
        ]}}),
    })
    index = client_for(recorder)
    scope = SearchScope.household("hh-1")

    hits = await index.query("air pump", top_k=64, filter=scope_filter(scope))

    assert [(hit.id, hit.score) for hit in hits] == [("a", 0.91), ("b", 0.42)]
    request = recorder.requests[0]
    assert str(request.url) == f"{HOST}/records/namespaces/items/search"
    assert request.headers["Api-Key"] == "test-key"
    assert request.headers["X-Pinecone-API-Version"] == "2025-04"
    body = json.loads(request.content)
    assert body["query"] == {
        "inputs": {"text": "air pump"},
        "top_k": 64,
        "filter": {"household_id": {"$eq": "hh-1"}},
    }
    assert "rerank" not in body
    await index.close()


@pytest.mark.asyncio
async def test_query_with_rerank_model():
    """Test a configured rerank model adds the rerank block."""
    recorder = Recorder({"/search": httpx.Response(200, json={"result": {"hits": []}})})
    index = client_for(recorder)

    hits = await index.query("drill", top_k=80, filter={}, rerank_model="bge-reranker-v2-m3")

    assert hits == []
    body = json.loads(recorder.requests[0].content)
    assert body["rerank"] == {"model": "bge-reranker-v2-m3", "top_n": 80, "rank_fields": ["text"]}
    await index.close()


@pytest.mark.asyncio
async def test_upsert_sends_ndjson_record_with_scope_tags():
    """Test upsert posts one NDJSON record with tags and the embedded text field."""
    recorder = Recorder()
    index = client_for(recorder)
    item = IndexableItem(
        id="item-1",
        name="Cordless Drill",
        description="18V",
        keywords=[" drill ", ""],
        owner_user_id="user-1",
    )

    await index.upsert(item, scope_tags(item), item.source_text)

    request = recorder.requests[0]
    assert str(request.url) == f"{HOST}/records/namespaces/items/upsert"
    assert request.headers["Content-Type"] == "application/x-ndjson"
    assert request.content.endswith(b"\n")
    record = json.loads(request.content)
    assert record["_id"] == "item-1"
    assert record["keywords"] == ["drill"]
    assert record["owner_user_id"] == "user-1"
    assert record["household_id"] == "__none__"
    assert record["text"] == "Cordless Drill\n18V\ndrill"
    await index.close()


def test_blank_source_text_falls_back_to_name():
    """Test the embedded field is never blank."""
    index = client_for(Recorder(), text_field="content")
    item = IndexableItem(id="item-1", name="Shovel")

    record = index.record_for(item, {}, "   ")

    assert record["content"] == "Shovel"


@pytest.mark.asyncio
async def test_delete_posts_ids_and_namespace():
    """Test delete targets the vectors endpoint in the configured namespace."""
    recorder = Recorder()
    index = client_for(recorder)

    await index.delete("item-9")

    request = recorder.requests[0]
    assert str(request.url) == f"{HOST}/vectors/delete"
    assert json.loads(request.content) == {"ids": ["item-9"], "namespace": "items"}
    await index.close()


@pytest.mark.asyncio
async def test_error_status_raises_query_error():
    """Test non-2xx responses raise VectorIndexQueryError."""
    recorder = Recorder({"/search": httpx.Response(500, text="boom")})
    index = client_for(recorder)

    with pytest.raises(VectorIndexQueryError):
        await index.query("drill", top_k=64, filter={})
    await index.close()


@pytest.mark.asyncio
async def test_transport_error_raises_connection_error():
    """Test transport failures raise VectorIndexConnectionError."""
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    index = client_for(refuse)

    with pytest.raises(VectorIndexConnectionError):
        await index.query("drill", top_k=64, filter={})
    assert await index.health_check() is True
    await index.close()


@pytest.mark.asyncio
async def test_malformed_search_response():
    """Test hits without ids raise VectorIndexQueryError."""
    recorder = Recorder({"/search": httpx.Response(200, json={"result": {"hits": [{"_score": 1.0}]}})})
    index = client_for(recorder)

    with pytest.raises(VectorIndexQueryError):
        await index.query("drill", top_k=64, filter={})
    await index.close()


@pytest.mark.asyncio
async def test_host_resolved_once_through_control_plane():
    """Test an index name is resolved to its data-plane host on first use."""
    recorder = Recorder({
        "/indexes/inventory": httpx.Response(200, json={"name": "inventory", "host": "inventory-abc.svc.pinecone.io"}),
        "/search": httpx.Response(200, json={"result": {"hits": []}}),
    })
    index = client_for(recorder, index_host=None, index_name="inventory")

    await index.query("drill", top_k=64, filter={})
    await index.query("saw", top_k=64, filter={})

    urls = [str(request.url) for request in recorder.requests]
    assert urls == [
        "https://api.pinecone.io/indexes/inventory",
        "https://inventory-abc.svc.pinecone.io/records/namespaces/items/search",
        "https://inventory-abc.svc.pinecone.io/records/namespaces/items/search",
    ]
    await index.close()


@pytest.mark.asyncio
async def test_health_check_fails_when_host_unresolvable():
    """Test health check reports False when the control plane has no host."""
    recorder = Recorder({"/indexes/inventory": httpx.Response(200, json={"name": "inventory"})})
    index = client_for(recorder, index_host=None, index_name="inventory")

    assert await index.health_check() is False
    await index.close()


def test_constructor_requires_credentials():
    """Test missing key or index identity is rejected."""
    with pytest.raises(ValueError):
        PineconeVectorIndex(api_key="", index_host="h")
    with pytest.raises(ValueError):
        PineconeVectorIndex(api_key="k")
