"""Pinecone implementation of the vector index.

Talks to a Pinecone index with integrated embedding through the records API
using ``httpx``:

- ``POST /records/namespaces/{ns}/upsert`` (NDJSON records)
- ``POST /records/namespaces/{ns}/search`` (text query, metadata filter,
  optional rerank)
- ``POST /vectors/delete``

When only the index name is configured, the data-plane host is resolved once
through the control plane (``GET /indexes/{name}``).

Transport failures raise ``VectorIndexConnectionError``; non-2xx responses
raise ``VectorIndexQueryError``.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import structlog

from .base import (
    IndexHit,
    IndexableItem,
    VectorIndex,
    VectorIndexConnectionError,
    VectorIndexQueryError,
    normalize_keywords,
)

logger = structlog.get_logger("vector_index.pinecone")


def _with_scheme(host: str) -> str:
    host = host.strip().rstrip("/")
    if host.startswith("http://") or host.startswith("https://"):
        return host
    return f"https://{host}"


class PineconeVectorIndex(VectorIndex):
    """Pinecone records-API client.

    Parameters
    - api_key: Pinecone API key
    - index_name: Index name, used to resolve the host when ``index_host`` is unset
    - index_host: Data-plane host of the index
    - namespace: Namespace holding the item records
    - text_field: Record field embedded by the index
    - api_version: Value of the ``X-Pinecone-API-Version`` header
    - timeout: Per-request timeout in seconds
    - control_plane_url: Base URL of the control plane
    - transport: Optional ``httpx`` transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        api_key: str,
        index_name: Optional[str] = None,
        index_host: Optional[str] = None,
        namespace: str = "__default__",
        text_field: str = "text",
        api_version: str = "2025-04",
        timeout: float = 5.0,
        control_plane_url: str = "https://api.pinecone.io",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("Pinecone requires an API key")
        if not index_name and not index_host:
            raise ValueError("Pinecone requires an index name or an index host")

        self.index_name = index_name
        self.namespace = namespace
        self.text_field = text_field
        self.control_plane_url = control_plane_url.rstrip("/")
        self._host: Optional[str] = _with_scheme(index_host) if index_host else None
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Api-Key": api_key,
                "X-Pinecone-API-Version": api_version,
            },
        )

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.error("Pinecone request failed", operation=operation, error=str(e))
            raise VectorIndexConnectionError(f"Pinecone {operation} failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "Pinecone returned an error",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500]
            )
            raise VectorIndexQueryError(f"Pinecone {operation} returned status {response.status_code}")
        return response

    async def _data_plane(self) -> str:
        """Data-plane base URL, resolving it by index name on first use."""
        if self._host is None:
            response = await self._request(
                "GET",
                f"{self.control_plane_url}/indexes/{self.index_name}",
                operation="describe_index",
            )
            host = response.json().get("host")
            if not host:
                raise VectorIndexQueryError(f"Pinecone index {self.index_name} has no host")
            self._host = _with_scheme(host)
            logger.info("Resolved Pinecone index host", index_name=self.index_name, host=self._host)
        return self._host

    def record_for(self, item: IndexableItem, tags: Dict[str, str], source_text: str) -> Dict[str, Any]:
        """Record body stored for ``item``."""
        record: Dict[str, Any] = {
            "_id": item.id,
            "item_id": item.id,
            "item_name": item.name,
            "description": item.description or "",
            "keywords": normalize_keywords(item.keywords),
            "location_id": item.location_id or "",
        }
        record.update(tags)
        record[self.text_field] = source_text if source_text.strip() else item.name
        return record

    async def upsert(self, item: IndexableItem, tags: Dict[str, str], source_text: str) -> None:
        host = await self._data_plane()
        record = self.record_for(item, tags, source_text)
        await self._request(
            "POST",
            f"{host}/records/namespaces/{self.namespace}/upsert",
            operation="upsert",
            content=json.dumps(record) + "\n",
            headers={"Content-Type": "application/x-ndjson"},
        )
        logger.debug("Pinecone record upserted", item_id=item.id)

    async def delete(self, item_id: str) -> None:
        host = await self._data_plane()
        await self._request(
            "POST",
            f"{host}/vectors/delete",
            operation="delete",
            json={"ids": [item_id], "namespace": self.namespace},
        )
        logger.debug("Pinecone record deleted", item_id=item_id)

    async def query(
        self,
        text: str,
        top_k: int,
        filter: Dict[str, Any],
        rerank_model: Optional[str] = None
    ) -> List[IndexHit]:
        host = await self._data_plane()
        body: Dict[str, Any] = {
            "query": {
                "inputs": {"text": text},
                "top_k": top_k,
                "filter": filter,
            },
            "fields": ["item_id"],
        }
        if rerank_model:
            body["rerank"] = {
                "model": rerank_model,
                "top_n": top_k,
                "rank_fields": [self.text_field],
            }

        response = await self._request(
            "POST",
            f"{host}/records/namespaces/{self.namespace}/search",
            operation="search",
            json=body,
        )

        try:
            hits = response.json().get("result", {}).get("hits", []) or []
            results = [IndexHit(id=str(hit["_id"]), score=float(hit.get("_score") or 0.0)) for hit in hits]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise VectorIndexQueryError(f"Malformed Pinecone search response: {e}") from e

        logger.debug("Pinecone search completed", top_k=top_k, hits=len(results))
        return results

    async def health_check(self) -> bool:
        try:
            await self._data_plane()
            return True
        except Exception as e:
            logger.error("Pinecone health check failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._client.aclose()
