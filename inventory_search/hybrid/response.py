"""Search response model and its cache payload codec.

Cached payloads come back from a shared store, so decoding validates every
field and returns ``None`` on any mismatch; callers treat that as a cache miss.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..ranking.fusion import ScoredCandidate

_RESULT_FIELDS = (
    "id",
    "name",
    "image_ref",
    "quantity",
    "location_path",
    "lexical_score",
    "semantic_score",
    "fused_score",
)


@dataclass(frozen=True)
class SearchResult:
    id: str
    name: str
    image_ref: Optional[str]
    quantity: Optional[int]
    location_path: str
    lexical_score: float
    semantic_score: float
    fused_score: float

    @classmethod
    def from_candidate(cls, candidate: ScoredCandidate) -> "SearchResult":
        return cls(**candidate.to_result())

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in _RESULT_FIELDS}


@dataclass
class SearchResponse:
    """Ranked page of results.

    ``total`` counts every filtered (and, in semantic mode, pruned) candidate,
    independent of the page window. ``source`` records which path answered:
    ``live``, ``local``, ``cache``, ``stale_cache`` or ``local_fallback``.
    """
    total: int
    results: List[SearchResult] = field(default_factory=list)
    source: str = "live"

    @property
    def degraded(self) -> bool:
        return self.source in ("stale_cache", "local_fallback")

    def ids(self) -> List[str]:
        return [result.id for result in self.results]

    def to_payload(self) -> Dict[str, Any]:
        """Cacheable body; ``source`` is per-response and not stored."""
        return {
            "total": self.total,
            "results": [result.to_dict() for result in self.results],
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _decode_result(raw: Any) -> Optional[SearchResult]:
    if not isinstance(raw, dict) or set(raw) != set(_RESULT_FIELDS):
        return None
    if not isinstance(raw["id"], str) or not raw["id"]:
        return None
    if not isinstance(raw["name"], str) or not isinstance(raw["location_path"], str):
        return None
    if raw["image_ref"] is not None and not isinstance(raw["image_ref"], str):
        return None
    if raw["quantity"] is not None and not _is_int(raw["quantity"]):
        return None
    if not all(_is_number(raw[name]) for name in ("lexical_score", "semantic_score", "fused_score")):
        return None

    return SearchResult(
        id=raw["id"],
        name=raw["name"],
        image_ref=raw["image_ref"],
        quantity=raw["quantity"],
        location_path=raw["location_path"],
        lexical_score=float(raw["lexical_score"]),
        semantic_score=float(raw["semantic_score"]),
        fused_score=float(raw["fused_score"]),
    )


def decode_payload(payload: Any, source: str = "cache") -> Optional[SearchResponse]:
    """Strictly decode a cached payload; ``None`` when the shape does not match."""
    if not isinstance(payload, dict) or set(payload) != {"total", "results"}:
        return None
    total = payload["total"]
    raw_results = payload["results"]
    if not _is_int(total) or total < 0 or not isinstance(raw_results, list):
        return None
    if len(raw_results) > total:
        return None

    results = []
    for raw in raw_results:
        result = _decode_result(raw)
        if result is None:
            return None
        results.append(result)

    return SearchResponse(total=total, results=results, source=source)
