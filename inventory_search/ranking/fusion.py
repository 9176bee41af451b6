"""Score computation and fusion for inventory search.

Every candidate gets three independent signals:

- lexical: substring hits of the whole query on name (+3.0), description
  (+1.5) and joined keywords (+1.0)
- token overlap: number of expanded query tokens found anywhere in the item text
- semantic: similarity between query and item embeddings (or the score the
  external index assigned to the hit)

The signals are fused per mode, filtered by a per-mode inclusion rule, and
sorted under a total order so pagination is reproducible.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..retrievers.candidates import CandidateRow
from .query_expansion import QueryTerms

logger = structlog.get_logger("search_service.fusion")


class InvalidSearchModeError(ValueError):
    """Search mode is not one of hybrid, semantic, lexical."""
    pass


class SearchMode(str, Enum):
    """Score fusion modes."""
    HYBRID = "hybrid"
    SEMANTIC = "semantic"
    LEXICAL = "lexical"


def parse_search_mode(value: Any) -> SearchMode:
    """Parse a caller-supplied mode; ``None``/empty means hybrid."""
    if isinstance(value, SearchMode):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return SearchMode.HYBRID
    try:
        return SearchMode(str(value).strip().lower())
    except ValueError:
        raise InvalidSearchModeError("mode must be one of: hybrid, semantic, lexical")


@dataclass(frozen=True)
class FusionWeights:
    """Named fusion constants; override per deployment if needed."""
    name_hit: float = 3.0
    description_hit: float = 1.5
    keywords_hit: float = 1.0

    lexical_overlap: float = 0.35
    semantic_overlap: float = 0.12

    hybrid_lexical: float = 0.6
    hybrid_semantic: float = 0.3
    hybrid_overlap: float = 0.1

    semantic_confidence: float = 0.85


DEFAULT_WEIGHTS = FusionWeights()


@dataclass
class ScoredCandidate:
    """A candidate with its three signals and the fused score of one mode."""
    id: str
    name: str
    image_ref: Optional[str]
    quantity: Optional[int]
    location_path: str
    lexical_score: float
    semantic_score: float
    token_overlap_score: int
    fused_score: float

    def to_result(self) -> Dict[str, Any]:
        """Public result shape (token overlap stays internal)."""
        return {
            "id": self.id,
            "name": self.name,
            "image_ref": self.image_ref,
            "quantity": self.quantity,
            "location_path": self.location_path,
            "lexical_score": self.lexical_score,
            "semantic_score": self.semantic_score,
            "fused_score": self.fused_score,
        }


class ScoringEngine:
    """Computes, fuses and orders candidate scores."""

    def __init__(self, weights: FusionWeights = DEFAULT_WEIGHTS):
        self.weights = weights

    def lexical_score(self, row: CandidateRow, query: str) -> float:
        needle = query.strip().lower()
        if not needle:
            return 0.0

        score = 0.0
        if needle in row.name.lower():
            score += self.weights.name_hit
        if needle in (row.description or "").lower():
            score += self.weights.description_hit
        if needle in " ".join(row.keywords).lower():
            score += self.weights.keywords_hit
        return score

    @staticmethod
    def token_overlap_score(row: CandidateRow, terms: QueryTerms) -> int:
        if not terms.expanded:
            return 0
        text = row.search_text
        return sum(1 for term in terms.expanded if term.lower() in text)

    def fuse(self, mode: SearchMode, lexical: float, semantic: float, overlap: float) -> float:
        w = self.weights
        if mode == SearchMode.LEXICAL:
            return lexical + overlap * w.lexical_overlap
        if mode == SearchMode.SEMANTIC:
            return semantic + overlap * w.semantic_overlap
        return lexical * w.hybrid_lexical + semantic * w.hybrid_semantic + overlap * w.hybrid_overlap

    def keeps(self, mode: SearchMode, lexical: float, semantic: float, overlap: float) -> bool:
        """Per-mode inclusion rule.

        Semantic mode needs textual corroboration unless the vector match is
        highly confident.
        """
        if mode == SearchMode.LEXICAL:
            return lexical > 0 or overlap > 0
        if mode == SearchMode.SEMANTIC:
            return semantic > 0 and (overlap > 0 or semantic >= self.weights.semantic_confidence)
        return lexical > 0 or semantic > 0 or overlap > 0

    def score(
        self,
        row: CandidateRow,
        query: str,
        terms: QueryTerms,
        semantic_score: float,
        mode: SearchMode
    ) -> Optional[ScoredCandidate]:
        """Score ``row``; ``None`` when the mode's inclusion rule rejects it."""
        lexical = self.lexical_score(row, query)
        overlap = self.token_overlap_score(row, terms)

        if not self.keeps(mode, lexical, semantic_score, overlap):
            return None

        return ScoredCandidate(
            id=row.id,
            name=row.name,
            image_ref=row.image_ref,
            quantity=row.quantity,
            location_path=row.location_path,
            lexical_score=lexical,
            semantic_score=semantic_score,
            token_overlap_score=overlap,
            fused_score=self.fuse(mode, lexical, semantic_score, overlap),
        )


def rank_key(candidate: ScoredCandidate):
    """Total order: fused, lexical, semantic (all desc), then name, id (asc)."""
    return (
        -candidate.fused_score,
        -candidate.lexical_score,
        -candidate.semantic_score,
        candidate.name,
        candidate.id,
    )


def sort_by_rank(candidates: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
    return sorted(candidates, key=rank_key)


def create_scoring_engine(weights: Optional[FusionWeights] = None) -> ScoringEngine:
    """Create a scoring engine with default or overridden weights."""
    return ScoringEngine(weights or DEFAULT_WEIGHTS)
