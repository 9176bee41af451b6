"""Tail pruning for semantic-mode results.

Vector similarity rarely drops to zero, so semantic mode would otherwise pad
every result page with marginal matches. Two floors apply: an absolute one,
and one relative to the best remaining score.
"""

from dataclasses import dataclass
from typing import List

import structlog

from .fusion import ScoredCandidate, SearchMode

logger = structlog.get_logger("search_service.pruning")


@dataclass(frozen=True)
class PruningThresholds:
    absolute_floor: float = 0.35
    relative_floor: float = 0.72


class ResultPruner:
    """Drops the low-relevance tail of semantic-mode candidates."""

    def __init__(self, thresholds: PruningThresholds = PruningThresholds()):
        self.thresholds = thresholds

    def prune(self, candidates: List[ScoredCandidate], mode: SearchMode) -> List[ScoredCandidate]:
        if mode != SearchMode.SEMANTIC:
            return candidates

        floor = self.thresholds.absolute_floor
        kept = [c for c in candidates if c.fused_score >= floor]
        if not kept:
            return []

        top_score = max(c.fused_score for c in kept)
        floor = max(top_score * self.thresholds.relative_floor, self.thresholds.absolute_floor)
        pruned = [c for c in kept if c.fused_score >= floor]

        logger.debug(
            "Semantic tail pruned",
            before=len(candidates),
            after=len(pruned),
            top_score=top_score,
            floor=floor
        )
        return pruned
