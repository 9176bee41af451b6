"""Tests for semantic tail pruning."""

from inventory_search.ranking.fusion import ScoredCandidate, SearchMode
from inventory_search.ranking.pruning import PruningThresholds, ResultPruner


def _scored(*scores):
    return [
        ScoredCandidate(
            id=f"00000000-0000-4000-8000-00000000000{i}",
            name=f"item {i}",
            image_ref=None,
            quantity=None,
            location_path="Garage",
            lexical_score=0.0,
            semantic_score=score,
            token_overlap_score=1,
            fused_score=score,
        )
        for i, score in enumerate(scores)
    ]


def test_only_semantic_mode_is_pruned():
    """Test lexical and hybrid results are untouched."""
    candidates = _scored(1.0, 0.1)
    pruner = ResultPruner()

    assert pruner.prune(candidates, SearchMode.LEXICAL) == candidates
    assert pruner.prune(candidates, SearchMode.HYBRID) == candidates


def test_relative_floor():
    """Test candidates below 72% of the top score are dropped."""
    kept = ResultPruner().prune(_scored(1.0, 0.75, 0.71, 0.3), SearchMode.SEMANTIC)
    assert [c.fused_score for c in kept] == [1.0, 0.75]


def test_absolute_floor_dominates_low_top_score():
    """Test the absolute floor applies when the relative floor is lower."""
    kept = ResultPruner().prune(_scored(0.4, 0.36, 0.34), SearchMode.SEMANTIC)
    assert [c.fused_score for c in kept] == [0.4, 0.36]


def test_everything_pruned_is_empty():
    """Test an all-low candidate set prunes to empty."""
    assert ResultPruner().prune(_scored(0.2, 0.1), SearchMode.SEMANTIC) == []
    assert ResultPruner().prune([], SearchMode.SEMANTIC) == []


def test_thresholds_are_overridable():
    """Test custom pruning floors."""
    pruner = ResultPruner(PruningThresholds(absolute_floor=0.0, relative_floor=0.0))
    assert len(pruner.prune(_scored(1.0, 0.01), SearchMode.SEMANTIC)) == 2
