"""Query tokenization and expansion for inventory search.

Turns a free-text query into a base token set and an expanded token set
(base + synonyms + phrase expansions). Both sets feed the token-overlap
signal and the hashing embedder.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

import structlog

logger = structlog.get_logger("search_service.query_expansion")

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

STOP_WORDS = frozenset([
    "a", "an", "any", "are", "at", "by", "find", "for", "i", "in",
    "inventory", "is", "item", "it", "locate", "me", "my", "of", "on",
    "our", "please", "show", "the", "there", "to", "was", "were", "where",
    "with",
])

TOKEN_SYNONYMS: Dict[str, List[str]] = {
    "air": ["pneumatic", "inflator", "compressor"],
    "battery": ["batteries", "cell", "cells"],
    "bin": ["container", "storage", "tote"],
    "compressor": ["air", "inflator", "pump", "pneumatic"],
    "container": ["bin", "storage", "tote"],
    "drill": ["driver", "masonry"],
    "glove": ["gloves", "mittens"],
    "gloves": ["glove", "mittens", "winter"],
    "inflator": ["air", "compressor", "pump", "tire"],
    "pump": ["air", "compressor", "inflator"],
    "pneumatic": ["air", "compressor", "inflator"],
    "saw": ["blade"],
    "shovel": ["spade"],
    "storage": ["bin", "container", "tote"],
    "tire": ["inflator", "pump"],
    "tote": ["bin", "container", "storage"],
    "winter": ["cold", "gloves"],
}

PHRASE_EXPANSIONS: List[Tuple[Pattern, List[str]]] = [
    (re.compile(r"\bair\s+pump\b"), ["air", "compressor", "inflator", "pneumatic"]),
    (re.compile(r"\btire\s+pump\b"), ["compressor", "inflator", "pump", "tire"]),
    (re.compile(r"\bwinter\s+gloves?\b"), ["gloves", "mittens", "winter"]),
    (re.compile(r"\btool\s+belt\b"), ["belt", "tool", "toolbelt"]),
]


@dataclass(frozen=True)
class QueryTerms:
    """Deduplicated base and expanded token sets for one piece of text."""
    base: Tuple[str, ...]
    expanded: Tuple[str, ...]

    def is_literal(self, token: str) -> bool:
        return token in self.base


def tokenize(value: str) -> List[str]:
    """Lowercase and split on non-alphanumeric runs, dropping empty tokens."""
    return [token for token in _TOKEN_SPLIT.split(value.lower()) if token]


def _dedupe(tokens: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(tokens))


class QueryExpander:
    """Expands queries with synonyms and multi-word phrase rules.

    Parameters
    - synonyms: token -> synonyms table (defaults to ``TOKEN_SYNONYMS``)
    - phrases: ``(compiled pattern, expansion tokens)`` pairs matched against
      the lowercased query (defaults to ``PHRASE_EXPANSIONS``)
    - stop_words: tokens removed from the base set (defaults to ``STOP_WORDS``)
    """

    def __init__(
        self,
        synonyms: Optional[Mapping[str, Sequence[str]]] = None,
        phrases: Optional[Sequence[Tuple[Pattern, Sequence[str]]]] = None,
        stop_words: Optional[Iterable[str]] = None,
    ):
        self.synonyms = dict(TOKEN_SYNONYMS if synonyms is None else synonyms)
        self.phrases = list(PHRASE_EXPANSIONS if phrases is None else phrases)
        self.stop_words = frozenset(STOP_WORDS if stop_words is None else stop_words)

    def base_tokens(self, text: str) -> List[str]:
        """Meaningful tokens of ``text``.

        Stop-words and single-character tokens are removed; when that leaves
        nothing, the raw tokens longer than one character are used instead.
        """
        tokens = tokenize(text)
        filtered = [token for token in tokens if len(token) > 1 and token not in self.stop_words]
        if filtered:
            return _dedupe(filtered)
        return _dedupe(token for token in tokens if len(token) > 1)

    def expand(self, text: str) -> QueryTerms:
        """Resolve base and expanded terms for ``text``."""
        normalized = text.lower()
        base = self.base_tokens(normalized)
        expanded = list(base)

        for token in base:
            for synonym in self.synonyms.get(token, ()):
                expanded.extend(t for t in tokenize(synonym) if len(t) > 1)

        for pattern, tokens in self.phrases:
            if pattern.search(normalized):
                for expansion_token in tokens:
                    expanded.extend(t for t in tokenize(expansion_token) if len(t) > 1)

        terms = QueryTerms(base=tuple(base), expanded=tuple(_dedupe(expanded)))
        logger.debug(
            "Query expanded",
            base_count=len(terms.base),
            expanded_count=len(terms.expanded)
        )
        return terms


def create_query_expander() -> QueryExpander:
    """Create a query expander with the default tables."""
    return QueryExpander()
