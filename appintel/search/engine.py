"""
Search Engine - Rank catalog items against a free-text query.

Scoring tiers (first match wins, higher tiers always outrank lower ones):
  - Exact match:          100
  - Label starts with:     80
  - Label contains:        60
  - Word starts with:      50   ("gal" matches "Photo Gallery")
  - Fuzzy (Levenshtein):  sim * 40 when sim > 0.6, else no match

Matching is case-insensitive on codepoints only; no locale collation.
Items are anything with a ``label`` attribute (CatalogEntry,
CategorizedApp).
"""

import re
from typing import Sequence, TypeVar

from rapidfuzz.distance import Levenshtein

from ..models import SearchMatch

T = TypeVar("T")

EXACT_SCORE = 100.0
PREFIX_SCORE = 80.0
SUBSTRING_SCORE = 60.0
WORD_PREFIX_SCORE = 50.0
FUZZY_WEIGHT = 40.0
FUZZY_THRESHOLD = 0.6

NO_LETTER_SECTION = "#"

_WORD_SEPARATORS = re.compile(r"[ \-_]")


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost edit distance between the lower-cased forms of a and b."""
    return Levenshtein.distance(a.lower(), b.lower())


def similarity(a: str, b: str) -> float:
    """
    Normalized edit similarity in [0, 1].

    1.0 means identical (including two empty strings), 0.0 completely
    different.
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


def section_key(label: str) -> str:
    """Upper-cased first character of a label, '#' when empty."""
    return label[:1].upper()[:1] or NO_LETTER_SECTION


class SearchEngine:
    """Stateless scorer and sorter for catalog search."""

    def search(self, query: str, catalog: Sequence[T]) -> Sequence[T]:
        """
        Filter and order the catalog by relevance to the query.

        A blank query returns the catalog itself, in its original order.
        Otherwise only matching items are returned, best first; items
        with equal scores keep their catalog order.
        """
        if not query or not query.strip():
            return catalog
        return [match.item for match in self.matches(query, catalog)]

    def matches(self, query: str, catalog: Sequence[T]) -> list[SearchMatch]:
        """Like search(), but keeps each item's score."""
        if not query or not query.strip():
            return []

        normalized = query.strip().lower()
        scored = []
        for item in catalog:
            score = self.score_match(normalized, item.label)
            if score > 0:
                scored.append(SearchMatch(item, score))

        # sorted() is stable, reverse=True included
        return sorted(scored, key=lambda m: m.score, reverse=True)

    def score_match(self, query: str, label: str) -> float:
        """
        Score a single label against a query.

        Returns:
            0.0 for no match, otherwise the tier score (see module docs)
        """
        query = query.lower()
        lower_label = label.lower()

        if lower_label == query:
            return EXACT_SCORE
        if lower_label.startswith(query):
            return PREFIX_SCORE
        if query in lower_label:
            return SUBSTRING_SCORE
        if any(word.startswith(query) for word in _WORD_SEPARATORS.split(lower_label) if word):
            return WORD_PREFIX_SCORE

        sim = similarity(query, lower_label)
        if sim > FUZZY_THRESHOLD:
            return sim * FUZZY_WEIGHT
        return 0.0

    def group_by_first_letter(self, catalog: Sequence[T]) -> dict[str, list[T]]:
        """
        Group items by the upper-cased first character of their label.

        Keys come out sorted; items keep their catalog order within a group.
        """
        groups: dict[str, list[T]] = {}
        for item in catalog:
            groups.setdefault(section_key(item.label), []).append(item)
        return dict(sorted(groups.items()))

    def sections(self, catalog: Sequence[T]) -> dict[str, int]:
        """
        Index of the first item for each leading character.

        The catalog is taken in display order and is not re-sorted.
        """
        result: dict[str, int] = {}
        for index, item in enumerate(catalog):
            result.setdefault(section_key(item.label), index)
        return result
