"""Result fusion: merge strategy outputs into one deduplicated ranking."""

from __future__ import annotations

import functools
import itertools
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from content_search.models.search import SearchFacets, SearchResult
    from content_search.search.executor import StrategyOutcome

# Content-length difference that counts as "substantially longer" on a score tie
CONTENT_LENGTH_MARGIN = 100

FACET_STRATEGY = "full_text"


def fuse(outcomes: list[StrategyOutcome]) -> list[SearchResult]:
    """Concatenate, deduplicate by (source id, chunk id), and rank.

    On a duplicate the higher score wins; equal scores go to the
    higher-priority strategy, then to the first seen.
    """
    best: dict[tuple[str, str | None], tuple[SearchResult, int]] = {}
    for outcome in outcomes:
        for result in outcome.result.results:
            key = result.dedup_key
            current = best.get(key)
            if current is None or _beats(result, outcome.priority, *current):
                best[key] = (result, outcome.priority)
    return rank([result for result, _priority in best.values()])


def _beats(result: SearchResult, priority: int, held: SearchResult, held_priority: int) -> bool:
    if result.score != held.score:
        return result.score > held.score
    return priority > held_priority


def rank(results: list[SearchResult]) -> list[SearchResult]:
    """Score desc, then substantially longer content, then newer first."""
    by_score = sorted(results, key=lambda r: r.score, reverse=True)
    ranked: list[SearchResult] = []
    # The length margin is not transitive, so tie-breaks only run within one score
    for _score, group in itertools.groupby(by_score, key=lambda r: r.score):
        ranked.extend(sorted(group, key=functools.cmp_to_key(compare_results)))
    return ranked


def compare_results(a: SearchResult, b: SearchResult) -> int:
    """Comparator for the fused order; negative means ``a`` ranks first."""
    if a.score != b.score:
        return -1 if a.score > b.score else 1
    length_diff = len(a.content or "") - len(b.content or "")
    if abs(length_diff) > CONTENT_LENGTH_MARGIN:
        return -1 if length_diff > 0 else 1
    if a.created_at != b.created_at:
        return -1 if a.created_at > b.created_at else 1
    return 0


def merge_facets(outcomes: list[StrategyOutcome]) -> SearchFacets | None:
    """Facets come only from the full-text strategy."""
    for outcome in outcomes:
        if outcome.name == FACET_STRATEGY and outcome.result.facets:
            return outcome.result.facets
    return None
