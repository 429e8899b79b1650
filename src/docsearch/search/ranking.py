"""Merge, rank, facet and paginate per-shard results."""

from collections import Counter
from collections.abc import Iterable, Sequence
from functools import cmp_to_key

from docsearch.search.schemas import AuthorFacet, SearchFacets, SearchResult

DEFAULT_SCORE_EPSILON = 0.1
DEFAULT_AUTHOR_LIMIT = 10


def compare_results(a: SearchResult, b: SearchResult, epsilon: float) -> int:
    """Order two results: higher score first, recency when scores are close.

    Scores from different shards are not on a comparable scale, so a gap of
    `epsilon` or less counts as a tie and the newer record wins.

    Args:
        a: Left result.
        b: Right result.
        epsilon: Largest score gap treated as a tie.

    Returns:
        Negative if a sorts first, positive if b does, 0 if equal.
    """
    if abs(a.score - b.score) > epsilon:
        return -1 if a.score > b.score else 1
    a_created = a.created_at or 0
    b_created = b.created_at or 0
    if a_created == b_created:
        return 0
    return -1 if a_created > b_created else 1


def merge_and_rank(
    shard_results: Iterable[Sequence[SearchResult]],
    epsilon: float = DEFAULT_SCORE_EPSILON,
) -> list[SearchResult]:
    """Concatenate per-shard results and sort them into one ranking.

    Args:
        shard_results: One result list per shard.
        epsilon: Score tie threshold.

    Returns:
        The merged result set, best first.
    """
    merged = [result for results in shard_results for result in results]
    return sorted(merged, key=cmp_to_key(lambda a, b: compare_results(a, b, epsilon)))


def compute_facets(
    results: Sequence[SearchResult], author_limit: int = DEFAULT_AUTHOR_LIMIT
) -> SearchFacets:
    """Summarize the merged result set.

    Args:
        results: Full merged, sorted result set (before pagination).
        author_limit: Number of authors to report.

    Returns:
        Counts per type and status, and the most frequent authors. Authors
        with equal counts keep the order in which they first appear.
    """
    types: Counter[str] = Counter(r.type.value for r in results)
    statuses: Counter[str] = Counter(r.status for r in results if r.status)

    author_counts: Counter[str] = Counter()
    author_names: dict[str, str] = {}
    for r in results:
        if r.author_id is None:
            continue
        author_counts[r.author_id] += 1
        author_names.setdefault(r.author_id, r.author_name or r.author_id)

    authors = [
        AuthorFacet(id=author_id, name=author_names[author_id], count=count)
        for author_id, count in author_counts.most_common(author_limit)
    ]
    return SearchFacets(types=dict(types), statuses=dict(statuses), authors=authors)


def paginate(
    results: Sequence[SearchResult], limit: int, offset: int, max_limit: int
) -> tuple[list[SearchResult], int]:
    """Slice one page out of the merged result set.

    Args:
        results: Merged, sorted result set.
        limit: Requested page size.
        offset: Number of results to skip.
        max_limit: Hard cap on the page size.

    Returns:
        (page, effective_limit).
    """
    effective = max(1, min(limit, max_limit))
    return list(results[offset : offset + effective]), effective
