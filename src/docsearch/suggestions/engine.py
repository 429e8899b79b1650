"""Autocomplete suggestions blended from analytics and the index."""

import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum

import structlog

from docsearch.analytics.recorder import SearchAnalytics
from docsearch.content.source import ContentSource
from docsearch.errors import InvalidInput
from docsearch.search.index import SearchIndex

logger = structlog.get_logger()

MIN_PARTIAL_LENGTH = 2
MAX_PARTIAL_LENGTH = 100
AUTHOR_PREFIX = "author:"


class SuggestionSource(IntEnum):
    """Where a suggestion came from. Lower values rank first."""

    POPULAR = 0
    RECENT = 1
    DOCUMENT = 2
    AUTHOR = 3


@dataclass(frozen=True)
class Suggestion:
    """One candidate before ranking.

    Attributes:
        text: Text offered to the user.
        source: Source that produced it.
        is_prefix: Whether the text starts with the partial query.
        count: Popularity signal (search count, uses, comment count).
        last_used: Most recent use in epoch ms, 0 if unknown.
    """

    text: str
    source: SuggestionSource
    is_prefix: bool
    count: int = 0
    last_used: int = 0

    def sort_key(self) -> tuple[bool, int, int, int, int]:
        return (
            not self.is_prefix,
            self.source.value,
            -self.count,
            -self.last_used,
            len(self.text),
        )


def source_caps(limit: int) -> dict[SuggestionSource, int]:
    """Per-source candidate caps for a requested limit."""
    return {
        SuggestionSource.POPULAR: math.ceil(limit / 2),
        SuggestionSource.RECENT: math.ceil(limit / 3),
        SuggestionSource.DOCUMENT: math.ceil(limit / 3),
        SuggestionSource.AUTHOR: math.ceil(limit / 4),
    }


class SuggestionEngine:
    """Produces ranked autocomplete suggestions for a partial query.

    Each source is queried independently; a failing source is logged and
    contributes nothing, so suggestions degrade instead of erroring.
    """

    def __init__(
        self, analytics: SearchAnalytics, index: SearchIndex, source: ContentSource
    ) -> None:
        """Initialize suggestion engine.

        Args:
            analytics: Source of popular and per-user recent queries.
            index: Source of document titles.
            source: Canonical users, for author suggestions.
        """
        self._analytics = analytics
        self._index = index
        self._source = source

    def get_suggestions(
        self, partial_query: str, user_id: str | None = None, limit: int = 10
    ) -> list[str]:
        """Suggest completions for a partial query.

        Args:
            partial_query: What the user has typed so far.
            user_id: Identified user, enables the recent-searches source.
            limit: Maximum suggestions returned.

        Returns:
            Up to `limit` suggestion strings, best first.

        Raises:
            InvalidInput: If the partial query exceeds 100 characters.
        """
        partial = partial_query.strip()
        if len(partial) > MAX_PARTIAL_LENGTH:
            raise InvalidInput(
                f"Query must be at most {MAX_PARTIAL_LENGTH} characters",
                details={"length": len(partial)},
            )
        if len(partial) < MIN_PARTIAL_LENGTH or limit < 1:
            return []

        caps = source_caps(limit)
        lowered = partial.lower()

        def popular() -> list[Suggestion]:
            return [
                Suggestion(q, SuggestionSource.POPULAR, q.lower().startswith(lowered), n, last)
                for q, n, last in self._analytics.popular_queries_with_prefix(
                    partial, caps[SuggestionSource.POPULAR]
                )
            ]

        def recent() -> list[Suggestion]:
            if not user_id:
                return []
            return [
                Suggestion(q, SuggestionSource.RECENT, q.lower().startswith(lowered), n, last)
                for q, n, last in self._analytics.recent_user_queries(
                    user_id, partial, caps[SuggestionSource.RECENT]
                )
            ]

        def documents() -> list[Suggestion]:
            return [
                Suggestion(t, SuggestionSource.DOCUMENT, t.lower().startswith(lowered))
                for t in self._index.document_titles(
                    partial, caps[SuggestionSource.DOCUMENT]
                )
            ]

        def authors() -> list[Suggestion]:
            return [
                Suggestion(
                    f"{AUTHOR_PREFIX}{name}",
                    SuggestionSource.AUTHOR,
                    name.lower().startswith(lowered),
                    n,
                )
                for _, name, n in self._source.match_authors(
                    partial, caps[SuggestionSource.AUTHOR]
                )
            ]

        sources: list[tuple[SuggestionSource, Callable[[], list[Suggestion]]]] = [
            (SuggestionSource.POPULAR, popular),
            (SuggestionSource.RECENT, recent),
            (SuggestionSource.DOCUMENT, documents),
            (SuggestionSource.AUTHOR, authors),
        ]

        seen: set[str] = set()
        candidates: list[Suggestion] = []
        for source, fetch in sources:
            try:
                found = fetch()
            except Exception as e:
                logger.warning(
                    "suggestion_source_failed", source=source.name.lower(), error=str(e)
                )
                continue
            for suggestion in found:
                key = suggestion.text.lower()
                if key in seen:
                    continue
                seen.add(key)
                candidates.append(suggestion)

        candidates.sort(key=Suggestion.sort_key)
        return [s.text for s in candidates[:limit]]
