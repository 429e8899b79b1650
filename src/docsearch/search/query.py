"""Query normalization and per-shard query planning."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from docsearch.content.schemas import ContentType
from docsearch.search.index import Condition, ShardQuery
from docsearch.search.schemas import SearchFilters, SearchScope

# What an empty or whitespace-only query normalizes to. Never sent to FTS5.
EMPTY_PHRASE = '""'


def escape_query(raw: str) -> str:
    """Normalize user input into an FTS5 MATCH expression.

    A quoted phrase passes through unchanged. A trailing `*` makes a prefix
    query. Anything else has parentheses stripped and is wrapped whole in
    quotes, so multi-word input matches as one exact phrase rather than as
    an AND of independent terms.

    Args:
        raw: Raw user query string.

    Returns:
        MATCH expression, or EMPTY_PHRASE when nothing searchable remains.
    """
    query = raw.strip()
    if not query:
        return EMPTY_PHRASE

    if len(query) >= 2 and query.startswith('"') and query.endswith('"'):
        if not query[1:-1].strip():
            return EMPTY_PHRASE
        return query

    if query.endswith("*"):
        stem = query.rstrip("*").strip()
        if not stem:
            return EMPTY_PHRASE
        return f"{_quote(stem)}*"

    stripped = query.replace("(", "").replace(")", "").strip()
    if not stripped:
        return EMPTY_PHRASE
    return _quote(stripped)


def _quote(text: str) -> str:
    # FTS5 string literal: embedded double quotes are doubled.
    return '"' + text.replace('"', '""') + '"'


def select_shards(scope: SearchScope) -> tuple[ContentType, ...]:
    """Content types a `type` filter fans out to.

    Messages are children of discussions, so selecting discussions also
    searches messages.

    Args:
        scope: Requested scope.

    Returns:
        Content types in fan-out order.
    """
    if scope is SearchScope.ALL:
        return tuple(ContentType)
    if scope is SearchScope.DISCUSSIONS:
        return (ContentType.DISCUSSION, ContentType.MESSAGE)
    return (ContentType.from_name(scope.value),)


@dataclass(frozen=True)
class FilterRule:
    """Which filters a content type understands and how they map to columns.

    A filter the type has no attribute for (user or status) excludes the
    whole shard from the results instead of erroring, unless the rule says
    to ignore it. A status vocabulary,
    when present, maps accepted status values to stored column values; any
    other status also excludes the shard.

    Attributes:
        user_column: Column holding the author id, if any.
        status_column: Column holding status, if any.
        status_vocabulary: Allowed status value -> stored value, or None
            for free-form status strings.
        created_column: Column holding created_at (epoch ms), if any.
        status_ignored: Whether a status filter is skipped rather than
            excluding the shard, for types without a status column.
        resolved_filter: Whether the boolean `resolved` filter applies.
        doc_path_column: Column matched by the docPath filter.
    """

    user_column: str | None = "user_id"
    status_column: str | None = "status"
    status_vocabulary: Mapping[str, Any] | None = None
    created_column: str | None = "created_at"
    status_ignored: bool = False
    resolved_filter: bool = False
    doc_path_column: str = "doc_path"


FILTER_RULES: dict[ContentType, FilterRule] = {
    ContentType.DOCUMENT: FilterRule(
        user_column=None,
        status_column=None,
        created_column=None,
    ),
    ContentType.COMMENT: FilterRule(
        status_column="resolved",
        status_vocabulary={"open": 0, "resolved": 1},
        resolved_filter=True,
    ),
    ContentType.SUGGESTION: FilterRule(),
    ContentType.DISCUSSION: FilterRule(),
    ContentType.MESSAGE: FilterRule(status_column=None, status_ignored=True),
}


def plan_shard_query(
    content_type: ContentType,
    match: str,
    filters: SearchFilters,
    rules: Mapping[ContentType, FilterRule] = FILTER_RULES,
) -> ShardQuery | None:
    """Translate filters into one shard's predicates.

    Args:
        content_type: Shard being planned.
        match: Escaped MATCH expression.
        filters: Caller filters.
        rules: Filter compatibility table.

    Returns:
        The shard query, or None when the filters exclude this shard.
    """
    rule = rules[content_type]
    conditions: list[Condition] = []

    if filters.doc_path is not None:
        conditions.append(Condition(rule.doc_path_column, "=", filters.doc_path))

    if filters.user_id is not None:
        if rule.user_column is None:
            return None
        conditions.append(Condition(rule.user_column, "=", filters.user_id))

    if filters.status is not None:
        if rule.status_column is None:
            if not rule.status_ignored:
                return None
        elif rule.status_vocabulary is None:
            conditions.append(Condition(rule.status_column, "=", filters.status))
        elif filters.status in rule.status_vocabulary:
            stored = rule.status_vocabulary[filters.status]
            conditions.append(Condition(rule.status_column, "=", stored))
        else:
            return None
    elif filters.resolved is not None and rule.resolved_filter:
        assert rule.status_column is not None
        conditions.append(
            Condition(rule.status_column, "=", 1 if filters.resolved else 0)
        )

    if rule.created_column is not None:
        if filters.before_ms is not None:
            conditions.append(Condition(rule.created_column, "<=", filters.before_ms))
        if filters.after_ms is not None:
            conditions.append(Condition(rule.created_column, ">=", filters.after_ms))

    return ShardQuery(content_type=content_type, match=match, conditions=tuple(conditions))


def plan_queries(match: str, filters: SearchFilters) -> list[ShardQuery]:
    """Plan every shard query a search fans out to.

    Args:
        match: Escaped MATCH expression.
        filters: Caller filters.

    Returns:
        Shard queries for shards the filters do not exclude.
    """
    plans = []
    for content_type in select_shards(filters.type):
        plan = plan_shard_query(content_type, match, filters)
        if plan is not None:
            plans.append(plan)
    return plans
