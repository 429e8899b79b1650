"""Query escaping and per-shard planning tests."""

from datetime import datetime, timezone

import pytest

from docsearch.content.schemas import ContentType
from docsearch.errors import InvalidInput
from docsearch.search.index import Condition
from docsearch.search.query import (
    EMPTY_PHRASE,
    escape_query,
    plan_queries,
    plan_shard_query,
    select_shards,
)
from docsearch.search.schemas import SearchFilters, SearchScope, build_search_request


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("token refresh", '"token refresh"'),
        ('"exact phrase"', '"exact phrase"'),
        ("auth*", '"auth"*'),
        ("(token) OR (secret)", '"token OR secret"'),
        ('say "hi', '"say ""hi"'),
        ("  padded  ", '"padded"'),
    ],
)
def test_escape_query(raw: str, expected: str) -> None:
    """User input is normalized into a single FTS5 phrase or prefix."""
    assert escape_query(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", '""', '"  "', "*", "()"])
def test_escape_query_empty_sentinel(raw: str) -> None:
    """Input with nothing searchable collapses to the empty sentinel."""
    assert escape_query(raw) == EMPTY_PHRASE


def test_select_shards_all_and_discussions() -> None:
    """All fans out to every shard; discussions include messages."""
    assert select_shards(SearchScope.ALL) == tuple(ContentType)
    assert select_shards(SearchScope.DISCUSSIONS) == (
        ContentType.DISCUSSION,
        ContentType.MESSAGE,
    )
    assert select_shards(SearchScope.COMMENTS) == (ContentType.COMMENT,)


def test_filters_accept_singular_type() -> None:
    """Singular type names are normalized to their scope."""
    assert SearchFilters(type="comment").type is SearchScope.COMMENTS
    assert SearchFilters(type="").type is SearchScope.ALL


def test_user_filter_excludes_documents() -> None:
    """Documents have no author, so a user filter drops the shard."""
    filters = SearchFilters(user_id="u1")
    assert plan_shard_query(ContentType.DOCUMENT, '"x"', filters) is None
    plan = plan_shard_query(ContentType.COMMENT, '"x"', filters)
    assert plan is not None
    assert Condition("user_id", "=", "u1") in plan.conditions


def test_comment_status_vocabulary() -> None:
    """Comment status maps to the resolved column; other values exclude comments."""
    resolved = plan_shard_query(ContentType.COMMENT, '"x"', SearchFilters(status="resolved"))
    assert resolved is not None
    assert resolved.conditions == (Condition("resolved", "=", 1),)

    assert plan_shard_query(ContentType.COMMENT, '"x"', SearchFilters(status="pending")) is None

    suggestion = plan_shard_query(
        ContentType.SUGGESTION, '"x"', SearchFilters(status="pending")
    )
    assert suggestion is not None
    assert suggestion.conditions == (Condition("status", "=", "pending"),)


def test_status_wins_over_resolved() -> None:
    """When both are set, status decides the comment predicate."""
    plan = plan_shard_query(
        ContentType.COMMENT, '"x"', SearchFilters(status="open", resolved=True)
    )
    assert plan is not None
    assert plan.conditions == (Condition("resolved", "=", 0),)


def test_status_filter_excludes_documents_but_not_messages() -> None:
    """Documents drop out under a status filter; messages ignore it."""
    plans = {p.content_type: p for p in plan_queries('"x"', SearchFilters(status="open"))}
    assert set(plans) == {
        ContentType.COMMENT,
        ContentType.SUGGESTION,
        ContentType.DISCUSSION,
        ContentType.MESSAGE,
    }
    assert plans[ContentType.MESSAGE].conditions == ()


def test_date_filters_are_inclusive_and_skip_documents() -> None:
    """before/after become inclusive range predicates on created_at."""
    after = datetime(2024, 1, 1, tzinfo=timezone.utc)
    filters = SearchFilters(after=after)
    message = plan_shard_query(ContentType.MESSAGE, '"x"', filters)
    assert message is not None
    assert message.conditions == (
        Condition("created_at", ">=", int(after.timestamp() * 1000)),
    )
    document = plan_shard_query(ContentType.DOCUMENT, '"x"', filters)
    assert document is not None
    assert document.conditions == ()


def test_naive_datetimes_are_utc() -> None:
    """A naive before value is interpreted as UTC."""
    filters = SearchFilters(before=datetime(2024, 1, 1))
    assert filters.before_ms == int(
        datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000
    )


def test_applied_filters_omit_defaults() -> None:
    """Only filters that were set are recorded, in camelCase."""
    assert SearchFilters().applied() == {}
    assert SearchFilters(type="comments", doc_path="a.md").applied() == {
        "type": "comments",
        "docPath": "a.md",
    }


@pytest.mark.parametrize(
    "kwargs",
    [
        {"query": "x", "filters": {"type": "widgets"}},
        {"query": "x", "filters": {"after": "not-a-date"}},
        {"query": "x", "offset": -1},
        {"query": "x" * 201},
    ],
)
def test_build_search_request_rejects_malformed_input(kwargs: dict) -> None:
    """Construction failures surface as InvalidInput with details."""
    with pytest.raises(InvalidInput) as exc_info:
        build_search_request(**kwargs)
    assert exc_info.value.status_code == 400
    assert exc_info.value.details["errors"]
