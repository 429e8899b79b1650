"""Query engine tests: fan-out, filters, facets, pagination, side effects."""

import sqlite3
from datetime import datetime, timezone

import pytest
from conftest import BASE_MS

from docsearch.analytics import SearchAnalytics
from docsearch.errors import SearchExecutionError
from docsearch.search import SearchEngine, SearchIndex, SearchRequest, build_search_request


def _request(query: str = "token", **kwargs: object) -> SearchRequest:
    return build_search_request(query=query, **kwargs)


@pytest.mark.asyncio
async def test_search_all_types(engine: SearchEngine, seeded_index: SearchIndex) -> None:
    """A query fans out to every shard and merges the results."""
    response = await engine.execute(_request())
    await engine.drain()

    assert response.total == 7
    assert len(response.results) == 7
    assert response.facets.types == {
        "document": 2,
        "comment": 2,
        "suggestion": 1,
        "discussion": 1,
        "message": 1,
    }
    assert sum(response.facets.types.values()) == response.total
    assert response.facets.statuses == {"open": 2, "resolved": 1, "pending": 1}
    assert {(a.id, a.name, a.count) for a in response.facets.authors} == {
        ("u1", "Alice", 2),
        ("u2", "Bob", 2),
        ("u3", "Carol", 1),
    }
    assert response.search_id is not None


@pytest.mark.asyncio
async def test_empty_query_short_circuits(
    engine: SearchEngine, seeded_index: SearchIndex, analytics: SearchAnalytics
) -> None:
    """Blank input returns nothing and is not logged."""
    response = await engine.execute(_request("   "))
    await engine.drain()

    assert response.total == 0
    assert response.results == []
    assert response.search_id is None
    assert analytics.get_popular_searches() == []


@pytest.mark.parametrize(
    ("filters", "expected"),
    [
        ({"type": "comments"}, {"c1", "c2"}),
        ({"type": "comment"}, {"c1", "c2"}),
        ({"type": "discussions"}, {"d1", "m1"}),
        ({"user_id": "u1"}, {"c1", "s1"}),
        ({"status": "open"}, {"c1", "d1", "m1"}),
        ({"status": "resolved"}, {"c2", "m1"}),
        ({"status": "pending"}, {"s1", "m1"}),
        ({"type": "comments", "resolved": True}, {"c2"}),
        (
            {"doc_path": "guides/auth.md"},
            {"guides/auth.md", "c1", "s1", "d1", "m1"},
        ),
    ],
)
@pytest.mark.asyncio
async def test_filters(
    engine: SearchEngine,
    seeded_index: SearchIndex,
    filters: dict,
    expected: set[str],
) -> None:
    """Each filter applies per type according to its attributes."""
    response = await engine.execute(_request(filters=filters))
    await engine.drain()

    assert {r.id for r in response.results} == expected
    assert response.total == len(expected)


@pytest.mark.asyncio
async def test_date_filter_keeps_documents(
    engine: SearchEngine, seeded_index: SearchIndex
) -> None:
    """Date bounds are inclusive and never exclude documents."""
    after = datetime.fromtimestamp((BASE_MS + 3000) / 1000, tz=timezone.utc)
    response = await engine.execute(_request(filters={"after": after}))
    await engine.drain()

    assert {r.id for r in response.results} == {
        "guides/auth.md",
        "reference/api.md",
        "s1",
        "d1",
        "m1",
    }


@pytest.mark.asyncio
async def test_date_bounds_include_the_boundary_instant(
    engine: SearchEngine, seeded_index: SearchIndex
) -> None:
    """A record created exactly on before or after is kept."""
    instant = datetime.fromtimestamp((BASE_MS + 1000) / 1000, tz=timezone.utc)
    for bound in ("before", "after"):
        response = await engine.execute(
            _request(filters={bound: instant, "type": "comments"})
        )
        assert "c1" in {r.id for r in response.results}

    response = await engine.execute(
        _request(filters={"before": instant, "after": instant, "type": "comments"})
    )
    await engine.drain()
    assert [r.id for r in response.results] == ["c1"]


@pytest.mark.asyncio
async def test_pagination_reports_full_total(
    engine: SearchEngine, seeded_index: SearchIndex
) -> None:
    """Facets and total describe the whole set, results only the page."""
    response = await engine.execute(_request(limit=3, offset=5))
    await engine.drain()

    assert response.total == 7
    assert len(response.results) == 2
    assert sum(response.facets.types.values()) == 7
    assert (response.limit, response.offset) == (3, 5)


@pytest.mark.asyncio
async def test_limit_is_clamped(engine: SearchEngine, seeded_index: SearchIndex) -> None:
    """Page size never exceeds the configured maximum."""
    response = await engine.execute(_request(limit=1000))
    await engine.drain()
    assert response.limit == 100


@pytest.mark.asyncio
async def test_results_ordered_by_score_then_recency(
    engine: SearchEngine, seeded_index: SearchIndex
) -> None:
    """Adjacent results respect the score-then-recency ordering."""
    response = await engine.execute(_request())
    await engine.drain()

    for a, b in zip(response.results, response.results[1:]):
        if abs(a.score - b.score) > 0.1:
            assert a.score > b.score
        else:
            assert (a.created_at or 0) >= (b.created_at or 0)


@pytest.mark.asyncio
async def test_search_is_logged_in_background(
    engine: SearchEngine, seeded_index: SearchIndex, analytics: SearchAnalytics
) -> None:
    """A successful search logs the query and the user's history."""
    response = await engine.execute(
        _request(actor={"user_id": "u1", "session_id": "s-1"}, filters={"type": "comments"})
    )
    await engine.drain()

    popular = analytics.get_popular_searches()
    assert [(p.query, p.search_count, p.avg_result_count) for p in popular] == [
        ("token", 1, 2.0)
    ]
    history = analytics.get_user_search_history("u1")
    assert [(h.query, h.result_count, h.filters) for h in history] == [
        ("token", 2, {"type": "comments"})
    ]
    assert analytics.log_search_click(response.search_id, "c1", "comment", 1)


@pytest.mark.asyncio
async def test_anonymous_search_saves_no_history(
    engine: SearchEngine, seeded_index: SearchIndex, analytics: SearchAnalytics
) -> None:
    """Without a user id only the query log is written."""
    await engine.execute(_request())
    await engine.drain()

    assert analytics.get_popular_searches()[0].search_count == 1
    assert analytics.get_user_search_history("u1") == []


@pytest.mark.asyncio
async def test_analytics_failure_does_not_fail_search(
    engine: SearchEngine,
    seeded_index: SearchIndex,
    analytics: SearchAnalytics,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Background write errors are logged, never surfaced."""

    def broken(**kwargs: object) -> str:
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(analytics, "log_search", broken)
    response = await engine.execute(_request())
    await engine.drain()

    assert response.total == 7
    assert engine.pending == 0


@pytest.mark.asyncio
async def test_shard_failure_is_opaque(
    engine: SearchEngine,
    seeded_index: SearchIndex,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Any shard error fails the whole search with a generic message."""

    def broken(query: object) -> list:
        raise sqlite3.OperationalError("fts5: syntax error near secret_table")

    monkeypatch.setattr(seeded_index, "search_shard", broken)
    with pytest.raises(SearchExecutionError) as exc_info:
        await engine.execute(_request())

    assert exc_info.value.message == "Search failed"
    assert "secret_table" not in str(exc_info.value)
