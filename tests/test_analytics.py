"""Analytics recorder tests: logs, popular queries, metrics and history."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from zoneinfo import ZoneInfo

from conftest import BASE_MS, FakeClock

from docsearch.analytics import SearchAnalytics, nearest_rank
from docsearch.db import Database

_DAY_MS = 24 * 60 * 60 * 1000


def _clicked(database: Database, search_id: str) -> tuple:
    with database.connect() as conn:
        row = conn.execute(
            "SELECT clicked_result_id, clicked_result_type, clicked_result_rank"
            " FROM search_queries WHERE id = ?",
            (search_id,),
        ).fetchone()
    return tuple(row)


def test_popular_query_incremental_mean(analytics: SearchAnalytics) -> None:
    """Repeated queries bump the count and average the result counts."""
    analytics.log_search(query="token", result_count=4, response_time_ms=5)
    analytics.log_search(query="token", result_count=8, response_time_ms=5)
    analytics.log_search(query="other", result_count=1, response_time_ms=5)

    popular = analytics.get_popular_searches()

    assert [(p.query, p.search_count) for p in popular] == [("token", 2), ("other", 1)]
    assert popular[0].avg_result_count == 6.0


def test_concurrent_identical_queries_are_all_counted(analytics: SearchAnalytics) -> None:
    """The popular upsert is atomic under concurrency."""
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(
            pool.map(
                lambda _: analytics.log_search(
                    query="race", result_count=2, response_time_ms=1
                ),
                range(20),
            )
        )

    popular = analytics.get_popular_searches()
    assert popular[0].search_count == 20
    assert popular[0].avg_result_count == 2.0


def test_log_search_uses_given_id(analytics: SearchAnalytics) -> None:
    """A pre-allocated search id is used as the log row id."""
    assert analytics.log_search(
        query="q", result_count=0, response_time_ms=1, search_id="abc"
    ) == "abc"


def test_click_overwrites_previous_click(
    analytics: SearchAnalytics, database: Database
) -> None:
    """Only the last reported click is kept."""
    search_id = analytics.log_search(query="token", result_count=3, response_time_ms=2)

    assert analytics.log_search_click(search_id, "c1", "comment", 1)
    assert analytics.log_search_click(search_id, "d1", "discussion", 3)

    assert _clicked(database, search_id) == ("d1", "discussion", 3)


def test_click_for_unknown_search(analytics: SearchAnalytics) -> None:
    """Clicks against an unknown search id update nothing."""
    assert analytics.log_search_click("nope", "c1", "comment", 1) is False


def test_metrics_over_window(analytics: SearchAnalytics, clock: FakeClock) -> None:
    """Metrics aggregate rates, top queries and hour buckets."""
    first = analytics.log_search(
        query="token", result_count=4, response_time_ms=10, user_id="u1"
    )
    analytics.log_search(query="missing", result_count=0, response_time_ms=30, user_id="u2")
    analytics.log_search(query="token", result_count=2, response_time_ms=20)
    analytics.log_search_click(first, "c1", "comment", 1)

    metrics = analytics.get_metrics()

    assert metrics.total_searches == 3
    assert metrics.unique_users == 2
    assert metrics.avg_result_count == 2.0
    assert metrics.avg_response_time == 20.0
    assert round(metrics.click_through_rate, 2) == 33.33
    assert round(metrics.no_results_rate, 2) == 33.33
    assert [(q.query, q.count) for q in metrics.top_queries] == [
        ("token", 2),
        ("missing", 1),
    ]
    assert [q.query for q in metrics.top_no_results_queries] == ["missing"]
    assert metrics.searches_by_type == {"full_text": 3}
    assert len(metrics.searches_by_hour) == 24
    # BASE_MS is 22:13 UTC.
    assert metrics.searches_by_hour[22].count == 3
    assert sum(h.count for h in metrics.searches_by_hour) == 3


def test_metrics_default_window_is_thirty_days(
    analytics: SearchAnalytics, clock: FakeClock
) -> None:
    """Rows older than the default window are not counted."""
    analytics.log_search(query="old", result_count=1, response_time_ms=1)
    clock.advance(31 * _DAY_MS)
    analytics.log_search(query="new", result_count=1, response_time_ms=1)

    metrics = analytics.get_metrics()

    assert metrics.total_searches == 1
    assert metrics.top_queries[0].query == "new"


def test_metrics_empty_window(analytics: SearchAnalytics) -> None:
    """An empty log yields zero rates, not errors."""
    metrics = analytics.get_metrics()
    assert metrics.total_searches == 0
    assert metrics.click_through_rate == 0.0
    assert metrics.no_results_rate == 0.0
    assert all(h.count == 0 for h in metrics.searches_by_hour)


def test_hour_buckets_follow_configured_timezone(
    database: Database, clock: FakeClock
) -> None:
    """Hour-of-day uses the recorder's reference timezone."""
    tokyo = SearchAnalytics(database, tz=ZoneInfo("Asia/Tokyo"), clock=clock)
    tokyo.initialize()
    tokyo.log_search(query="q", result_count=1, response_time_ms=1)

    metrics = tokyo.get_metrics()

    # 22:13 UTC is 07:13 in Tokyo.
    assert metrics.searches_by_hour[7].count == 1


def test_performance_percentiles_nearest_rank(analytics: SearchAnalytics) -> None:
    """Percentiles index the sorted sample without interpolation."""
    for ms in range(100, 0, -1):
        analytics.log_search(query=f"q{ms}", result_count=1, response_time_ms=ms)

    stats = analytics.get_performance_stats()

    assert (stats.p50_response_time, stats.p95_response_time, stats.p99_response_time) == (
        51,
        96,
        100,
    )
    assert len(stats.slowest_queries) == 10
    assert stats.slowest_queries[0].response_time == 100
    assert stats.slowest_queries[0].query == "q100"


def test_performance_stats_empty(analytics: SearchAnalytics) -> None:
    """No logged queries means zero percentiles."""
    stats = analytics.get_performance_stats()
    assert stats.p50_response_time == 0
    assert stats.slowest_queries == []


def test_nearest_rank() -> None:
    """floor(count * p) picks the element; small samples clamp to the end."""
    assert nearest_rank([], 0.5) == 0
    assert nearest_rank([7], 0.99) == 7
    assert nearest_rank([1, 2, 3, 4], 0.5) == 3


def test_history_is_capped_per_user(database: Database, clock: FakeClock) -> None:
    """Saving beyond the cap prunes the oldest rows of that user only."""
    analytics = SearchAnalytics(database, history_limit=3, clock=clock)
    analytics.initialize()
    for i in range(5):
        analytics.save_user_search("u1", f"q{i}", result_count=i)
        clock.advance(1)
    analytics.save_user_search("u2", "other", result_count=0)

    history = analytics.get_user_search_history("u1")

    assert [h.query for h in history] == ["q4", "q3", "q2"]
    assert [h.query for h in analytics.get_user_search_history("u2")] == ["other"]


def test_history_cap_with_identical_timestamps(database: Database, clock: FakeClock) -> None:
    """Rows saved in the same millisecond are pruned oldest-inserted first."""
    analytics = SearchAnalytics(database, history_limit=2, clock=clock)
    analytics.initialize()
    for i in range(4):
        analytics.save_user_search("u1", f"q{i}", result_count=0)

    assert [h.query for h in analytics.get_user_search_history("u1")] == ["q3", "q2"]


def test_history_keeps_filters(analytics: SearchAnalytics) -> None:
    """Filters round-trip through the history table."""
    analytics.save_user_search("u1", "token", result_count=2, filters={"type": "comments"})

    entry = analytics.get_user_search_history("u1", limit=1)[0]

    assert entry.filters == {"type": "comments"}
    assert entry.result_count == 2
    assert entry.created_at == BASE_MS


def test_clear_old_data_only_touches_query_log(
    analytics: SearchAnalytics, clock: FakeClock, database: Database
) -> None:
    """Retention deletes old log rows but keeps popular queries and history."""
    analytics.log_search(query="ancient", result_count=1, response_time_ms=1)
    analytics.save_user_search("u1", "ancient", result_count=1)
    clock.advance(int(timedelta(days=100).total_seconds() * 1000))
    analytics.log_search(query="fresh", result_count=1, response_time_ms=1)

    deleted = analytics.clear_old_search_data(days_to_keep=90)

    assert deleted == 1
    with database.connect() as conn:
        remaining = [r[0] for r in conn.execute("SELECT query FROM search_queries")]
    assert remaining == ["fresh"]
    assert {p.query for p in analytics.get_popular_searches()} == {"ancient", "fresh"}
    assert [h.query for h in analytics.get_user_search_history("u1")] == ["ancient"]


def test_prefix_lookups_for_suggestions(analytics: SearchAnalytics) -> None:
    """Popular and recent lookups match prefixes case-insensitively."""
    analytics.log_search(query="Token rotation", result_count=1, response_time_ms=1)
    analytics.log_search(query="Token rotation", result_count=1, response_time_ms=1)
    analytics.log_search(query="tokenizer", result_count=1, response_time_ms=1)
    analytics.log_search(query="50% off", result_count=1, response_time_ms=1)
    analytics.save_user_search("u1", "token audit", result_count=1)

    popular = analytics.popular_queries_with_prefix("tok", 10)
    assert [(q, n) for q, n, _ in popular] == [("Token rotation", 2), ("tokenizer", 1)]
    assert analytics.popular_queries_with_prefix("50%", 10)[0][0] == "50% off"
    assert analytics.popular_queries_with_prefix("5_", 10) == []
    assert [q for q, _, _ in analytics.recent_user_queries("u1", "TOK", 10)] == [
        "token audit"
    ]
    assert analytics.recent_user_queries("u2", "tok", 10) == []
