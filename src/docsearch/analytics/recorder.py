"""Search analytics: query and click log, popular queries, user history."""

import json
import math
import sqlite3
import time
import uuid
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

import structlog

from docsearch.analytics.schemas import (
    HourCount,
    PerformanceStats,
    PopularSearch,
    QueryCount,
    QueryType,
    SearchHistoryEntry,
    SearchMetrics,
    SlowQuery,
)
from docsearch.db import Database, escape_like

logger = structlog.get_logger()

ANALYTICS_SCHEMA = """
CREATE TABLE IF NOT EXISTS search_queries (
    id TEXT PRIMARY KEY NOT NULL,
    user_id TEXT,
    session_id TEXT,
    query TEXT NOT NULL,
    query_type TEXT NOT NULL DEFAULT 'full_text',
    filters TEXT,
    result_count INTEGER NOT NULL DEFAULT 0,
    clicked_result_id TEXT,
    clicked_result_type TEXT,
    clicked_result_rank INTEGER,
    response_time_ms INTEGER,
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_search_queries_user_id ON search_queries(user_id);
CREATE INDEX IF NOT EXISTS idx_search_queries_created_at ON search_queries(created_at);
CREATE INDEX IF NOT EXISTS idx_search_queries_result_count ON search_queries(result_count);

CREATE TABLE IF NOT EXISTS search_popular (
    id TEXT PRIMARY KEY NOT NULL,
    query TEXT NOT NULL UNIQUE,
    search_count INTEGER NOT NULL DEFAULT 1,
    avg_result_count REAL NOT NULL DEFAULT 0,
    last_searched_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_search_popular_count ON search_popular(search_count DESC);

CREATE TABLE IF NOT EXISTS search_history (
    id TEXT PRIMARY KEY NOT NULL,
    user_id TEXT NOT NULL,
    query TEXT NOT NULL,
    filters TEXT,
    result_count INTEGER NOT NULL DEFAULT 0,
    clicked_result_id TEXT,
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_search_history_user_id ON search_history(user_id, created_at DESC);
"""

DEFAULT_METRICS_DAYS = 30
DEFAULT_HISTORY_LIMIT = 100
PERCENTILES = (0.5, 0.95, 0.99)
SLOWEST_QUERY_COUNT = 10

_DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current time as a Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def nearest_rank(sorted_values: Sequence[int], percentile: float) -> int:
    """Nearest-rank percentile without interpolation.

    Args:
        sorted_values: Ascending sample.
        percentile: Fraction in [0, 1).

    Returns:
        sorted_values[floor(count * percentile)], or 0 for an empty sample.
    """
    if not sorted_values:
        return 0
    index = min(math.floor(len(sorted_values) * percentile), len(sorted_values) - 1)
    return sorted_values[index]


def _to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class SearchAnalytics:
    """Records search behavior and answers dashboard queries.

    The popular-query aggregate is maintained incrementally by a single
    upsert statement, so concurrent identical queries never lose counts.
    It is never recomputed from the log and retention sweeps leave it alone.
    """

    def __init__(
        self,
        db: Database,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize analytics recorder (call initialize() before use).

        Args:
            db: Database that holds the analytics tables.
            history_limit: Per-user cap on saved history rows.
            tz: Timezone used to bucket searches by hour of day.
            clock: Source of "now" in epoch milliseconds.
        """
        self._db = db
        self._history_limit = history_limit
        self._tz = tz
        self._clock = clock

    def initialize(self) -> None:
        """Create analytics tables and indexes."""
        self._db.executescript(ANALYTICS_SCHEMA)
        logger.info("search_analytics_initialized")

    # --- Query and click log ---

    def log_search(
        self,
        query: str,
        result_count: int,
        response_time_ms: int,
        user_id: str | None = None,
        session_id: str | None = None,
        query_type: QueryType = QueryType.FULL_TEXT,
        filters: dict[str, Any] | None = None,
        search_id: str | None = None,
    ) -> str:
        """Persist a query log row and fold it into the popular aggregate.

        Args:
            query: Query string as typed.
            result_count: Size of the merged result set.
            response_time_ms: Wall-clock time spent answering.
            user_id: Identified user, if any.
            session_id: Browser session, if any.
            query_type: How the query was issued.
            filters: Filters that were applied.
            search_id: Pre-allocated log id; generated when omitted.

        Returns:
            The log row id.
        """
        search_id = search_id or str(uuid.uuid4())
        now = self._clock()

        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO search_queries (
                    id, user_id, session_id, query, query_type, filters,
                    result_count, response_time_ms, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    search_id,
                    user_id,
                    session_id,
                    query,
                    QueryType(query_type).value,
                    json.dumps(filters) if filters else None,
                    result_count,
                    response_time_ms,
                    now,
                ),
            )
            self._upsert_popular(conn, query, result_count, now)

        logger.debug("search_logged", search_id=search_id, result_count=result_count)
        return search_id

    @staticmethod
    def _upsert_popular(
        conn: sqlite3.Connection, query: str, result_count: int, now: int
    ) -> None:
        # Right-hand sides see pre-update values, so the mean uses the old count.
        conn.execute(
            """
            INSERT INTO search_popular (
                id, query, search_count, avg_result_count, last_searched_at, updated_at
            ) VALUES (?, ?, 1, ?, ?, ?)
            ON CONFLICT(query) DO UPDATE SET
                search_count = search_popular.search_count + 1,
                avg_result_count =
                    (search_popular.avg_result_count * search_popular.search_count
                     + excluded.avg_result_count)
                    / (search_popular.search_count + 1),
                last_searched_at = excluded.last_searched_at,
                updated_at = excluded.updated_at
            """,
            (str(uuid.uuid4()), query, float(result_count), now, now),
        )

    def log_search_click(
        self, search_id: str, result_id: str, result_type: str, result_rank: int
    ) -> bool:
        """Record which result was clicked. Later clicks overwrite earlier ones.

        Args:
            search_id: Log id returned with the search response.
            result_id: Id of the clicked result.
            result_type: Content type of the clicked result.
            result_rank: 1-based position in the results.

        Returns:
            True if a log row was updated.
        """
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE search_queries
                SET clicked_result_id = ?,
                    clicked_result_type = ?,
                    clicked_result_rank = ?
                WHERE id = ?
                """,
                (result_id, result_type, result_rank, search_id),
            )
            updated = cursor.rowcount > 0

        if not updated:
            logger.warning("search_click_unknown_search", search_id=search_id)
        return updated

    # --- Dashboard ---

    def get_metrics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 10,
    ) -> SearchMetrics:
        """Aggregate search behavior over a time window.

        Args:
            start: Window start; defaults to 30 days before `end`.
            end: Window end; defaults to now.
            limit: Size of the top-query lists.

        Returns:
            Metrics for the window.
        """
        end_ms = _to_ms(end) if end else self._clock()
        start_ms = _to_ms(start) if start else end_ms - DEFAULT_METRICS_DAYS * _DAY_MS
        window = (start_ms, end_ms)

        with self._db.connect() as conn:
            summary = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COUNT(DISTINCT user_id) AS unique_users,
                    AVG(result_count) AS avg_results,
                    AVG(response_time_ms) AS avg_response,
                    COUNT(clicked_result_id) AS clicked,
                    SUM(CASE WHEN result_count = 0 THEN 1 ELSE 0 END) AS no_results
                FROM search_queries
                WHERE created_at BETWEEN ? AND ?
                """,
                window,
            ).fetchone()

            top = conn.execute(
                """
                SELECT query, COUNT(*) AS count
                FROM search_queries
                WHERE created_at BETWEEN ? AND ?
                GROUP BY query
                ORDER BY count DESC, MAX(created_at) DESC
                LIMIT ?
                """,
                (*window, limit),
            ).fetchall()

            top_no_results = conn.execute(
                """
                SELECT query, COUNT(*) AS count
                FROM search_queries
                WHERE result_count = 0 AND created_at BETWEEN ? AND ?
                GROUP BY query
                ORDER BY count DESC, MAX(created_at) DESC
                LIMIT ?
                """,
                (*window, limit),
            ).fetchall()

            by_type = conn.execute(
                """
                SELECT query_type, COUNT(*) AS count
                FROM search_queries
                WHERE created_at BETWEEN ? AND ?
                GROUP BY query_type
                """,
                window,
            ).fetchall()

            timestamps = conn.execute(
                "SELECT created_at FROM search_queries WHERE created_at BETWEEN ? AND ?",
                window,
            ).fetchall()

        total = int(summary["total"])
        hours: Counter[int] = Counter(
            datetime.fromtimestamp(row["created_at"] / 1000, tz=self._tz).hour
            for row in timestamps
        )

        return SearchMetrics(
            total_searches=total,
            unique_users=int(summary["unique_users"]),
            avg_result_count=float(summary["avg_results"] or 0),
            avg_response_time=float(summary["avg_response"] or 0),
            click_through_rate=(summary["clicked"] / total * 100) if total else 0.0,
            no_results_rate=((summary["no_results"] or 0) / total * 100) if total else 0.0,
            top_queries=[QueryCount(query=r["query"], count=r["count"]) for r in top],
            top_no_results_queries=[
                QueryCount(query=r["query"], count=r["count"]) for r in top_no_results
            ],
            searches_by_type={r["query_type"]: r["count"] for r in by_type},
            searches_by_hour=[HourCount(hour=h, count=hours.get(h, 0)) for h in range(24)],
        )

    def get_popular_searches(self, limit: int = 20) -> list[PopularSearch]:
        """Most searched queries, most recent first among equals.

        Args:
            limit: Maximum rows returned.
        """
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT query, search_count, avg_result_count, last_searched_at
                FROM search_popular
                ORDER BY search_count DESC, last_searched_at DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [PopularSearch.model_validate(dict(row)) for row in rows]

    def get_performance_stats(self) -> PerformanceStats:
        """Response time percentiles over every logged query.

        Returns:
            Nearest-rank p50/p95/p99 and the slowest individual queries.
        """
        with self._db.connect() as conn:
            times = [
                int(row["response_time_ms"])
                for row in conn.execute(
                    """
                    SELECT response_time_ms
                    FROM search_queries
                    WHERE response_time_ms IS NOT NULL
                    ORDER BY response_time_ms
                    """
                )
            ]
            slowest = conn.execute(
                """
                SELECT query, response_time_ms
                FROM search_queries
                WHERE response_time_ms IS NOT NULL
                ORDER BY response_time_ms DESC
                LIMIT ?
                """,
                (SLOWEST_QUERY_COUNT,),
            ).fetchall()

        p50, p95, p99 = (nearest_rank(times, p) for p in PERCENTILES)
        return PerformanceStats(
            p50_response_time=p50,
            p95_response_time=p95,
            p99_response_time=p99,
            slowest_queries=[
                SlowQuery(query=r["query"], response_time=r["response_time_ms"])
                for r in slowest
            ],
        )

    # --- Per-user history ---

    def save_user_search(
        self,
        user_id: str,
        query: str,
        result_count: int,
        filters: dict[str, Any] | None = None,
    ) -> str:
        """Append to a user's history, pruning it back to the cap.

        Args:
            user_id: Owner of the history.
            query: Query string.
            result_count: Number of results it returned.
            filters: Filters that were applied.

        Returns:
            Id of the new history row.
        """
        entry_id = str(uuid.uuid4())
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO search_history (
                    id, user_id, query, filters, result_count, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    user_id,
                    query,
                    json.dumps(filters) if filters else None,
                    result_count,
                    self._clock(),
                ),
            )
            pruned = conn.execute(
                """
                DELETE FROM search_history
                WHERE user_id = ?
                  AND id NOT IN (
                      SELECT id FROM search_history
                      WHERE user_id = ?
                      ORDER BY created_at DESC, rowid DESC
                      LIMIT ?
                  )
                """,
                (user_id, user_id, self._history_limit),
            ).rowcount

        if pruned:
            logger.debug("search_history_pruned", user_id=user_id, removed=pruned)
        return entry_id

    def get_user_search_history(
        self, user_id: str, limit: int = 50
    ) -> list[SearchHistoryEntry]:
        """A user's saved searches, newest first.

        Args:
            user_id: Owner of the history.
            limit: Maximum rows returned.
        """
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT id, query, filters, result_count, clicked_result_id, created_at
                FROM search_history
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()

        return [
            SearchHistoryEntry(
                id=row["id"],
                query=row["query"],
                filters=json.loads(row["filters"]) if row["filters"] else None,
                result_count=row["result_count"],
                clicked_result_id=row["clicked_result_id"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # --- Suggestion sources ---

    def popular_queries_with_prefix(
        self, prefix: str, limit: int
    ) -> list[tuple[str, int, int]]:
        """Popular queries starting with a prefix (case-insensitive).

        Returns:
            (query, search_count, last_searched_at) tuples.
        """
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT query, search_count, last_searched_at
                FROM search_popular
                WHERE query LIKE ? ESCAPE '\\'
                ORDER BY search_count DESC, last_searched_at DESC
                LIMIT ?
                """,
                (f"{escape_like(prefix)}%", limit),
            ).fetchall()
        return [(r["query"], r["search_count"], r["last_searched_at"]) for r in rows]

    def recent_user_queries(
        self, user_id: str, prefix: str, limit: int
    ) -> list[tuple[str, int, int]]:
        """A user's distinct past queries starting with a prefix.

        Returns:
            (query, times_used, last_used) tuples, most recent first.
        """
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT query, COUNT(*) AS uses, MAX(created_at) AS last_used
                FROM search_history
                WHERE user_id = ? AND query LIKE ? ESCAPE '\\'
                GROUP BY query
                ORDER BY last_used DESC
                LIMIT ?
                """,
                (user_id, f"{escape_like(prefix)}%", limit),
            ).fetchall()
        return [(r["query"], r["uses"], r["last_used"]) for r in rows]

    # --- Retention ---

    def clear_old_search_data(self, days_to_keep: int = 90) -> int:
        """Delete query log rows older than the retention window.

        Popular-query aggregates and user history are not touched.

        Args:
            days_to_keep: Age in days beyond which rows are deleted.

        Returns:
            Number of rows deleted.
        """
        cutoff = self._clock() - int(timedelta(days=days_to_keep).total_seconds() * 1000)
        with self._db.connect() as conn:
            deleted = conn.execute(
                "DELETE FROM search_queries WHERE created_at < ?", (cutoff,)
            ).rowcount

        logger.info("search_data_cleared", deleted=deleted, days_to_keep=days_to_keep)
        return deleted
