"""Search analytics: query log, popular queries, history and retention."""

from docsearch.analytics.recorder import SearchAnalytics, nearest_rank, now_ms
from docsearch.analytics.retention import run_retention_sweeper
from docsearch.analytics.schemas import (
    HourCount,
    PerformanceStats,
    PopularSearch,
    QueryCount,
    QueryType,
    SearchClick,
    SearchHistoryEntry,
    SearchMetrics,
    SlowQuery,
)

__all__ = [
    "HourCount",
    "PerformanceStats",
    "PopularSearch",
    "QueryCount",
    "QueryType",
    "SearchAnalytics",
    "SearchClick",
    "SearchHistoryEntry",
    "SearchMetrics",
    "SlowQuery",
    "nearest_rank",
    "now_ms",
    "run_retention_sweeper",
]
