"""Pydantic schemas for search analytics and the admin dashboard."""

from enum import Enum
from typing import Any

from pydantic import Field

from docsearch.content.schemas import CamelModel


class QueryType(str, Enum):
    """How a logged query was issued."""

    FULL_TEXT = "full_text"
    AUTOCOMPLETE = "autocomplete"
    FILTER = "filter"


class QueryCount(CamelModel):
    """Query string with the number of times it was searched."""

    query: str
    count: int


class HourCount(CamelModel):
    """Searches issued during one hour of the day (0-23)."""

    hour: int = Field(ge=0, le=23)
    count: int


class SearchMetrics(CamelModel):
    """Aggregate search behavior over a time window.

    Attributes:
        total_searches: Logged queries in the window.
        unique_users: Distinct identified users in the window.
        avg_result_count: Mean result count.
        avg_response_time: Mean response time in milliseconds.
        click_through_rate: Percentage of queries with a reported click.
        no_results_rate: Percentage of queries that returned nothing.
        top_queries: Most frequent queries.
        top_no_results_queries: Most frequent queries that returned nothing.
        searches_by_type: Count per query type.
        searches_by_hour: Count per hour of day, all 24 hours present.
    """

    total_searches: int
    unique_users: int
    avg_result_count: float
    avg_response_time: float
    click_through_rate: float
    no_results_rate: float
    top_queries: list[QueryCount]
    top_no_results_queries: list[QueryCount]
    searches_by_type: dict[str, int]
    searches_by_hour: list[HourCount]


class PopularSearch(CamelModel):
    """Row of the popular-query aggregate."""

    query: str
    search_count: int
    avg_result_count: float
    last_searched_at: int


class SlowQuery(CamelModel):
    """A single slow query from the log."""

    query: str
    response_time: int


class PerformanceStats(CamelModel):
    """Nearest-rank response time percentiles and the slowest queries."""

    p50_response_time: int
    p95_response_time: int
    p99_response_time: int
    slowest_queries: list[SlowQuery]


class SearchHistoryEntry(CamelModel):
    """One saved search in a user's history."""

    id: str
    query: str
    filters: dict[str, Any] | None = None
    result_count: int
    clicked_result_id: str | None = None
    created_at: int


class SearchClick(CamelModel):
    """Click on a search result, reported against the search log id."""

    search_id: str = Field(min_length=1)
    result_id: str = Field(min_length=1)
    result_type: str = Field(min_length=1)
    result_rank: int = Field(ge=1, description="1-based position in results")
