"""Federated full-text search over FTS5 shards."""

from docsearch.search.engine import SearchEngine
from docsearch.search.index import SHARDS, SearchIndex, ShardQuery
from docsearch.search.maintainer import IndexMaintainer
from docsearch.search.query import EMPTY_PHRASE, escape_query, plan_queries
from docsearch.search.schemas import (
    IndexStats,
    ReindexCounts,
    SearchActor,
    SearchFacets,
    SearchFilters,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SearchScope,
    build_search_request,
)

__all__ = [
    "EMPTY_PHRASE",
    "SHARDS",
    "IndexMaintainer",
    "IndexStats",
    "ReindexCounts",
    "SearchActor",
    "SearchEngine",
    "SearchFacets",
    "SearchFilters",
    "SearchIndex",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "SearchScope",
    "ShardQuery",
    "build_search_request",
    "escape_query",
    "plan_queries",
]
