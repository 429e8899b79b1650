"""Federated query execution across every shard."""

import asyncio
import time
import uuid
from collections.abc import Callable
from functools import partial
from typing import Any

import structlog

from docsearch.analytics.recorder import SearchAnalytics
from docsearch.errors import SearchExecutionError
from docsearch.search.index import SearchIndex
from docsearch.search.query import EMPTY_PHRASE, escape_query, plan_queries
from docsearch.search.ranking import (
    DEFAULT_AUTHOR_LIMIT,
    DEFAULT_SCORE_EPSILON,
    compute_facets,
    merge_and_rank,
    paginate,
)
from docsearch.search.schemas import SearchFacets, SearchRequest, SearchResponse

logger = structlog.get_logger()


class SearchEngine:
    """Answers search requests by fanning out to shards and merging.

    Shard queries run concurrently on worker threads. The first shard
    failure fails the whole call. After a successful search the query is
    reported to analytics in the background; those writes never delay or
    fail the response.
    """

    def __init__(
        self,
        index: SearchIndex,
        analytics: SearchAnalytics,
        score_epsilon: float = DEFAULT_SCORE_EPSILON,
        author_limit: int = DEFAULT_AUTHOR_LIMIT,
        max_page_size: int = 100,
    ) -> None:
        """Initialize search engine.

        Args:
            index: Index to query.
            analytics: Recorder that receives query logs and user history.
            score_epsilon: Score gap treated as a tie when ranking.
            author_limit: Number of authors reported in facets.
            max_page_size: Hard cap on the page size.
        """
        self._index = index
        self._analytics = analytics
        self._epsilon = score_epsilon
        self._author_limit = author_limit
        self._max_page_size = max_page_size
        self._pending: set[asyncio.Task[Any]] = set()

    async def execute(self, request: SearchRequest) -> SearchResponse:
        """Run one search.

        Args:
            request: Validated search request.

        Returns:
            One page of merged results with totals and facets.

        Raises:
            SearchExecutionError: If any shard query fails.
        """
        match = escape_query(request.query)
        if match == EMPTY_PHRASE:
            return SearchResponse(
                query=request.query,
                results=[],
                total=0,
                facets=SearchFacets(),
                limit=max(1, min(request.limit, self._max_page_size)),
                offset=request.offset,
            )

        start = time.perf_counter()
        plans = plan_queries(match, request.filters)
        try:
            shard_results = await asyncio.gather(
                *(asyncio.to_thread(self._index.search_shard, plan) for plan in plans)
            )
        except Exception as e:
            logger.error(
                "search_failed",
                query=request.query,
                match=match,
                error=str(e),
                exc_info=True,
            )
            raise SearchExecutionError() from e

        merged = merge_and_rank(shard_results, self._epsilon)
        facets = compute_facets(merged, self._author_limit)
        page, limit = paginate(merged, request.limit, request.offset, self._max_page_size)
        response_time_ms = int((time.perf_counter() - start) * 1000)

        search_id = str(uuid.uuid4())
        filters = request.filters.applied()
        actor = request.actor
        self._spawn(
            "log_search",
            self._analytics.log_search,
            query=request.query,
            result_count=len(merged),
            response_time_ms=response_time_ms,
            user_id=actor.user_id,
            session_id=actor.session_id,
            filters=filters,
            search_id=search_id,
        )
        if actor.user_id:
            self._spawn(
                "save_user_search",
                self._analytics.save_user_search,
                user_id=actor.user_id,
                query=request.query,
                result_count=len(merged),
                filters=filters,
            )

        logger.debug(
            "search_executed",
            shards=len(plans),
            total=len(merged),
            response_time_ms=response_time_ms,
        )
        return SearchResponse(
            query=request.query,
            results=page,
            total=len(merged),
            facets=facets,
            limit=limit,
            offset=request.offset,
            search_id=search_id,
        )

    def _spawn(self, name: str, func: Callable[..., Any], **kwargs: Any) -> None:
        task = asyncio.create_task(asyncio.to_thread(func, **kwargs))
        self._pending.add(task)
        task.add_done_callback(partial(self._on_background_done, name))

    def _on_background_done(self, name: str, task: "asyncio.Task[Any]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("search_analytics_write_failed", task=name, error=str(error))

    @property
    def pending(self) -> int:
        """Number of background analytics writes still running."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every pending background analytics write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
