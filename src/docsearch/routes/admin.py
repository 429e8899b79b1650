"""Admin dashboard endpoints for search analytics and index upkeep."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from fastapi import APIRouter, Query, Request
from pydantic import Field

from docsearch.analytics.schemas import PerformanceStats, PopularSearch, SearchMetrics
from docsearch.content.schemas import CamelModel
from docsearch.search.schemas import IndexStats, ReindexCounts

if TYPE_CHECKING:
    from docsearch.analytics.recorder import SearchAnalytics
    from docsearch.search.maintainer import IndexMaintainer

logger = structlog.get_logger()

router = APIRouter(prefix="/admin/search", tags=["admin"])


class CleanupRequest(CamelModel):
    """Request body for sweeping old query logs."""

    days_to_keep: int = Field(default=90, ge=1)


class CleanupResponse(CamelModel):
    """Number of query log rows deleted."""

    deleted: int
    days_to_keep: int


@router.get("/metrics", response_model=SearchMetrics)
async def metrics(
    request: Request,
    days: int = Query(default=30, ge=1, le=365),
    limit: int = Query(default=10, ge=1, le=100),
) -> SearchMetrics:
    """Aggregate search behavior over the last `days` days.

    Args:
        request: FastAPI request (provides access to app state).
        days: Window length in days.
        limit: Size of the top-query lists.
    """
    analytics: SearchAnalytics = request.app.state.analytics
    end = datetime.now(timezone.utc)
    return await asyncio.to_thread(
        analytics.get_metrics, end - timedelta(days=days), end, limit
    )


@router.get("/popular", response_model=list[PopularSearch])
async def popular(
    request: Request,
    limit: int = Query(default=20, ge=1, le=100),
) -> list[PopularSearch]:
    """Most searched queries."""
    analytics: SearchAnalytics = request.app.state.analytics
    return await asyncio.to_thread(analytics.get_popular_searches, limit)


@router.get("/performance", response_model=PerformanceStats)
async def performance(request: Request) -> PerformanceStats:
    """Response time percentiles and the slowest queries."""
    analytics: SearchAnalytics = request.app.state.analytics
    return await asyncio.to_thread(analytics.get_performance_stats)


@router.get("/index-stats", response_model=IndexStats)
async def index_stats(request: Request) -> IndexStats:
    """Row counts per shard."""
    maintainer: IndexMaintainer = request.app.state.maintainer
    return await asyncio.to_thread(maintainer.get_index_stats)


@router.post("/reindex", response_model=ReindexCounts)
async def reindex(request: Request) -> ReindexCounts:
    """Rebuild every shard from the canonical records.

    Searches served while this runs may see a partially filled index.

    Returns:
        Rows written per shard.
    """
    maintainer: IndexMaintainer = request.app.state.maintainer
    logger.info("admin_reindex_requested")
    return await asyncio.to_thread(maintainer.rebuild_all)


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup(request: Request, body: CleanupRequest | None = None) -> CleanupResponse:
    """Delete query log rows older than the retention window.

    Popular queries and user history are kept.

    Args:
        request: FastAPI request (provides access to app state).
        body: Retention window; defaults to 90 days.
    """
    days = body.days_to_keep if body else CleanupRequest().days_to_keep
    analytics: SearchAnalytics = request.app.state.analytics
    deleted = await asyncio.to_thread(analytics.clear_old_search_data, days)
    return CleanupResponse(deleted=deleted, days_to_keep=days)
