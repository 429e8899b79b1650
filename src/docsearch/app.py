"""FastAPI application factory and lifespan management."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from docsearch.analytics import SearchAnalytics, run_retention_sweeper
from docsearch.config import Settings
from docsearch.content import SqliteContentSource
from docsearch.db import Database
from docsearch.exception_handlers import register_exception_handlers
from docsearch.middleware.logging import RequestLoggingMiddleware
from docsearch.routes import admin, health, index, search
from docsearch.search import IndexMaintainer, SearchEngine, SearchIndex
from docsearch.suggestions import SuggestionEngine

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events.

    Opens the database, creates shards and analytics tables, wires the
    index maintainer, query engine and suggestion engine, and optionally
    rebuilds the index and starts the retention sweeper. On shutdown the
    sweeper is cancelled and pending analytics writes are drained.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    logger.info("api_startup", host=settings.host, port=settings.port)

    database = Database(settings.database_path)
    database.initialize()

    source = SqliteContentSource(database)
    source.initialize()

    search_index = SearchIndex(database)
    search_index.initialize()

    analytics = SearchAnalytics(
        database,
        history_limit=settings.history_limit,
        tz=settings.tzinfo,
    )
    analytics.initialize()

    maintainer = IndexMaintainer(search_index, source)
    engine = SearchEngine(
        search_index,
        analytics,
        score_epsilon=settings.score_tie_epsilon,
        author_limit=settings.facet_author_limit,
        max_page_size=settings.max_page_size,
    )

    app.state.database = database
    app.state.search_index = search_index
    app.state.analytics = analytics
    app.state.maintainer = maintainer
    app.state.search_engine = engine
    app.state.suggestion_engine = SuggestionEngine(analytics, search_index, source)

    if settings.rebuild_on_startup:
        counts = await asyncio.to_thread(maintainer.rebuild_all)
        logger.info("search_index_ready", **counts.model_dump())

    retention_task: asyncio.Task[None] | None = None
    if settings.retention_interval_seconds > 0:
        retention_task = asyncio.create_task(
            run_retention_sweeper(
                analytics,
                settings.retention_days,
                settings.retention_interval_seconds,
            )
        )

    try:
        yield
    finally:
        if retention_task is not None:
            retention_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await retention_task

        try:
            await asyncio.wait_for(engine.drain(), timeout=settings.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("analytics_drain_timeout", pending=engine.pending)

        logger.info("api_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Factory function to create configured FastAPI application.

    Args:
        settings: Configuration instance. Creates default if None.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Document Review Search API",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/v1/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/api/v1/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    register_exception_handlers(app)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(search.router, prefix="/api/v1")
    app.include_router(index.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
