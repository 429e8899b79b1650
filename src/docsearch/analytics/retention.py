"""Periodic sweep of expired query log rows."""

import asyncio

import structlog

from docsearch.analytics.recorder import SearchAnalytics

logger = structlog.get_logger()


async def run_retention_sweeper(
    analytics: SearchAnalytics,
    days_to_keep: int,
    interval_seconds: float,
) -> None:
    """Delete old query log rows on a fixed interval.

    Runs as a long-lived asyncio task. Sweeps once immediately, then every
    `interval_seconds`. A failed sweep ends the task with the error.

    Args:
        analytics: Recorder that owns the query log.
        days_to_keep: Retention window in days.
        interval_seconds: Delay between sweeps.
    """
    logger.info(
        "retention_sweeper_started",
        days_to_keep=days_to_keep,
        interval_seconds=interval_seconds,
    )
    try:
        while True:
            await asyncio.to_thread(analytics.clear_old_search_data, days_to_keep)
            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        logger.info("retention_sweeper_stopped")
        raise
    except Exception as e:
        logger.error("retention_sweep_failed", error=str(e))
        raise
