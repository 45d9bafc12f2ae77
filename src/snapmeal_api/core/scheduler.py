"""Background task scheduler for image retention and cache maintenance."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from snapmeal_api.core.config import Settings, get_settings
from snapmeal_api.services.analysis_cache import AnalysisCache
from snapmeal_api.services.image_store import DerivativeStore

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def run_image_cleanup(store: DerivativeStore, retention_days: int) -> int:
    """
    Run the image retention sweep as a scheduled task.

    This is called by APScheduler on the configured schedule.
    """
    logger.info(f"Starting scheduled image cleanup (older than {retention_days} days)...")
    try:
        removed = await store.cleanup_expired(retention_days)
    except Exception as e:
        logger.exception(f"Scheduled image cleanup error: {e}")
        return 0

    logger.info(f"Scheduled image cleanup completed: {removed} images removed")
    return removed


def run_cache_purge(cache: AnalysisCache) -> int:
    """Drop expired analysis cache entries."""
    removed = cache.purge_expired()
    if removed:
        logger.info(f"Cache purge removed {removed} expired entries")
    return removed


def start_scheduler(
    store: DerivativeStore,
    cache: AnalysisCache,
    settings: Settings | None = None,
) -> AsyncIOScheduler | None:
    """
    Start the background scheduler if any job is enabled.

    Args:
        store: Image store swept by the retention job
        cache: Analysis cache purged periodically
        settings: Optional settings instance

    Returns:
        Scheduler instance if started, None otherwise
    """
    global _scheduler

    settings = settings or get_settings()
    sweep_cache = settings.analysis_cache_sweep_seconds > 0

    if not settings.image_cleanup_enabled and not sweep_cache:
        logger.info("Background jobs are disabled")
        return None

    _scheduler = AsyncIOScheduler()

    if settings.image_cleanup_enabled:
        _scheduler.add_job(
            run_image_cleanup,
            trigger=CronTrigger(hour=settings.image_cleanup_hour, minute=0),
            args=[store, settings.image_retention_days],
            id="image_cleanup",
            name="Daily image retention sweep",
            replace_existing=True,
        )
        logger.info(
            f"Image cleanup scheduled daily at {settings.image_cleanup_hour:02d}:00 "
            f"(retention {settings.image_retention_days} days)"
        )

    if sweep_cache:
        _scheduler.add_job(
            run_cache_purge,
            trigger=IntervalTrigger(seconds=settings.analysis_cache_sweep_seconds),
            args=[cache],
            id="cache_purge",
            name="Analysis cache purge",
            replace_existing=True,
        )
        logger.info(f"Cache purge scheduled every {settings.analysis_cache_sweep_seconds}s")

    _scheduler.start()
    logger.info("Scheduler started")

    return _scheduler


def stop_scheduler() -> None:
    """Stop the background scheduler if running."""
    global _scheduler

    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    _scheduler = None


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler
