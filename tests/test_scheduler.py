"""Tests for background maintenance jobs."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from snapmeal_api.core.scheduler import (
    get_scheduler,
    run_cache_purge,
    run_image_cleanup,
    start_scheduler,
    stop_scheduler,
)


class TestScheduler:
    @pytest.mark.asyncio
    async def test_registers_enabled_jobs(self, store, cache, settings):
        settings = settings.model_copy(
            update={"image_cleanup_enabled": True, "analysis_cache_sweep_seconds": 60}
        )

        scheduler = start_scheduler(store, cache, settings)
        try:
            assert get_scheduler() is scheduler
            assert {job.id for job in scheduler.get_jobs()} == {"image_cleanup", "cache_purge"}
        finally:
            stop_scheduler()

        assert get_scheduler() is None

    def test_disabled_jobs_start_nothing(self, store, cache, settings):
        assert start_scheduler(store, cache, settings) is None


class TestJobs:
    @pytest.mark.asyncio
    async def test_cleanup_job_reports_removed(self):
        store = MagicMock()
        store.cleanup_expired = AsyncMock(return_value=3)

        assert await run_image_cleanup(store, 30) == 3
        store.cleanup_expired.assert_awaited_once_with(30)

    @pytest.mark.asyncio
    async def test_cleanup_job_survives_errors(self):
        """A failing sweep is logged and retried on the next run."""
        store = MagicMock()
        store.cleanup_expired = AsyncMock(side_effect=RuntimeError("mongo down"))

        assert await run_image_cleanup(store, 30) == 0

    def test_cache_purge_job(self):
        cache = MagicMock()
        cache.purge_expired.return_value = 2

        assert run_cache_purge(cache) == 2
