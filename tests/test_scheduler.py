"""Tests for the AutomationScheduler wrapper around APScheduler."""
from datetime import timedelta

import pytest

from league_sync.core.scheduler import AutomationScheduler


async def noop():
    return None


class TestAutomationScheduler:

    @pytest.mark.asyncio
    async def test_interval_job_lifecycle(self):
        scheduler = AutomationScheduler(timezone="UTC")

        scheduler.add_interval_job("sync", noop, timedelta(minutes=30), name="Sync")

        assert scheduler.running
        assert scheduler.has_job("sync")
        assert scheduler.next_run_time("sync") is not None
        assert [job['id'] for job in scheduler.get_jobs_info()] == ["sync"]

        assert scheduler.remove_job("sync") is True
        assert scheduler.remove_job("sync") is False
        assert not scheduler.has_job("sync")

        scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_adding_same_id_replaces_job(self):
        scheduler = AutomationScheduler(timezone="UTC")
        scheduler.add_interval_job("sync", noop, timedelta(minutes=30))
        scheduler.add_interval_job("sync", noop, timedelta(minutes=5))

        assert len(scheduler.get_jobs_info()) == 1
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_cron_job(self):
        scheduler = AutomationScheduler(timezone="UTC")
        scheduler.add_cron_job("audit", noop, hour=4, minute=0)

        assert scheduler.has_job("audit")
        scheduler.stop()

    def test_stopped_scheduler_reports_nothing(self):
        scheduler = AutomationScheduler(timezone="UTC")

        assert scheduler.get_jobs_info() == []
        assert scheduler.next_run_time("sync") is None
        assert scheduler.remove_job("sync") is False
        scheduler.stop()
