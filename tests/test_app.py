"""
Tests for application wiring: health check, error envelope and job registration.
"""

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from kantong.jobs import scheduler as scheduler_module


class TestHealth:

    async def test_health_needs_no_user(self, client):
        response = await client.get("/health", headers={"X-User-Id": ""})
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_domain_errors_use_envelope(self, client):
        response = await client.get("/wallets/nope")
        assert set(response.json()) == {"detail", "error_type"}


class TestScheduler:

    def test_register_jobs(self, monkeypatch):
        scheduler = scheduler_module.AsyncIOScheduler(timezone="UTC")
        monkeypatch.setattr(scheduler_module, "scheduler", scheduler)

        scheduler_module.register_jobs()
        jobs = {job.id: job for job in scheduler.get_jobs()}
        assert set(jobs) == {"daily_backup", "evict_idle_sessions"}
        assert isinstance(jobs["daily_backup"].trigger, CronTrigger)
        assert isinstance(jobs["evict_idle_sessions"].trigger, IntervalTrigger)

        # Registering twice keeps a single copy of each job
        scheduler_module.register_jobs()
        assert len(scheduler.get_jobs()) == 2
