"""
Tests for sync health classification and the asyncio sync scheduler.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest

from pharmasync.scheduler.health import (
    AGING,
    HEALTHY,
    NEVER_SYNCED,
    NO_DATA,
    STALE,
    UNHEALTHY,
    calculate_sync_health,
)
from pharmasync.scheduler.sync_scheduler import ScheduledJob, daily_at, every_minutes
from pharmasync.services import build_services
from tests.fakes import make_item

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def completed(hours_ago):
    return {"status": "completed", "completed_at": (NOW - timedelta(hours=hours_ago)).isoformat()}


class TestSyncHealth:
    def test_no_products(self):
        assert calculate_sync_health(0, completed(1), now=NOW) == NO_DATA

    def test_never_synced(self):
        assert calculate_sync_health(10, None, now=NOW) == NEVER_SYNCED

    def test_last_run_failed(self):
        assert calculate_sync_health(10, {"status": "failed"}, completed(1), now=NOW) == UNHEALTHY

    @pytest.mark.parametrize("hours, expected", [(1, HEALTHY), (30, AGING), (72, STALE)])
    def test_age_buckets(self, hours, expected):
        assert calculate_sync_health(10, completed(hours), now=NOW) == expected

    def test_running_sync_uses_last_successful(self):
        running = {"status": "running", "completed_at": None}
        assert calculate_sync_health(10, running, completed(2), now=NOW) == HEALTHY

    def test_running_with_no_success_is_stale(self):
        assert calculate_sync_health(10, {"status": "running"}, None, now=NOW) == STALE

    def test_naive_timestamp_treated_as_utc(self):
        naive = {"status": "completed", "completed_at": "2026-03-10T11:00:00"}
        assert calculate_sync_health(10, naive, now=NOW) == HEALTHY


class TestSchedules:
    def test_every_five_minutes_aligns_to_wall_clock(self):
        assert every_minutes(5)(datetime(2026, 3, 10, 10, 7, 30)) == datetime(2026, 3, 10, 10, 10)

    def test_on_boundary_moves_to_next_slot(self):
        assert every_minutes(5)(datetime(2026, 3, 10, 10, 10)) == datetime(2026, 3, 10, 10, 15)

    def test_hourly(self):
        assert every_minutes(60)(datetime(2026, 3, 10, 10, 7)) == datetime(2026, 3, 10, 11, 0)

    def test_multi_hour_interval(self):
        assert every_minutes(120)(datetime(2026, 3, 10, 10, 7)) == datetime(2026, 3, 10, 12, 0)
        assert every_minutes(120)(datetime(2026, 3, 10, 11, 59)) == datetime(2026, 3, 10, 12, 0)

    def test_interval_wraps_past_midnight(self):
        assert every_minutes(60)(datetime(2026, 3, 10, 23, 30)) == datetime(2026, 3, 11, 0, 0)

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            every_minutes(0)

    def test_daily_later_today(self):
        assert daily_at(2)(datetime(2026, 3, 10, 1, 0)) == datetime(2026, 3, 10, 2, 0)

    def test_daily_tomorrow(self):
        assert daily_at(2)(datetime(2026, 3, 10, 3, 0)) == datetime(2026, 3, 11, 2, 0)


@pytest.fixture
def services(config, store, disabled_cache, fake_openai, upstream_stub):
    return build_services(
        config,
        store=store,
        hot_cache=disabled_cache,
        openai_client=fake_openai,
        upstream_transport=upstream_stub.transport(),
    )


class TestSyncScheduler:
    def test_defines_four_jobs(self, services):
        assert set(services.scheduler.jobs) == {"stock_sync", "catalog_sync", "cache_cleanup", "health_check"}

    async def test_start_and_stop(self, services):
        scheduler = services.scheduler
        scheduler.start()
        try:
            status = scheduler.get_status()
            assert status["running"] is True
            assert status["active_jobs"] == 4
        finally:
            await scheduler.stop()
        status = scheduler.get_status()
        assert status["running"] is False
        assert status["active_jobs"] == 0

    async def test_restart_unknown_job(self, services):
        with pytest.raises(ValueError):
            await services.scheduler.restart_job("nope")

    async def test_restart_job_replaces_task(self, services):
        scheduler = services.scheduler
        scheduler.start()
        try:
            old_task = scheduler.jobs["health_check"].task
            await scheduler.restart_job("health_check")
            assert old_task.cancelled()
            assert not scheduler.jobs["health_check"].task.done()
        finally:
            await scheduler.stop()

    async def test_stop_finalizes_in_flight_sync(self, services, store):
        entered = asyncio.Event()

        async def stalled(**kwargs):
            entered.set()
            await asyncio.Event().wait()

        scheduler = services.scheduler
        job = scheduler.jobs["catalog_sync"]
        job.next_run = lambda now: now
        scheduler.start()
        try:
            with mock.patch.object(services.catalog_sync.upstream, "fetch_all_products", side_effect=stalled):
                await entered.wait()
        finally:
            await scheduler.stop()

        log = store.latest_sync_log("full")
        assert log["status"] == "failed"
        assert log["error_message"] == "cancelled"
        assert job.running is False

    async def test_failing_job_is_recorded(self, services):
        async def boom():
            raise RuntimeError("boom")

        job = ScheduledJob(name="boom", schedule="never", next_run=every_minutes(5), action=boom)
        await services.scheduler._run_job(job)

        assert job.failure_count == 1
        assert job.last_error == "boom"
        assert job.running is False

    async def test_manual_full_then_stock_sync(self, services, upstream_stub):
        upstream_stub.pages = {0: [make_item("1001", "Парацетамол 500мг", available=4)]}

        full = await services.scheduler.run_manual_sync("full", {"max_products": 10})
        stock = await services.scheduler.run_manual_sync("stock")

        assert full.created == 1
        assert stock.updated == 1

    async def test_run_all_syncs_now(self, services, upstream_stub):
        upstream_stub.pages = {0: [make_item("1001", "Парацетамол 500мг", available=4)]}

        result = await services.scheduler.run_all_syncs_now()

        # Stock runs first, so the not-yet-catalogued product is skipped
        assert result["stock"]["skipped"] == 1
        assert result["catalog"]["created"] == 1

    async def test_manual_unknown_type(self, services):
        with pytest.raises(ValueError):
            await services.scheduler.run_manual_sync("weekly")

    async def test_sync_status_on_empty_store(self, services):
        status = await services.scheduler.get_sync_status()
        assert status["health"] == NO_DATA
        assert status["database"]["products"] == 0
        assert status["last_sync"] is None
        assert status["scheduler"]["timezone"] == "Asia/Ulaanbaatar"

    async def test_sync_status_after_sync(self, services, upstream_stub):
        upstream_stub.pages = {0: [make_item("1001", "Парацетамол 500мг")]}
        await services.scheduler.run_manual_sync("full")

        status = await services.scheduler.get_sync_status()

        assert status["health"] == HEALTHY
        assert status["last_successful_sync"]["sync_type"] == "full"
