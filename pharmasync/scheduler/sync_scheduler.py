"""
Sync scheduler: periodic jobs on the asyncio event loop.

Jobs (wall-clock aligned, in the configured timezone):
- stock_sync     every 5 minutes
- catalog_sync   daily at 02:00
- cache_cleanup  hourly, on the hour
- health_check   every 30 minutes

Each job runs in its own task. An exception inside a run is logged and the
job waits for its next slot; runs of the same job never overlap.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from pharmasync.cache.resolver import CacheTierResolver
from pharmasync.core.config import PharmaSyncConfig
from pharmasync.data.catalog_store import CatalogStore
from pharmasync.ingestion.catalog_sync import CatalogSynchronizer
from pharmasync.ingestion.stock_sync import StockSynchronizer
from pharmasync.scheduler.health import STALE, UNHEALTHY, calculate_sync_health
from pharmasync.utils.logger import get_logger

logger = get_logger("scheduler.sync_scheduler")


def every_minutes(minutes: int) -> Callable[[datetime], datetime]:
    """Next wall-clock multiple of `minutes` since midnight (like */N cron)."""
    if minutes <= 0:
        raise ValueError(f"Interval must be a positive number of minutes, got {minutes}")

    def next_run(now: datetime) -> datetime:
        base = now.replace(second=0, microsecond=0)
        elapsed = base.hour * 60 + base.minute
        return base + timedelta(minutes=minutes - elapsed % minutes)
    return next_run


def daily_at(hour: int, minute: int = 0) -> Callable[[datetime], datetime]:
    def next_run(now: datetime) -> datetime:
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate
    return next_run


@dataclass
class ScheduledJob:
    name: str
    schedule: str
    next_run: Callable[[datetime], datetime]
    action: Callable[[], Awaitable[Any]]
    task: Optional[asyncio.Task] = None
    running: bool = False
    run_count: int = 0
    failure_count: int = 0
    last_started: Optional[str] = None
    last_finished: Optional[str] = None
    last_error: Optional[str] = None
    next_scheduled: Optional[str] = None

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "schedule": self.schedule,
            "active": self.task is not None and not self.task.done(),
            "running": self.running,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "last_started": self.last_started,
            "last_finished": self.last_finished,
            "last_error": self.last_error,
            "next_run": self.next_scheduled,
        }


class SyncScheduler:
    """Owns the periodic sync jobs and the manual sync surface."""

    def __init__(
        self,
        store: CatalogStore,
        catalog_sync: CatalogSynchronizer,
        stock_sync: StockSynchronizer,
        resolver: CacheTierResolver,
        config: PharmaSyncConfig,
    ):
        self.store = store
        self.catalog_sync = catalog_sync
        self.stock_sync = stock_sync
        self.resolver = resolver
        self.config = config
        self.tz = ZoneInfo(config.timezone)
        self.is_running = False
        self.jobs: Dict[str, ScheduledJob] = {}
        self._define_jobs()

    def _define_jobs(self) -> None:
        cfg = self.config
        definitions = [
            ScheduledJob(
                name="stock_sync",
                schedule=f"Every {cfg.stock_sync_interval_minutes} minutes",
                next_run=every_minutes(cfg.stock_sync_interval_minutes),
                action=self._scheduled_stock_sync,
            ),
            ScheduledJob(
                name="catalog_sync",
                schedule=f"Daily at {cfg.full_sync_hour:02d}:00 ({cfg.timezone})",
                next_run=daily_at(cfg.full_sync_hour),
                action=self._scheduled_catalog_sync,
            ),
            ScheduledJob(
                name="cache_cleanup",
                schedule=f"Every {cfg.cache_cleanup_interval_minutes} minutes",
                next_run=every_minutes(cfg.cache_cleanup_interval_minutes),
                action=self._scheduled_cache_cleanup,
            ),
            ScheduledJob(
                name="health_check",
                schedule=f"Every {cfg.health_check_interval_minutes} minutes",
                next_run=every_minutes(cfg.health_check_interval_minutes),
                action=self._scheduled_health_check,
            ),
        ]
        self.jobs = {job.name: job for job in definitions}

    # ------------------------------------------------------------------
    # Job bodies
    # ------------------------------------------------------------------

    async def _scheduled_stock_sync(self):
        stats = await self.stock_sync.quick_sync(max_products=self.config.stock_sync_max_products)
        logger.info(
            f"[scheduled] stock sync: updated={stats.updated} cached={stats.cached} "
            f"skipped={stats.skipped} failed={stats.failed}"
        )
        return stats

    async def _scheduled_catalog_sync(self):
        stats = await self.catalog_sync.full_sync(
            batch_size=self.config.scheduled_full_sync_batch_size,
            max_products=None,
            generate_embeddings=True,
        )
        logger.info(f"[scheduled] catalog sync: processed={stats.processed} failed={stats.failed}")
        return stats

    async def _scheduled_cache_cleanup(self):
        removed = await asyncio.to_thread(self.store.cleanup_expired_cache)
        logger.info(f"[scheduled] removed {removed} expired shadow cache rows")
        return removed

    async def _scheduled_health_check(self):
        status = await self.get_sync_status()
        health = status["health"]
        if health in (UNHEALTHY, STALE):
            last = status.get("last_sync") or {}
            logger.warning(
                f"[health check] sync health: {health} (last sync: {last.get('completed_at') or 'never'}, "
                f"products: {status['database']['products']})"
            )
        else:
            logger.info(f"[health check] sync health: {health}")
        return health

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run_job(self, job: ScheduledJob) -> None:
        job.running = True
        job.run_count += 1
        job.last_started = datetime.now(timezone.utc).isoformat()
        started = time.monotonic()
        try:
            await job.action()
            job.last_error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.failure_count += 1
            job.last_error = str(e)
            logger.error(f"Job {job.name} failed after {int((time.monotonic() - started) * 1000)}ms: {e}")
        finally:
            job.running = False
            job.last_finished = datetime.now(timezone.utc).isoformat()

    async def _job_loop(self, job: ScheduledJob) -> None:
        while True:
            now = datetime.now(self.tz)
            next_at = job.next_run(now)
            job.next_scheduled = next_at.isoformat()
            await asyncio.sleep(max((next_at - now).total_seconds(), 0))
            await self._run_job(job)

    def _start_job(self, job: ScheduledJob) -> None:
        job.task = asyncio.get_running_loop().create_task(self._job_loop(job), name=f"pharmasync:{job.name}")

    def start(self) -> None:
        """Schedule all jobs on the running event loop."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        for job in self.jobs.values():
            self._start_job(job)
        self.is_running = True
        logger.info(f"Scheduler started with {len(self.jobs)} jobs")
        for job in self.jobs.values():
            logger.info(f"  - {job.name}: {job.schedule}")

    @staticmethod
    async def _cancel(tasks) -> None:
        # Wait so in-flight syncs can finalize their sync_log rows
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        tasks = [job.task for job in self.jobs.values() if job.task is not None]
        for job in self.jobs.values():
            job.task = None
        await self._cancel(tasks)
        self.is_running = False
        logger.info("Scheduler stopped")

    async def restart_job(self, name: str) -> None:
        job = self.jobs.get(name)
        if job is None:
            raise ValueError(f"Job {name} not found")
        if job.task is not None:
            await self._cancel([job.task])
        self._start_job(job)
        logger.info(f"Restarted job: {name}")

    # ------------------------------------------------------------------
    # Manual surface
    # ------------------------------------------------------------------

    async def run_manual_sync(self, sync_type: str = "stock", options: Optional[Dict[str, Any]] = None):
        """
        Run a sync on demand.

        full/catalog options: batch_size (50), max_products (500),
        generate_embeddings (True). stock/quick options: max_products (7000).
        """
        options = options or {}
        logger.info(f"Running manual {sync_type} sync with {options}")
        if sync_type in ("full", "catalog"):
            return await self.catalog_sync.full_sync(
                batch_size=options.get("batch_size") or self.config.full_sync_batch_size,
                max_products=options.get("max_products") or self.config.manual_full_sync_max_products,
                generate_embeddings=options.get("generate_embeddings", True) is not False,
            )
        if sync_type in ("stock", "quick"):
            return await self.stock_sync.quick_sync(
                max_products=options.get("max_products") or self.config.stock_sync_max_products,
            )
        raise ValueError(f"Unknown sync type: {sync_type}")

    async def run_all_syncs_now(self) -> Dict[str, Any]:
        """Stock sync, then a small catalog sync (initialization)."""
        stock = await self.run_manual_sync("stock")
        catalog = await self.run_manual_sync("catalog", {"max_products": 100})
        return {"stock": stock.to_dict(), "catalog": catalog.to_dict()}

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "active_jobs": sum(1 for j in self.jobs.values() if j.task is not None and not j.task.done()),
            "timezone": self.config.timezone,
            "jobs": [job.status() for job in self.jobs.values()],
            "redis_connected": self.resolver.hot_cache.available,
        }

    async def get_sync_status(self) -> Dict[str, Any]:
        """Counts, last sync, computed health, scheduler and cache state."""
        counts = await asyncio.to_thread(self.store.counts)
        last_sync = await asyncio.to_thread(self.store.latest_sync_log)
        last_successful = await asyncio.to_thread(self.store.latest_successful_sync)
        cache_stats = await self.resolver.get_cache_stats()
        return {
            "database": counts,
            "last_sync": last_sync,
            "last_successful_sync": last_successful,
            "health": calculate_sync_health(counts["products"], last_sync, last_successful),
            "scheduler": self.get_status(),
            "cache": cache_stats,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
