from __future__ import annotations

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from slopecast.config import AppConfig
from slopecast.logging import get_logger

from .cache import SnapshotCache
from .jobs import run_ingestion, run_maintenance, run_snow_depth_sync

logger = get_logger(__name__)


def build_scheduler(cache: SnapshotCache, config: AppConfig) -> Optional[AsyncIOScheduler]:
    scheduler_config = config.scheduler
    if not scheduler_config.enabled:
        logger.info("scheduler.disabled")
        return None

    async def ingest() -> None:
        await run_ingestion(cache, config)

    async def snow_depth() -> None:
        await run_snow_depth_sync(cache, config)

    def maintenance() -> None:
        run_maintenance(cache, config)

    scheduler = AsyncIOScheduler(timezone="UTC")
    jobs = (
        ("ingest-resorts", ingest, scheduler_config.ingest_cron),
        ("sync-snow-depth", snow_depth, scheduler_config.snow_depth_cron),
        ("cache-maintenance", maintenance, scheduler_config.maintenance_cron),
    )
    for job_id, job, cron in jobs:
        trigger = CronTrigger.from_crontab(cron, timezone="UTC")
        scheduler.add_job(job, trigger=trigger, id=job_id, max_instances=1, coalesce=True)
        logger.info("scheduler.configured", job=job_id, cron=cron)
    return scheduler
