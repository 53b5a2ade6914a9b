"""Batch jobs shared by the scheduler, the API and the command line."""
from __future__ import annotations

from typing import Any, Dict, Optional

from slopecast.config import AppConfig, app_config
from slopecast.logging import get_logger

from .cache import SnapshotCache
from .http_client import HttpFetcher
from .ingest import IngestionOrchestrator, IngestionSummary
from .services.radar import cleanup_radar_frames
from .services.snow_depth import sync_snow_depth

logger = get_logger(__name__)


async def run_ingestion(
    cache: SnapshotCache,
    config: Optional[AppConfig] = None,
    *,
    fetcher: Optional[HttpFetcher] = None,
) -> IngestionSummary:
    config = config or app_config
    orchestrator = IngestionOrchestrator(cache.store, fetcher=fetcher, config=config.scraper)
    return await orchestrator.run()


async def run_snow_depth_sync(
    cache: SnapshotCache,
    config: Optional[AppConfig] = None,
    *,
    fetcher: Optional[HttpFetcher] = None,
) -> IngestionSummary:
    config = config or app_config
    return await sync_snow_depth(cache.store, fetcher=fetcher, max_errors=config.scraper.max_errors)


def run_maintenance(cache: SnapshotCache, config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Drop snapshots past the retention window and radar frames older than a day."""
    config = config or app_config
    snapshots = cache.prune(retention=config.cache.retention)
    radar = cleanup_radar_frames(cache)
    logger.info("maintenance.complete", snapshots_deleted=snapshots, radar_frames_deleted=radar["deleted"])
    return {"snapshots_deleted": snapshots, "radar_frames_deleted": radar["deleted"]}
