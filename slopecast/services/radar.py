from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx

from slopecast.config import CacheConfig, app_config
from slopecast.logging import get_logger

from ..cache import GLOBAL_KEY, SnapshotCache
from ..http_client import HttpFetcher, fetcher_scope
from ..models import RadarFrame, Snapshot, utcnow

logger = get_logger(__name__)

RAINVIEWER_URL = "https://api.rainviewer.com/public/weather-maps.json"
TILE_URL_TEMPLATE = "https://tilecache.rainviewer.com{path}/512/{{z}}/{{x}}/{{y}}/6/1_1.png"
RADAR_SOURCE = "rainviewer"
FRAME_RETENTION = timedelta(hours=24)


def tile_url(path: str) -> str:
    return TILE_URL_TEMPLATE.format(path=path)


def frames_from_payload(payload: Dict[str, Any]) -> List[RadarFrame]:
    """Past and nowcast radar frames listed in a RainViewer weather-maps payload."""
    radar = payload.get("radar") or {}
    frames: List[RadarFrame] = []
    for section in ("past", "nowcast"):
        for entry in radar.get(section) or []:
            frames.append(RadarFrame(frame_time=int(entry["time"]), path=entry["path"], tile_url=tile_url(entry["path"])))
    return frames


def _cutoff(now: datetime) -> int:
    return int((now - FRAME_RETENTION).timestamp())


async def refresh_radar_frames(
    cache: SnapshotCache,
    *,
    fetcher: Optional[HttpFetcher] = None,
    config: Optional[CacheConfig] = None,
) -> int:
    """Pull RainViewer at most once per TTL and store frames not seen before.

    Returns the number of newly inserted frames. An unreachable RainViewer is
    logged and leaves the stored frames untouched.
    """
    config = config or app_config.cache
    store = cache.store
    inserted = 0

    async def fetch() -> Dict[str, Any]:
        async with fetcher_scope(fetcher) as http:
            return await http.get_json(RAINVIEWER_URL)

    def store_frames(snapshot: Snapshot) -> None:
        nonlocal inserted
        for frame in frames_from_payload(snapshot.payload or {}):
            if store.insert_radar_frame(frame):
                inserted += 1

    try:
        await cache.get_or_fetch(GLOBAL_KEY, RADAR_SOURCE, fetch, ttl=config.radar_ttl, on_store=store_frames)
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
        logger.warning("radar.refresh_failed", error=str(exc))
        return 0

    if inserted:
        logger.info("radar.frames_stored", inserted=inserted)
    return inserted


def list_recent_frames(cache: SnapshotCache, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    frames = cache.store.list_radar_frames(_cutoff(now or utcnow()))
    return {
        "frames": [{"time": frame.frame_time, "url": frame.tile_url} for frame in frames],
        "count": len(frames),
        "oldest_frame": frames[0].frame_time if frames else None,
        "newest_frame": frames[-1].frame_time if frames else None,
    }


async def get_radar_frames(
    cache: SnapshotCache,
    *,
    fetcher: Optional[HttpFetcher] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    await refresh_radar_frames(cache, fetcher=fetcher)
    return list_recent_frames(cache, now=now)


def cleanup_radar_frames(cache: SnapshotCache, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    cutoff = _cutoff(now or utcnow())
    deleted = cache.store.prune_radar_frames(cutoff)
    logger.info("radar.cleanup", deleted=deleted, deleted_before=cutoff)
    return {"deleted": deleted, "deleted_before": cutoff}
