from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from slopecast.config import CacheConfig, app_config

from ..cache import SnapshotCache
from ..http_client import HttpFetcher
from ..resorts import resolve_resort
from ..season import compute_season_snowfall

SEASON_SOURCE = "season-snowfall"


async def get_season_snowfall(
    cache: SnapshotCache,
    slug: str,
    *,
    today: Optional[date] = None,
    fetcher: Optional[HttpFetcher] = None,
    config: Optional[CacheConfig] = None,
) -> Dict[str, Any]:
    """Current vs. last season cumulative snowfall for the resort at ``slug``.

    Raises ``ResortNotFound`` or ``MissingCoordinates`` before any fetch.
    """
    config = config or app_config.cache
    resort = resolve_resort(cache.store, slug)

    async def fetch() -> Dict[str, Any]:
        comparison = await compute_season_snowfall(
            resort.latitude, resort.longitude, today=today, fetcher=fetcher
        )
        return comparison.to_dict()

    # a comparison built from a failed archive range is served but not cached
    result = await cache.get_or_fetch(
        resort.id, SEASON_SOURCE, fetch, ttl=config.forecast_ttl, cacheable=lambda payload: not payload["errors"]
    )
    return {"resort": {"id": resort.id, "name": resort.name, "slug": resort.slug}, **result.payload}
