from __future__ import annotations

from typing import Any, Dict, Optional

from slopecast.config import CacheConfig, app_config
from slopecast.logging import get_logger

from ..cache import SnapshotCache
from ..http_client import HttpFetcher
from ..models import Resort, Snapshot
from ..weather import fetch_all_models, fetch_all_models_hourly, fetch_forecast
from ..weather.client import DEFAULT_TIMEZONE
from ..weather.transform import transform_daily_forecasts, transform_hourly_forecasts

logger = get_logger(__name__)

FORECAST_SOURCE = "open-meteo"
MULTI_MODEL_SOURCE = "multi-model"
MULTI_MODEL_HOURLY_SOURCE = "multi-model-hourly"


def _any_model_available(payload: Dict[str, Any]) -> bool:
    return any(model["available"] for model in payload["models"].values())


def _resort_summary(resort: Resort) -> Dict[str, Any]:
    return {"id": resort.id, "name": resort.name, "slug": resort.slug}


async def get_resort_forecast(
    cache: SnapshotCache,
    resort: Resort,
    *,
    fetcher: Optional[HttpFetcher] = None,
    config: Optional[CacheConfig] = None,
) -> Dict[str, Any]:
    """Hourly and daily forecast rows for a resort, refreshed at most once per TTL.

    Rows are derived from the payload whenever a new snapshot is stored and
    always read back for the snapshot being served. Raises ``WeatherApiError``
    when a refresh is needed and Open-Meteo cannot be read.
    """
    config = config or app_config.cache
    store = cache.store

    async def fetch() -> Dict[str, Any]:
        logger.info("forecast.refresh", resort_id=resort.id, slug=resort.slug)
        return await fetch_forecast(
            resort.latitude,
            resort.longitude,
            timezone=resort.timezone or DEFAULT_TIMEZONE,
            forecast_days=app_config.weather.forecast_days,
            fetcher=fetcher,
        )

    def derive_rows(snapshot: Snapshot) -> None:
        hourly = transform_hourly_forecasts(snapshot.payload, snapshot.id, limit=app_config.weather.hourly_limit)
        daily = transform_daily_forecasts(snapshot.payload, snapshot.id)
        store.insert_hourly_forecasts(hourly)
        store.insert_daily_forecasts(daily)

    result = await cache.get_or_fetch(
        resort.id, FORECAST_SOURCE, fetch, ttl=config.forecast_ttl, on_store=derive_rows
    )
    snapshot = result.snapshot
    return {
        "resort": _resort_summary(resort),
        "snapshot": snapshot.metadata(),
        "hourly": [row.to_dict() for row in store.list_hourly_forecasts(snapshot.id)],
        "daily": [row.to_dict() for row in store.list_daily_forecasts(snapshot.id)],
    }


async def get_snowfall_chart(
    cache: SnapshotCache,
    resort: Resort,
    *,
    fetcher: Optional[HttpFetcher] = None,
    config: Optional[CacheConfig] = None,
) -> Dict[str, Any]:
    """Daily snowfall per model plus the trailing week of observed snowfall."""
    config = config or app_config.cache

    async def fetch() -> Dict[str, Any]:
        response = await fetch_all_models(resort.latitude, resort.longitude, fetcher=fetcher)
        return response.to_dict()

    result = await cache.get_or_fetch(
        resort.id, MULTI_MODEL_SOURCE, fetch, ttl=config.forecast_ttl, cacheable=_any_model_available
    )
    return {"resort": _resort_summary(resort), **result.payload}


async def get_hourly_models(
    cache: SnapshotCache,
    resort: Resort,
    *,
    fetcher: Optional[HttpFetcher] = None,
    config: Optional[CacheConfig] = None,
) -> Dict[str, Any]:
    config = config or app_config.cache

    async def fetch() -> Dict[str, Any]:
        response = await fetch_all_models_hourly(
            resort.latitude,
            resort.longitude,
            resort.timezone or DEFAULT_TIMEZONE,
            fetcher=fetcher,
        )
        return response.to_dict()

    result = await cache.get_or_fetch(
        resort.id, MULTI_MODEL_HOURLY_SOURCE, fetch, ttl=config.forecast_ttl, cacheable=_any_model_available
    )
    return {"resort": _resort_summary(resort), **result.payload}
