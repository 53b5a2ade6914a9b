"""Parallel fan-out across the GFS, ECMWF and HRRR models.

Every model is requested concurrently and isolated: a failing model becomes
an ``available=False`` envelope and never raises out of these functions.
"""
from __future__ import annotations

import asyncio
from datetime import date, timedelta
from typing import List, Optional

from slopecast.logging import get_logger

from ..errors import WeatherApiError
from ..http_client import HttpFetcher, fetcher_scope
from ..models import utcnow
from .client import MODELS, ModelDescriptor, fetch_archive, request_json
from .models import (
    DailySnowfall,
    HourlyModelForecast,
    ModelForecast,
    MultiModelHourlyResponse,
    MultiModelResponse,
)
from .transform import aggregate_hourly_to_daily, daily_snowfall_from_sums, hourly_points

logger = get_logger(__name__)

HISTORICAL_LOOKBACK_DAYS = 7

# Malformed payloads surface as these while walking the JSON.
_PAYLOAD_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


async def fetch_model_daily(
    model: ModelDescriptor,
    latitude: float,
    longitude: float,
    *,
    fetcher: HttpFetcher,
) -> ModelForecast:
    try:
        data = await request_json(
            model.endpoint,
            model.daily_snowfall_params(latitude, longitude),
            label=model.label,
            fetcher=fetcher,
        )
        if model.daily:
            daily = data.get("daily") or {}
            if not daily.get("time") or daily.get("snowfall_sum") is None:
                return _unavailable(model, "No daily data")
            return ModelForecast(available=True, data=daily_snowfall_from_sums(daily))

        hourly = data.get("hourly") or {}
        if not hourly.get("time") or hourly.get("snowfall") is None:
            return _unavailable(model, "No hourly data")
        return ModelForecast(
            available=True,
            data=aggregate_hourly_to_daily(hourly["time"], hourly["snowfall"]),
        )
    except WeatherApiError as exc:
        return _unavailable(model, str(exc))
    except _PAYLOAD_ERRORS as exc:
        return _unavailable(model, f"{model.label} payload error: {exc}")


def _unavailable(model: ModelDescriptor, error: str) -> ModelForecast:
    logger.warning("weather.model_unavailable", model=model.key, error=error)
    return ModelForecast.unavailable(error)


async def fetch_model_hourly(
    model: ModelDescriptor,
    latitude: float,
    longitude: float,
    timezone: str,
    *,
    fetcher: HttpFetcher,
) -> HourlyModelForecast:
    try:
        data = await request_json(
            model.endpoint,
            model.hourly_params(latitude, longitude, timezone),
            label=model.label,
            fetcher=fetcher,
        )
        hourly = data.get("hourly") or {}
        if not hourly.get("time"):
            logger.warning("weather.model_unavailable", model=model.key, error="No hourly data")
            return HourlyModelForecast.unavailable("No hourly data")
        units = data.get("hourly_units") or {}
        points = hourly_points(
            hourly,
            freezing_level=model.freezing_level,
            snowfall_unit=str(units.get("snowfall") or "inch"),
        )
        return HourlyModelForecast(available=True, data=points)
    except WeatherApiError as exc:
        logger.warning("weather.model_unavailable", model=model.key, error=str(exc))
        return HourlyModelForecast.unavailable(str(exc))
    except _PAYLOAD_ERRORS as exc:
        logger.warning("weather.model_unavailable", model=model.key, error=str(exc))
        return HourlyModelForecast.unavailable(f"{model.label} payload error: {exc}")


async def fetch_daily_snowfall_history(
    latitude: float,
    longitude: float,
    start: date,
    end: date,
    *,
    fetcher: HttpFetcher | None = None,
) -> List[DailySnowfall]:
    """Archive daily snowfall in inches. Raises :class:`WeatherApiError`."""
    data = await fetch_archive(latitude, longitude, start.isoformat(), end.isoformat(), fetcher=fetcher)
    daily = data.get("daily") or {}
    if not daily.get("time") or daily.get("snowfall_sum") is None:
        return []
    return daily_snowfall_from_sums(daily)


async def fetch_historical_snowfall(
    latitude: float,
    longitude: float,
    start: date,
    end: date,
    *,
    fetcher: HttpFetcher | None = None,
) -> List[DailySnowfall]:
    """Like :func:`fetch_daily_snowfall_history` but empty on failure."""
    try:
        return await fetch_daily_snowfall_history(latitude, longitude, start, end, fetcher=fetcher)
    except (WeatherApiError,) + _PAYLOAD_ERRORS as exc:
        logger.warning("weather.historical_unavailable", error=str(exc))
        return []


async def fetch_all_models(
    latitude: float,
    longitude: float,
    *,
    fetcher: HttpFetcher | None = None,
    today: Optional[date] = None,
) -> MultiModelResponse:
    today = today or utcnow().date()
    # The archive lags behind, so the lookback ends yesterday.
    history_end = today - timedelta(days=1)
    history_start = today - timedelta(days=HISTORICAL_LOOKBACK_DAYS)

    async with fetcher_scope(fetcher) as http:
        *forecasts, historical = await asyncio.gather(
            *(fetch_model_daily(model, latitude, longitude, fetcher=http) for model in MODELS),
            fetch_historical_snowfall(latitude, longitude, history_start, history_end, fetcher=http),
        )

    return MultiModelResponse(
        models={model.key: forecast for model, forecast in zip(MODELS, forecasts)},
        historical=historical,
    )


async def fetch_all_models_hourly(
    latitude: float,
    longitude: float,
    timezone: str,
    *,
    fetcher: HttpFetcher | None = None,
) -> MultiModelHourlyResponse:
    async with fetcher_scope(fetcher) as http:
        forecasts = await asyncio.gather(
            *(fetch_model_hourly(model, latitude, longitude, timezone, fetcher=http) for model in MODELS)
        )
    return MultiModelHourlyResponse(models={model.key: forecast for model, forecast in zip(MODELS, forecasts)})
