"""Snow depth fallback for resorts whose pages publish no depth.

SNOTEL stations (via the Powderlines API) are tried first for western US
states; Open-Meteo's modelled snow depth covers everywhere else.
"""
from __future__ import annotations

import asyncio
import math
from typing import Any, Optional, Sequence

import httpx

from slopecast.logging import get_logger, log_context

from ..errors import WeatherApiError
from ..extraction import round_half_up
from ..http_client import HttpFetcher, Sleeper, fetcher_scope
from ..ingest import IngestionSummary
from ..models import Resort, SnowDepthReading
from ..storage import SlopeStore
from ..weather.client import fetch_snow_depth

logger = get_logger(__name__)

POWDERLINES_URL = "https://powderlines.kellysoftware.org/api/closest_stations"
MAX_STATION_DISTANCE_KM = 25.0
METERS_TO_INCHES = 39.3701
EARTH_RADIUS_KM = 6371.0
SYNC_DELAY_SECONDS = 0.2

SNOTEL_STATES = frozenset(
    {
        "Alaska",
        "Arizona",
        "California",
        "Colorado",
        "Idaho",
        "Montana",
        "Nevada",
        "New Mexico",
        "Oregon",
        "Utah",
        "Washington",
        "Wyoming",
        "South Dakota",
    }
)


def in_snotel_coverage(state: str) -> bool:
    return state in SNOTEL_STATES


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _float_or_none(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(result) else result


async def fetch_snotel_depth(
    latitude: float,
    longitude: float,
    *,
    fetcher: HttpFetcher,
) -> Optional[SnowDepthReading]:
    """Depth from the closest SNOTEL station, if it lies within 25 km."""
    params = {
        "lat": latitude,
        "lng": longitude,
        "count": 1,
        "data": "true",
        "days": 1,
    }
    try:
        data = await fetcher.get_json(POWDERLINES_URL, params=params)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("snow_depth.snotel_unavailable", error=str(exc))
        return None

    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    station = data[0]
    station_lat = _float_or_none(station.get("latitude"))
    station_lng = _float_or_none(station.get("longitude"))
    if station_lat is None or station_lng is None:
        return None

    distance = haversine_km(latitude, longitude, station_lat, station_lng)
    if distance > MAX_STATION_DISTANCE_KM:
        logger.info("snow_depth.snotel_too_far", distance_km=round(distance, 1))
        return None

    readings = station.get("data") or []
    latest = readings[0] if readings and isinstance(readings[0], dict) else {}
    depth = _float_or_none(latest.get("snow_depth"))
    if depth is None or depth < 0:
        return None
    return SnowDepthReading(
        resort_id="",
        depth_inches=round_half_up(depth),
        source="snotel",
        source_detail=station.get("station_name") or "SNOTEL Station",
    )


def latest_depth_meters(series: Sequence[Optional[float]]) -> Optional[float]:
    """Most recent non-null, non-negative value of an hourly snow depth series."""
    for value in reversed(series):
        if value is not None and value >= 0:
            return value
    return None


async def fetch_open_meteo_depth(
    latitude: float,
    longitude: float,
    *,
    fetcher: HttpFetcher,
) -> Optional[float]:
    try:
        data = await fetch_snow_depth(latitude, longitude, fetcher=fetcher)
    except WeatherApiError as exc:
        logger.warning("snow_depth.open_meteo_unavailable", error=str(exc))
        return None
    series = (data.get("hourly") or {}).get("snow_depth")
    if not isinstance(series, list) or not series:
        return None
    return latest_depth_meters(series)


async def snow_depth_fallback(
    resort: Resort,
    *,
    fetcher: HttpFetcher | None = None,
) -> Optional[SnowDepthReading]:
    """Resolve a depth reading for ``resort``, or ``None`` when no source has snow."""
    async with fetcher_scope(fetcher) as http:
        if in_snotel_coverage(resort.state):
            snotel = await fetch_snotel_depth(resort.latitude, resort.longitude, fetcher=http)
            if snotel is not None and snotel.depth_inches > 0:
                snotel.resort_id = resort.id
                return snotel

        meters = await fetch_open_meteo_depth(resort.latitude, resort.longitude, fetcher=http)

    if meters is not None and meters > 0:
        inches = round_half_up(meters * METERS_TO_INCHES)
        if inches > 0:
            return SnowDepthReading(
                resort_id=resort.id,
                depth_inches=inches,
                source="open-meteo",
                source_detail="Open-Meteo",
            )
    return None


async def sync_snow_depth(
    store: SlopeStore,
    *,
    resorts: Optional[Sequence[Resort]] = None,
    fetcher: HttpFetcher | None = None,
    delay: float = SYNC_DELAY_SECONDS,
    sleep: Sleeper = asyncio.sleep,
    max_errors: int = 50,
) -> IngestionSummary:
    """Refresh the stored reading for every resort with coordinates.

    Resorts without coordinates or without any snow reported are skipped.
    """
    resorts = list(store.list_resorts() if resorts is None else resorts)
    summary = IngestionSummary(total=len(resorts), max_errors=max_errors)

    with log_context(job="snow_depth_sync"):
        logger.info("snow_depth.sync_start", total=summary.total)
        async with fetcher_scope(fetcher) as http:
            for resort in resorts:
                if not resort.has_coordinates:
                    summary.skipped += 1
                    continue
                try:
                    reading = await snow_depth_fallback(resort, fetcher=http)
                    if reading is None:
                        summary.skipped += 1
                        continue
                    store.upsert_snow_depth(reading)
                except Exception as exc:  # one resort never aborts the sync
                    summary.failed += 1
                    if len(summary.errors) < summary.max_errors:
                        summary.errors.append(f"{resort.name}: {exc}")
                    logger.error("snow_depth.resort_failed", resort_id=resort.id, error=str(exc))
                    continue

                summary.success += 1
                logger.info(
                    "snow_depth.stored",
                    resort_id=resort.id,
                    depth_inches=reading.depth_inches,
                    source=reading.source,
                )
                if delay > 0:
                    await sleep(delay)
        logger.info("snow_depth.sync_complete", **summary.to_dict())
    return summary
