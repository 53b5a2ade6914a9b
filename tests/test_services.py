from __future__ import annotations

import asyncio
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, List

import httpx
import pytest

from slopecast.cache import SnapshotCache
from slopecast.config import ApiConfig, AppConfig
from slopecast.errors import MissingCoordinates, ResortNotFound
from slopecast.http_client import HttpFetcher
from slopecast.models import RadarFrame, Resort, utcnow
from slopecast.services import (
    cleanup_radar_frames,
    get_radar_frames,
    get_resort_forecast,
    get_resort_photo,
    get_season_snowfall,
    get_snowfall_chart,
    snow_depth_fallback,
    sync_snow_depth,
)
from slopecast.storage import SlopeStore

ALTA = Resort(
    id="alta",
    name="Alta",
    slug="alta",
    state="Utah",
    latitude=40.588,
    longitude=-111.638,
    timezone="America/Denver",
    skiresortinfo_id="alta",
)
STOWE = Resort(id="stowe", name="Stowe", slug="stowe", state="Vermont", latitude=44.53, longitude=-72.78)
NO_COORDS = Resort(id="nowhere", name="Nowhere", slug="nowhere", state="Utah")


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def cache(tmp_path: Path) -> SnapshotCache:
    store = SlopeStore(tmp_path / "services.db")
    for resort in (ALTA, STOWE, NO_COORDS):
        store.upsert_resort(resort)
    return SnapshotCache(store)


def _run(handler: Callable[[httpx.Request], httpx.Response], call):
    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with HttpFetcher(client=client, sleep=_no_sleep) as fetcher:
            return await call(fetcher)

    return asyncio.run(run())


FORECAST_PAYLOAD = {
    "hourly": {
        "time": ["2026-01-10T00:00", "2026-01-10T01:00"],
        "temperature_2m": [18.0, 17.5],
        "snowfall": [0.4, 0.6],
        "weather_code": [73, 75],
        "freezing_level_height": [900.0, 950.0],
    },
    "daily": {
        "time": ["2026-01-10"],
        "temperature_2m_max": [24.0],
        "temperature_2m_min": [9.0],
        "snowfall_sum": [6.2],
        "wind_speed_10m_max": [22.0],
        "weather_code": [75],
    },
}


def test_forecast_rows_are_derived_once_per_snapshot(cache: SnapshotCache):
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=FORECAST_PAYLOAD)

    async def call(fetcher):
        first = await get_resort_forecast(cache, ALTA, fetcher=fetcher)
        second = await get_resort_forecast(cache, ALTA, fetcher=fetcher)
        return first, second

    first, second = _run(handler, call)

    assert len(requests) == 1
    assert requests[0].url.params["timezone"] == "America/Denver"
    assert requests[0].url.params["precipitation_unit"] == "inch"
    assert first["snapshot"]["id"] == second["snapshot"]["id"]
    assert [row["forecast_time"] for row in second["hourly"]] == ["2026-01-10T00:00", "2026-01-10T01:00"]
    assert second["hourly"][1]["conditions"] == "Heavy snow"
    assert second["daily"][0]["snow_total_inches"] == 6.2
    assert second["resort"] == {"id": "alta", "name": "Alta", "slug": "alta"}


def test_snowfall_chart_is_cached_per_resort(cache: SnapshotCache):
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.params.get("models") == "gfs_seamless":
            return httpx.Response(200, json={"daily": {"time": ["2026-01-10"], "snowfall_sum": [2.54]}})
        return httpx.Response(500)

    async def call(fetcher):
        first = await get_snowfall_chart(cache, ALTA, fetcher=fetcher)
        second = await get_snowfall_chart(cache, ALTA, fetcher=fetcher)
        return first, second

    first, second = _run(handler, call)

    # three models plus the archive, once
    assert len(requests) == 4
    assert set(first["models"]) == {"gfs", "ecmwf", "hrrr"}
    assert second["models"]["gfs"]["available"] is True
    assert second["models"]["ecmwf"]["available"] is False
    assert second["historical"] == []


def test_snowfall_chart_with_every_model_down_is_refetched(cache: SnapshotCache):
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(500)

    async def call(fetcher):
        first = await get_snowfall_chart(cache, ALTA, fetcher=fetcher)
        second = await get_snowfall_chart(cache, ALTA, fetcher=fetcher)
        return first, second

    first, second = _run(handler, call)

    assert len(requests) == 8
    assert all(model["available"] is False for model in second["models"].values())
    assert cache.store.get_live_snapshot("alta", "multi-model", utcnow()) is None


def test_season_comparison_with_archive_errors_is_not_cached(cache: SnapshotCache):
    archive = {"down": True}
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if archive["down"]:
            return httpx.Response(503)
        return httpx.Response(200, json={"daily": {"time": ["2025-11-20"], "snowfall_sum": [25.4]}})

    async def call(fetcher):
        outage = await get_season_snowfall(cache, "alta", today=date(2026, 1, 10), fetcher=fetcher)
        archive["down"] = False
        recovered = await get_season_snowfall(cache, "alta", today=date(2026, 1, 10), fetcher=fetcher)
        cached = await get_season_snowfall(cache, "alta", today=date(2026, 1, 10), fetcher=fetcher)
        return outage, recovered, cached

    outage, recovered, cached = _run(handler, call)

    assert outage["current_season"]["available"] is False
    assert outage["errors"] == ["Archive API error: 503"] * 3
    assert recovered["current_season"]["available"] is True
    assert recovered["current_season"]["total_snowfall"] == 10
    assert recovered["errors"] == []
    assert cached == recovered
    assert len(requests) == 6


def test_season_service_resolves_the_resort_first(cache: SnapshotCache):
    with pytest.raises(ResortNotFound):
        asyncio.run(get_season_snowfall(cache, "unknown"))
    with pytest.raises(MissingCoordinates):
        asyncio.run(get_season_snowfall(cache, "nowhere"))


def _depth_handler(calls: List[str], *, station_lat: float = 40.59, snotel_depth: float = 92.0, model_depth=None):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        if request.url.host == "powderlines.kellysoftware.org":
            station = {
                "station_name": "Alta Guard",
                "latitude": str(station_lat),
                "longitude": "-111.64",
                "data": [{"Date": "2026-01-10", "snow_depth": snotel_depth}],
            }
            return httpx.Response(200, json=[station])
        series = model_depth if model_depth is not None else [1.2, 1.25, None]
        return httpx.Response(200, json={"hourly": {"time": ["t0", "t1", "t2"], "snow_depth": series}})

    return handler


def test_snotel_station_in_range_wins():
    calls: List[str] = []
    reading = _run(_depth_handler(calls), lambda fetcher: snow_depth_fallback(ALTA, fetcher=fetcher))

    assert reading.resort_id == "alta"
    assert (reading.depth_inches, reading.source, reading.source_detail) == (92, "snotel", "Alta Guard")
    assert calls == ["powderlines.kellysoftware.org"]


def test_distant_station_falls_back_to_open_meteo():
    calls: List[str] = []
    reading = _run(_depth_handler(calls, station_lat=41.5), lambda fetcher: snow_depth_fallback(ALTA, fetcher=fetcher))

    assert (reading.depth_inches, reading.source) == (49, "open-meteo")
    assert calls == ["powderlines.kellysoftware.org", "api.open-meteo.com"]


def test_eastern_resort_skips_snotel():
    calls: List[str] = []
    reading = _run(_depth_handler(calls), lambda fetcher: snow_depth_fallback(STOWE, fetcher=fetcher))

    assert reading.source == "open-meteo"
    assert calls == ["api.open-meteo.com"]


def test_sync_snow_depth_counts_skips(cache: SnapshotCache):
    calls: List[str] = []
    handler = _depth_handler(calls, snotel_depth=0, model_depth=[0.0])

    summary = _run(
        handler,
        lambda fetcher: sync_snow_depth(cache.store, resorts=[STOWE, NO_COORDS], fetcher=fetcher, sleep=_no_sleep),
    )

    assert (summary.total, summary.success, summary.skipped, summary.failed) == (2, 0, 2, 0)
    assert cache.store.get_snow_depth("stowe") is None


def test_sync_snow_depth_stores_readings(cache: SnapshotCache):
    calls: List[str] = []

    summary = _run(
        _depth_handler(calls),
        lambda fetcher: sync_snow_depth(cache.store, resorts=[ALTA], fetcher=fetcher, sleep=_no_sleep),
    )

    assert summary.success == 1
    assert cache.store.get_snow_depth("alta").depth_inches == 92


def test_radar_frames_are_stored_once_and_listed(cache: SnapshotCache):
    now = utcnow()
    stamp = int(now.timestamp())
    payload = {
        "radar": {
            "past": [{"time": stamp - 600, "path": f"/v2/radar/{stamp - 600}"}],
            "nowcast": [{"time": stamp + 600, "path": f"/v2/radar/nowcast_{stamp + 600}"}],
        }
    }
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=payload)

    stale = RadarFrame(stamp - 30 * 3600, "/v2/radar/old", "old-url")
    cache.store.insert_radar_frame(stale)

    async def call(fetcher):
        await get_radar_frames(cache, fetcher=fetcher, now=now)
        return await get_radar_frames(cache, fetcher=fetcher, now=now)

    listing = _run(handler, call)

    assert len(requests) == 1
    assert listing["count"] == 2
    assert listing["oldest_frame"] == stamp - 600
    assert listing["frames"][0]["url"] == (
        f"https://tilecache.rainviewer.com/v2/radar/{stamp - 600}/512/{{z}}/{{x}}/{{y}}/6/1_1.png"
    )

    cleanup = cleanup_radar_frames(cache, now=now)
    assert cleanup["deleted"] == 1
    assert cleanup["deleted_before"] == int((now - timedelta(hours=24)).timestamp())


def test_radar_outage_keeps_stored_frames(cache: SnapshotCache):
    now = utcnow()
    cache.store.insert_radar_frame(RadarFrame(int(now.timestamp()) - 60, "/v2/radar/x", "x-url"))

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    listing = _run(handler, lambda fetcher: get_radar_frames(cache, fetcher=fetcher, now=now))

    assert listing["count"] == 1


def _photo_handler(requests: List[httpx.Request]):
    photo = {
        "id": "abc123",
        "urls": {"full": "https://images.unsplash.com/photo-abc123"},
        "blur_hash": "LEHV6nWB2yk8",
        "alt_description": "snowy ridge",
        "user": {"name": "Jo Doe", "links": {"html": "https://unsplash.com/@jodoe"}},
        "links": {"html": "https://unsplash.com/photos/abc123"},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.params["query"].startswith("Alta"):
            return httpx.Response(200, json={"results": []})
        return httpx.Response(200, json={"results": [photo]})

    return handler


def test_photo_falls_back_to_state_query(cache: SnapshotCache):
    requests: List[httpx.Request] = []
    config = AppConfig(api=ApiConfig(unsplash_api_key="test-key"))

    async def call(fetcher):
        first = await get_resort_photo(cache, ALTA, fetcher=fetcher, config=config)
        second = await get_resort_photo(cache, ALTA, fetcher=fetcher, config=config)
        return first, second

    first, second = _run(_photo_handler(requests), call)

    assert [request.url.params["query"] for request in requests] == [
        "Alta snow mountain",
        "Utah snowy mountain landscape",
    ]
    assert requests[0].headers["Authorization"] == "Client-ID test-key"
    assert first == second
    assert first["photographer_name"] == "Jo Doe"
    assert first["image_url"] == "https://images.unsplash.com/photo-abc123"


def test_photo_requires_api_key(cache: SnapshotCache):
    requests: List[httpx.Request] = []
    photo = _run(
        _photo_handler(requests),
        lambda fetcher: get_resort_photo(cache, ALTA, fetcher=fetcher, config=AppConfig()),
    )

    assert photo is None
    assert requests == []
