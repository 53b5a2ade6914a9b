from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

import httpx

from slopecast.http_client import HttpFetcher
from slopecast.models import ScrapedResortInfo
from slopecast.scrapers import parse_conditions, parse_lift_details, parse_resort_info, scrape_resort_conditions
from slopecast.scrapers.base import page_text
from slopecast.scrapers.skiresortinfo import looks_open, resort_urls

FIXTURES = Path(__file__).parent / "fixtures"
BASE_URL = "https://www.skiresort.info"


def _fixture_text(name: str) -> str:
    return (FIXTURES / name).read_text()


async def _no_sleep(_: float) -> None:
    return None


def _scrape(handler: Callable[[httpx.Request], httpx.Response], upstream_id: str = "mammoth-mountain"):
    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with HttpFetcher(client=client, sleep=_no_sleep) as fetcher:
            return await scrape_resort_conditions(upstream_id, fetcher=fetcher, base_url=BASE_URL)

    return asyncio.run(run())


def _site_handler(lifts_status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    resort_html = _fixture_text("skiresortinfo_resort.html")
    lifts_html = _fixture_text("skiresortinfo_lifts.html")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/ski-resort/mammoth-mountain/":
            return httpx.Response(200, text=resort_html)
        if request.url.path == "/ski-resort/mammoth-mountain/ski-lifts/":
            return httpx.Response(lifts_status, text=lifts_html if lifts_status == 200 else "")
        return httpx.Response(404)

    return handler


def test_resort_urls_follow_site_layout() -> None:
    resort_url, lifts_url = resort_urls("mammoth-mountain", "https://www.skiresort.info/")
    assert resort_url == "https://www.skiresort.info/ski-resort/mammoth-mountain/"
    assert lifts_url == "https://www.skiresort.info/ski-resort/mammoth-mountain/ski-lifts/"


def test_page_text_drops_scripts_and_keeps_meta_description() -> None:
    text = page_text(_fixture_text("skiresortinfo_resort.html"))
    assert text.startswith("Ski resort Mammoth Mountain in California.")
    assert "99 of 100" not in text
    assert "color: green" not in text
    assert "  " not in text


def test_conditions_parsing() -> None:
    conditions = parse_conditions(page_text(_fixture_text("skiresortinfo_resort.html")))

    assert conditions.snow_depth_summit == 180
    assert conditions.snow_depth_base == 95
    assert conditions.new_snow_24h == 12
    assert conditions.new_snow_48h == 20
    assert conditions.new_snow_7d == 45
    assert (conditions.lifts_open, conditions.lifts_total) == (18, 25)
    assert (conditions.runs_open, conditions.runs_total) == (120, 150)
    assert conditions.terrain_open_km == 98.5
    assert conditions.terrain_total_km == 140.0
    assert conditions.terrain_open_pct == 70
    assert conditions.is_open is True
    assert conditions.season_start == "2025-11-14"
    assert conditions.season_end == "2026-05-25"
    assert conditions.last_snowfall == "2026-01-10"
    assert conditions.conditions == "Packed Powder"
    assert conditions.first_chair == "8:30 am"
    assert conditions.last_chair == "4:00 pm"


def test_resort_info_parsing() -> None:
    info = parse_resort_info(page_text(_fixture_text("skiresortinfo_resort.html")))

    assert (info.elevation_base, info.elevation_summit, info.vertical_drop) == (2424, 3369, 945)
    assert info.terrain_total_km == 140.0
    assert (info.terrain_easy_km, info.terrain_easy_pct) == (45.2, 32)
    assert (info.terrain_intermediate_km, info.terrain_intermediate_pct) == (60.3, 43)
    assert (info.terrain_difficult_km, info.terrain_difficult_pct) == (34.5, 25)
    assert info.lifts_total == 25
    assert info.runs_total == 150


def test_elevation_without_difference_derives_vertical() -> None:
    info = parse_resort_info("Elevation: 1,200 m - 1,900 m")
    assert (info.elevation_base, info.elevation_summit, info.vertical_drop) == (1200, 1900, 700)


def test_single_difficulty_tier_leaves_others_empty() -> None:
    info = parse_resort_info("Easy 12 km (60 %)")

    assert info.terrain_easy_km == 12.0
    assert info.terrain_easy_pct == 60
    assert info.terrain_intermediate_km is None
    assert info.terrain_intermediate_pct is None
    assert info.terrain_difficult_km is None
    assert info.terrain_difficult_pct is None


def test_lift_details_prefer_detailed_chairlift_entries() -> None:
    info = parse_lift_details(page_text(_fixture_text("skiresortinfo_lifts.html")), ScrapedResortInfo(lifts_total=25))

    assert info.lifts_chairlifts_high_speed == 10
    assert info.lifts_chairlifts_fixed_grip == 11
    assert info.lifts_gondolas == 3
    assert info.lifts_surface == 1
    assert info.lifts_carpets == 2
    assert info.lifts_total == 25


def test_chairlift_summary_counts_as_high_speed_without_details() -> None:
    info = parse_lift_details("Chairlift (4), T-bar lift/platter/button lift (2)", ScrapedResortInfo())

    assert info.lifts_chairlifts_high_speed == 4
    assert info.lifts_chairlifts_fixed_grip is None
    assert info.lifts_surface == 2
    assert info.lifts_total == 6


def test_page_without_matches_yields_empty_record() -> None:
    text = page_text("<html><body><p>Page under maintenance</p></body></html>")
    conditions = parse_conditions(text)
    info = parse_resort_info(text)

    assert conditions.is_open is False
    assert all(value is None for key, value in conditions.to_dict().items() if key != "is_open")
    assert all(value is None for value in info.to_dict().values())


def test_open_heuristic() -> None:
    assert looks_open("the resort is open today") is True
    assert looks_open("3 of 10 lifts running") is True
    assert looks_open("0 of 10 lifts running") is False
    assert looks_open("Resort is open") is False


def test_scrape_combines_both_pages() -> None:
    result = _scrape(_site_handler())

    assert result is not None
    assert result.conditions.lifts_open == 18
    assert result.info.lifts_chairlifts_high_speed == 10
    assert result.info.lifts_gondolas == 3


def test_scrape_returns_none_when_main_page_fails() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    assert _scrape(handler) is None


def test_scrape_returns_none_on_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert _scrape(handler) is None


def test_failed_lift_page_keeps_main_page_data() -> None:
    result = _scrape(_site_handler(lifts_status=404))

    assert result is not None
    assert result.conditions.snow_depth_summit == 180
    assert result.info.lifts_total == 25
    assert result.info.lifts_gondolas is None
    assert result.info.lifts_chairlifts_high_speed is None
