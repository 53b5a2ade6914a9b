from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from slopecast.api import create_app
from slopecast.config import ApiConfig, AppConfig, SchedulerConfig
from slopecast.errors import ConfigurationError
from slopecast.http_client import HttpFetcher
from slopecast.models import Resort
from slopecast.storage import SlopeStore

SECRET = "s3cret"
AUTH = {"Authorization": f"Bearer {SECRET}"}


async def _no_sleep(_: float) -> None:
    return None


def _config() -> AppConfig:
    return AppConfig(scheduler=SchedulerConfig(enabled=False), api=ApiConfig(cron_secret=SECRET))


def _store(tmp_path: Path) -> SlopeStore:
    store = SlopeStore(tmp_path / "api.db")
    store.upsert_resort(
        Resort(id="alta", name="Alta", slug="alta", state="Utah", latitude=40.588, longitude=-111.638)
    )
    store.upsert_resort(Resort(id="nowhere", name="Nowhere", slug="nowhere", state="Utah"))
    return store


def make_client(tmp_path: Path, handler: Callable[[httpx.Request], httpx.Response]) -> TestClient:
    fetcher = HttpFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), sleep=_no_sleep)
    return TestClient(create_app(_config(), _store(tmp_path), fetcher=fetcher))


def _unavailable(_: httpx.Request) -> httpx.Response:
    return httpx.Response(503)


def test_app_requires_database_path():
    with pytest.raises(ConfigurationError):
        create_app(_config())


def test_full_scrape_requires_secret(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    assert client.post("/api/scrape").status_code == 401
    response = client.post("/api/scrape", headers=AUTH)

    assert response.status_code == 200
    # neither catalog resort has a skiresort.info id
    assert response.json() == {"total": 2, "success": 0, "failed": 0, "skipped": 2, "errors": []}


def test_single_scrape(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    assert client.get("/api/scrape").status_code == 400
    assert client.get("/api/scrape", params={"resort": "alta"}).status_code == 404


def test_resort_lookup_errors_map_to_http_codes(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    missing = client.get("/api/forecast/unknown")
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Resort not found: unknown"}
    assert client.get("/api/season-snowfall/nowhere").status_code == 400


def test_forecast_outage_is_503(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    response = client.get("/api/forecast/alta")

    assert response.status_code == 503
    assert "503" in response.json()["detail"]


def test_snowfall_chart_degrades_per_model(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    response = client.get("/api/snowfall-chart/alta")

    assert response.status_code == 200
    body = response.json()
    assert body["resort"]["slug"] == "alta"
    assert {key: model["available"] for key, model in body["models"].items()} == {
        "gfs": False,
        "ecmwf": False,
        "hrrr": False,
    }


def test_radar_endpoints(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    listing = client.get("/api/radar")
    assert listing.status_code == 200
    assert listing.json()["count"] == 0

    assert client.delete("/api/radar").status_code == 401
    cleanup = client.delete("/api/radar", headers=AUTH)
    assert cleanup.status_code == 200
    assert cleanup.json()["deleted"] == 0


def test_snow_depth_single_resort_lookup(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "powderlines.kellysoftware.org":
            return httpx.Response(500)
        return httpx.Response(200, json={"hourly": {"time": ["t0"], "snow_depth": [1.0]}})

    client = make_client(tmp_path, handler)

    response = client.get("/api/snow-depth-sync", params={"resort": "alta", "save": "true"})

    assert response.status_code == 200
    body = response.json()
    assert body["saved"] is True
    assert body["snow_depth"]["depth_inches"] == 39
    assert body["snow_depth"]["source"] == "open-meteo"
    assert client.app.state.store.get_snow_depth("alta").depth_inches == 39


def test_full_snow_depth_sync_requires_secret(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    assert client.get("/api/snow-depth-sync").status_code == 401
    response = client.get("/api/snow-depth-sync", headers=AUTH)
    assert response.status_code == 200
    assert response.json()["total"] == 2


def test_photo_without_key_is_404(tmp_path: Path):
    client = make_client(tmp_path, _unavailable)

    assert client.get("/api/resorts/alta/photo").status_code == 404
