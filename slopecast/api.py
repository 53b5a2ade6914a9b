from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from slopecast.config import AppConfig, app_config
from slopecast.logging import get_logger, setup_logging

from .cache import SnapshotCache
from .errors import MissingCoordinates, ResortNotFound, WeatherApiError
from .http_client import HttpFetcher, fetcher_scope
from .jobs import run_ingestion, run_snow_depth_sync
from .resorts import resolve_resort
from .scheduler import build_scheduler
from .scrapers import scrape_resort_conditions
from .services import (
    cleanup_radar_frames,
    get_hourly_models,
    get_radar_frames,
    get_resort_forecast,
    get_resort_photo,
    get_season_snowfall,
    get_snowfall_chart,
    snow_depth_fallback,
)
from .storage import SlopeStore

logger = get_logger(__name__)


class IngestionSummaryPayload(BaseModel):
    total: int
    success: int
    failed: int
    skipped: int
    errors: List[str]


class RadarFramePayload(BaseModel):
    time: int
    url: str


class RadarFramesResponse(BaseModel):
    frames: List[RadarFramePayload]
    count: int
    oldest_frame: Optional[int] = None
    newest_frame: Optional[int] = None


class RadarCleanupResponse(BaseModel):
    deleted: int
    deleted_before: int


class SnowDepthPayload(BaseModel):
    resort_id: str
    depth_inches: int
    source: str
    source_detail: str
    fetched_at: datetime


class SnowDepthLookupResponse(BaseModel):
    resort: str
    snow_depth: Optional[SnowDepthPayload] = None
    saved: bool = False


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[SlopeStore] = None,
    *,
    fetcher: Optional[HttpFetcher] = None,
) -> FastAPI:
    """Build the HTTP surface around one explicitly constructed store.

    Without ``store`` the database path from ``config`` is required and a
    missing one raises ``ConfigurationError`` here, not on first request.
    """
    config = config or app_config
    setup_logging(config.logging)
    store = store or SlopeStore.from_config(config)
    cache = SnapshotCache(store)

    app = FastAPI(title="Slopecast API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config
    app.state.store = store
    app.state.cache = cache

    @app.exception_handler(ResortNotFound)
    async def _resort_not_found(request: Request, exc: ResortNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(MissingCoordinates)
    async def _missing_coordinates(request: Request, exc: MissingCoordinates) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(WeatherApiError)
    async def _weather_unavailable(request: Request, exc: WeatherApiError) -> JSONResponse:
        logger.error("api.weather_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    def require_secret(request: Request) -> None:
        secret = config.api.cron_secret
        if secret and request.headers.get("authorization") != f"Bearer {secret}":
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.post("/api/scrape", response_model=IngestionSummaryPayload, dependencies=[Depends(require_secret)])
    async def scrape_all() -> Dict[str, Any]:
        summary = await run_ingestion(cache, config, fetcher=fetcher)
        return summary.to_dict()

    @app.get("/api/scrape")
    async def scrape_one(resort: Optional[str] = Query(default=None)) -> Dict[str, Any]:
        if not resort:
            raise HTTPException(status_code=400, detail="Missing resort parameter")
        async with fetcher_scope(
            fetcher, timeout=config.scraper.timeout, user_agent=config.scraper.user_agent
        ) as http:
            result = await scrape_resort_conditions(resort, fetcher=http, base_url=config.scraper.base_url)
        if result is None:
            raise HTTPException(status_code=404, detail=f"Could not scrape {resort}")
        return {"resort": resort, **result.to_dict()}

    @app.get("/api/forecast/{slug}")
    async def forecast(slug: str) -> Dict[str, Any]:
        resort = resolve_resort(store, slug)
        return await get_resort_forecast(cache, resort, fetcher=fetcher, config=config.cache)

    @app.get("/api/snowfall-chart/{slug}")
    async def snowfall_chart(slug: str) -> Dict[str, Any]:
        resort = resolve_resort(store, slug)
        return await get_snowfall_chart(cache, resort, fetcher=fetcher, config=config.cache)

    @app.get("/api/hourly-forecast/{slug}")
    async def hourly_forecast(slug: str) -> Dict[str, Any]:
        resort = resolve_resort(store, slug)
        return await get_hourly_models(cache, resort, fetcher=fetcher, config=config.cache)

    @app.get("/api/season-snowfall/{slug}")
    async def season_snowfall(slug: str) -> Dict[str, Any]:
        return await get_season_snowfall(cache, slug, fetcher=fetcher, config=config.cache)

    @app.get("/api/radar", response_model=RadarFramesResponse)
    async def radar_frames() -> Dict[str, Any]:
        return await get_radar_frames(cache, fetcher=fetcher)

    @app.delete("/api/radar", response_model=RadarCleanupResponse, dependencies=[Depends(require_secret)])
    async def radar_cleanup() -> Dict[str, Any]:
        return cleanup_radar_frames(cache)

    @app.get("/api/snow-depth-sync")
    async def snow_depth_sync(
        request: Request,
        resort: Optional[str] = Query(default=None),
        save: bool = Query(default=False),
    ) -> Dict[str, Any]:
        if resort:
            target = resolve_resort(store, resort)
            reading = await snow_depth_fallback(target, fetcher=fetcher)
            if reading is not None and save:
                store.upsert_snow_depth(reading)
            payload = SnowDepthLookupResponse(
                resort=target.slug,
                snow_depth=reading.to_dict() if reading else None,
                saved=bool(reading is not None and save),
            )
            return payload.model_dump(mode="json")

        require_secret(request)
        summary = await run_snow_depth_sync(cache, config, fetcher=fetcher)
        return IngestionSummaryPayload(**summary.to_dict()).model_dump()

    @app.get("/api/resorts/{slug}/photo")
    async def resort_photo(slug: str) -> Dict[str, Any]:
        resort = resolve_resort(store, slug, require_coordinates=False)
        photo = await get_resort_photo(cache, resort, fetcher=fetcher, config=config)
        if photo is None:
            raise HTTPException(status_code=404, detail="No photo available")
        return photo

    scheduler = build_scheduler(cache, config)

    @app.on_event("startup")
    async def _start_scheduler() -> None:
        if scheduler and not scheduler.running:
            logger.info("scheduler.start")
            scheduler.start()

    @app.on_event("shutdown")
    async def _stop_scheduler() -> None:
        if scheduler and scheduler.running:
            logger.info("scheduler.stop")
            scheduler.shutdown()

    return app
