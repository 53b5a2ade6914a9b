"""Open-Meteo request layer.

The three forecast models differ only in endpoint, model parameter, horizon
and field coverage, so each one is a :class:`ModelDescriptor` and a single set
of request builders serves all of them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from slopecast.config import app_config
from slopecast.logging import get_logger

from ..errors import WeatherApiError
from ..http_client import HttpFetcher, fetcher_scope

logger = get_logger(__name__)

FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
ECMWF_URL = "https://api.open-meteo.com/v1/ecmwf"
ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"

HOURLY_FIELDS = (
    "temperature_2m",
    "apparent_temperature",
    "snowfall",
    "precipitation",
    "wind_speed_10m",
    "wind_gusts_10m",
    "relative_humidity_2m",
    "weather_code",
)

FORECAST_HOURLY_FIELDS = HOURLY_FIELDS + ("freezing_level_height", "snow_depth")

FORECAST_DAILY_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "snowfall_sum",
    "wind_speed_10m_max",
    "weather_code",
)

IMPERIAL_UNITS = {
    "temperature_unit": "fahrenheit",
    "wind_speed_unit": "mph",
    "precipitation_unit": "inch",
}

SHORT_RANGE_HOURS = 48
DEFAULT_TIMEZONE = "America/Los_Angeles"


@dataclass(frozen=True)
class ModelDescriptor:
    key: str
    label: str
    endpoint: str
    model_param: Optional[str]
    horizon_days: Optional[int]
    daily: bool
    freezing_level: bool

    @property
    def hourly_fields(self) -> Tuple[str, ...]:
        if self.freezing_level:
            return HOURLY_FIELDS + ("freezing_level_height",)
        return HOURLY_FIELDS

    def _base_params(self, latitude: float, longitude: float, timezone: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "latitude": latitude,
            "longitude": longitude,
            "timezone": timezone,
        }
        if self.model_param:
            params["models"] = self.model_param
        return params

    def daily_snowfall_params(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """Daily snowfall sums (cm), or hourly snowfall for models without a daily series."""
        params = self._base_params(latitude, longitude, "auto")
        if self.daily:
            params["daily"] = "snowfall_sum"
            params["forecast_days"] = self.horizon_days
        else:
            params["hourly"] = "snowfall"
            params["forecast_hours"] = SHORT_RANGE_HOURS
        return params

    def hourly_params(self, latitude: float, longitude: float, timezone: str) -> Dict[str, Any]:
        params = self._base_params(latitude, longitude, timezone)
        params["hourly"] = ",".join(self.hourly_fields)
        params.update(IMPERIAL_UNITS)
        params["forecast_hours"] = SHORT_RANGE_HOURS
        return params


GFS = ModelDescriptor(
    key="gfs",
    label="GFS",
    endpoint=FORECAST_URL,
    model_param="gfs_seamless",
    horizon_days=16,
    daily=True,
    freezing_level=True,
)
# The ECMWF endpoint does not serve freezing_level_height.
ECMWF = ModelDescriptor(
    key="ecmwf",
    label="ECMWF",
    endpoint=ECMWF_URL,
    model_param=None,
    horizon_days=15,
    daily=True,
    freezing_level=False,
)
HRRR = ModelDescriptor(
    key="hrrr",
    label="HRRR",
    endpoint=FORECAST_URL,
    model_param="hrrr_conus",
    horizon_days=None,
    daily=False,
    freezing_level=True,
)

MODELS = (GFS, ECMWF, HRRR)


async def request_json(
    url: str,
    params: Mapping[str, Any],
    *,
    label: str,
    fetcher: HttpFetcher | None = None,
) -> Dict[str, Any]:
    """GET an Open-Meteo endpoint, raising :class:`WeatherApiError` on any failure."""
    async with fetcher_scope(fetcher, timeout=app_config.weather.timeout) as http:
        try:
            response = await http.get(url, params=params, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise WeatherApiError(f"{label} request failed: {exc}") from exc

        if not response.is_success:
            raise WeatherApiError(f"{label} API error: {response.status_code}", response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise WeatherApiError(f"{label} returned invalid JSON", response.status_code) from exc

    if not isinstance(data, dict):
        raise WeatherApiError(f"{label} returned an unexpected payload", response.status_code)
    return data


async def fetch_forecast(
    latitude: float,
    longitude: float,
    *,
    timezone: str | None = None,
    forecast_days: int | None = None,
    fetcher: HttpFetcher | None = None,
) -> Dict[str, Any]:
    """Fetch the combined hourly + daily forecast in imperial units.

    Snowfall and precipitation come back in inches because of the unit
    parameters; freezing level and snow depth stay in metres.
    """
    params: Dict[str, Any] = {
        "latitude": latitude,
        "longitude": longitude,
        "timezone": timezone or DEFAULT_TIMEZONE,
        "hourly": ",".join(FORECAST_HOURLY_FIELDS),
        "daily": ",".join(FORECAST_DAILY_FIELDS),
        "forecast_days": forecast_days or app_config.weather.forecast_days,
    }
    params.update(IMPERIAL_UNITS)
    logger.info("weather.forecast_request", latitude=latitude, longitude=longitude)
    return await request_json(FORECAST_URL, params, label="Open-Meteo", fetcher=fetcher)


async def fetch_archive(
    latitude: float,
    longitude: float,
    start_date: str,
    end_date: str,
    *,
    fetcher: HttpFetcher | None = None,
) -> Dict[str, Any]:
    """Fetch daily snowfall sums (cm) for an inclusive historical date range."""
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "start_date": start_date,
        "end_date": end_date,
        "daily": "snowfall_sum",
        "timezone": "auto",
    }
    return await request_json(ARCHIVE_URL, params, label="Archive", fetcher=fetcher)


async def fetch_snow_depth(
    latitude: float,
    longitude: float,
    *,
    fetcher: HttpFetcher | None = None,
) -> Dict[str, Any]:
    """Fetch today's modelled hourly snow depth (metres)."""
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "hourly": "snow_depth",
        "forecast_days": 1,
    }
    return await request_json(FORECAST_URL, params, label="Open-Meteo", fetcher=fetcher)
