"""Open-Meteo forecast, archive and multi-model clients."""

from .client import ECMWF, GFS, HRRR, MODELS, ModelDescriptor, fetch_archive, fetch_forecast
from .codes import describe_weather_code
from .models import (
    DailySnowfall,
    HourlyDataPoint,
    HourlyModelForecast,
    ModelForecast,
    MultiModelHourlyResponse,
    MultiModelResponse,
)
from .multi_model import fetch_all_models, fetch_all_models_hourly, fetch_historical_snowfall

__all__ = [
    "DailySnowfall",
    "ECMWF",
    "GFS",
    "HRRR",
    "HourlyDataPoint",
    "HourlyModelForecast",
    "MODELS",
    "ModelDescriptor",
    "ModelForecast",
    "MultiModelHourlyResponse",
    "MultiModelResponse",
    "describe_weather_code",
    "fetch_all_models",
    "fetch_all_models_hourly",
    "fetch_archive",
    "fetch_forecast",
    "fetch_historical_snowfall",
]
