"""Read-through services behind the API and scheduler."""

from .forecast import get_hourly_models, get_resort_forecast, get_snowfall_chart
from .photos import get_resort_photo
from .radar import cleanup_radar_frames, get_radar_frames, refresh_radar_frames
from .season import get_season_snowfall
from .snow_depth import snow_depth_fallback, sync_snow_depth

__all__ = [
    "cleanup_radar_frames",
    "get_hourly_models",
    "get_radar_frames",
    "get_resort_forecast",
    "get_resort_photo",
    "get_season_snowfall",
    "get_snowfall_chart",
    "refresh_radar_frames",
    "snow_depth_fallback",
    "sync_snow_depth",
]
