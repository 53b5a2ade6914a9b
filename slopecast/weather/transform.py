from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..extraction import cm_to_inches, meters_to_feet, round_half_up
from ..models import DailyForecast, HourlyForecast
from .codes import describe_weather_code
from .models import DailySnowfall, HourlyDataPoint

HOURLY_ROW_LIMIT = 72


def _at(series: Optional[Sequence[Any]], index: int) -> Any:
    if not series or index >= len(series):
        return None
    return series[index]


def _int_or_none(value: Any) -> Optional[int]:
    return None if value is None else round_half_up(value)


def sum_hourly_by_date(times: Sequence[str], values: Sequence[Optional[float]]) -> Dict[str, float]:
    """Group hourly samples by the date part of their timestamp and sum them.

    Missing samples count as zero and a short final day needs no special case.
    """
    totals: Dict[str, float] = {}
    for index, timestamp in enumerate(times):
        day = timestamp.split("T")[0]
        totals[day] = totals.get(day, 0.0) + (_at(values, index) or 0)
    return totals


def aggregate_hourly_to_daily(times: Sequence[str], values: Sequence[Optional[float]]) -> List[DailySnowfall]:
    """Daily snowfall in inches from hourly centimetre samples, ordered by date."""
    totals = sum_hourly_by_date(times, values)
    return [DailySnowfall(date=day, snowfall_inches=cm_to_inches(total, 2)) for day, total in sorted(totals.items())]


def daily_snowfall_from_sums(daily: Mapping[str, Any]) -> List[DailySnowfall]:
    times = daily.get("time") or []
    sums = daily.get("snowfall_sum") or []
    return [
        DailySnowfall(date=day, snowfall_inches=cm_to_inches(_at(sums, index) or 0, 2))
        for index, day in enumerate(times)
    ]


def _snow_to_inches(value: Optional[float], unit: str) -> Optional[float]:
    if value is None:
        return None
    if unit.startswith("cm"):
        return cm_to_inches(value, 2)
    return round(value, 2)


def hourly_points(
    hourly: Mapping[str, Any],
    *,
    freezing_level: bool,
    snowfall_unit: str = "inch",
) -> List[HourlyDataPoint]:
    points: List[HourlyDataPoint] = []
    for index, timestamp in enumerate(hourly.get("time") or []):
        code = _at(hourly.get("weather_code"), index)
        freezing = _at(hourly.get("freezing_level_height"), index) if freezing_level else None
        points.append(
            HourlyDataPoint(
                time=timestamp,
                temp_f=_at(hourly.get("temperature_2m"), index),
                feels_like_f=_at(hourly.get("apparent_temperature"), index),
                snow_inches=_snow_to_inches(_at(hourly.get("snowfall"), index), snowfall_unit),
                precip_inches=_at(hourly.get("precipitation"), index),
                wind_mph=_at(hourly.get("wind_speed_10m"), index),
                gust_mph=_at(hourly.get("wind_gusts_10m"), index),
                humidity_pct=_int_or_none(_at(hourly.get("relative_humidity_2m"), index)),
                weather_code=code,
                conditions=describe_weather_code(code),
                freezing_level_ft=meters_to_feet(freezing) if freezing is not None else None,
            )
        )
    return points


def transform_hourly_forecasts(
    response: Mapping[str, Any],
    snapshot_id: str,
    *,
    limit: int = HOURLY_ROW_LIMIT,
) -> List[HourlyForecast]:
    """Derive hourly rows (first ``limit`` hours) from a forecast payload."""
    hourly = response.get("hourly") or {}
    rows: List[HourlyForecast] = []
    for index, timestamp in enumerate((hourly.get("time") or [])[:limit]):
        freezing = _at(hourly.get("freezing_level_height"), index)
        rows.append(
            HourlyForecast(
                snapshot_id=snapshot_id,
                forecast_time=timestamp,
                temp_f=_at(hourly.get("temperature_2m"), index),
                feels_like_f=_at(hourly.get("apparent_temperature"), index),
                snow_inches=_at(hourly.get("snowfall"), index),
                precip_inches=_at(hourly.get("precipitation"), index),
                wind_mph=_at(hourly.get("wind_speed_10m"), index),
                gust_mph=_at(hourly.get("wind_gusts_10m"), index),
                humidity_pct=_int_or_none(_at(hourly.get("relative_humidity_2m"), index)),
                conditions=describe_weather_code(_at(hourly.get("weather_code"), index)),
                # a zero freezing level is reported as missing
                freezing_level_ft=meters_to_feet(freezing) if freezing else None,
            )
        )
    return rows


def transform_daily_forecasts(response: Mapping[str, Any], snapshot_id: str) -> List[DailyForecast]:
    daily = response.get("daily") or {}
    return [
        DailyForecast(
            snapshot_id=snapshot_id,
            forecast_date=day,
            high_temp_f=_at(daily.get("temperature_2m_max"), index),
            low_temp_f=_at(daily.get("temperature_2m_min"), index),
            snow_total_inches=_at(daily.get("snowfall_sum"), index),
            wind_max_mph=_at(daily.get("wind_speed_10m_max"), index),
            conditions_summary=describe_weather_code(_at(daily.get("weather_code"), index)),
        )
        for index, day in enumerate(daily.get("time") or [])
    ]
