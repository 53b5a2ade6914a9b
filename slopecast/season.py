"""Season-over-season cumulative snowfall comparison.

Seasons run Nov 1 to Apr 30 and are named by their starting year. Every
series is indexed by days since its own season start, so two calendar years
overlay on one "day of season" axis.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from slopecast.logging import get_logger

from .errors import WeatherApiError
from .extraction import cm_to_inches, round_half_up
from .http_client import HttpFetcher, fetcher_scope
from .models import utcnow
from .weather.client import fetch_archive

logger = get_logger(__name__)

SEASON_START_MONTH = 11
SEASON_END_MONTH = 4
SEASON_END_DAY = 30


@dataclass(frozen=True)
class SeasonWindow:
    start_year: int
    start: date
    end: date

    @property
    def length_days(self) -> int:
        return (self.end - self.start).days


def season_start_year(reference: date) -> int:
    """November and December belong to the season starting that year."""
    if reference.month >= SEASON_START_MONTH:
        return reference.year
    return reference.year - 1


def season_window(start_year: int) -> SeasonWindow:
    return SeasonWindow(
        start_year=start_year,
        start=date(start_year, SEASON_START_MONTH, 1),
        end=date(start_year + 1, SEASON_END_MONTH, SEASON_END_DAY),
    )


def day_of_season(day: date, window: SeasonWindow) -> int:
    return (day - window.start).days


def days_into_season(today: date, window: SeasonWindow) -> int:
    """Elapsed days, floored at 0 and clipped to the season end."""
    return max(0, min(day_of_season(today, window), window.length_days))


def last_season_equivalent(days_into: int, last: SeasonWindow) -> date:
    return min(last.start + timedelta(days=days_into), last.end)


def percent_of_last_season(current_total: float, last_to_date_total: float) -> int:
    if last_to_date_total <= 0:
        return 0
    return round_half_up(current_total / last_to_date_total * 100)


@dataclass
class SeasonPoint:
    day: int
    date: str
    cumulative_inches: float

    def to_dict(self) -> Dict[str, Any]:
        return {"day": self.day, "date": self.date, "cumulative_inches": self.cumulative_inches}


def cumulative_series(
    times: Sequence[str],
    snowfall_cm: Sequence[Optional[float]],
    season_start: date,
) -> List[SeasonPoint]:
    """Running snowfall totals in inches, keyed by day offset from ``season_start``."""
    running_cm = 0.0
    points: List[SeasonPoint] = []
    for index, day in enumerate(times):
        value = snowfall_cm[index] if index < len(snowfall_cm) else None
        running_cm += value or 0
        offset = (date.fromisoformat(day) - season_start).days
        points.append(SeasonPoint(day=offset, date=day, cumulative_inches=cm_to_inches(running_cm)))
    return points


@dataclass
class SeasonSeries:
    start_date: date
    end_date: date
    available: bool = True
    total_cm: float = 0.0
    points: List[SeasonPoint] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def total_inches(self) -> float:
        return self.total_cm / 2.54

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "available": self.available,
            "total_inches": round_half_up(self.total_inches),
            "series": [point.to_dict() for point in self.points],
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class SeasonComparison:
    current_window: SeasonWindow
    last_window: SeasonWindow
    days_into_season: int
    current: SeasonSeries
    last_to_date: SeasonSeries
    last_full: SeasonSeries

    @property
    def percent_of_last_season(self) -> int:
        return percent_of_last_season(self.current.total_inches, self.last_to_date.total_inches)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_season": {
                "season": self.current_window.start_year,
                "start_date": self.current.start_date.isoformat(),
                "end_date": self.current.end_date.isoformat(),
                "days_into_season": self.days_into_season,
                "total_snowfall": round_half_up(self.current.total_inches),
                "available": self.current.available,
                "series": [point.to_dict() for point in self.current.points],
            },
            "last_season": {
                "season": self.last_window.start_year,
                "start_date": self.last_window.start.isoformat(),
                "end_date": self.last_window.end.isoformat(),
                "equivalent_end_date": self.last_to_date.end_date.isoformat(),
                "total_snowfall": round_half_up(self.last_to_date.total_inches),
                "full_season_total": round_half_up(self.last_full.total_inches),
                "available": self.last_to_date.available and self.last_full.available,
                "series": [point.to_dict() for point in self.last_full.points],
            },
            "percent_of_last_season": self.percent_of_last_season,
            "errors": [
                series.error
                for series in (self.current, self.last_to_date, self.last_full)
                if series.error is not None
            ],
        }


def _series_from_archive(data: Mapping[str, Any], start: date, end: date, season_start: date) -> SeasonSeries:
    daily = data.get("daily") or {}
    times = daily.get("time") or []
    values = daily.get("snowfall_sum") or []
    total_cm = sum(value or 0 for value in values)
    return SeasonSeries(
        start_date=start,
        end_date=end,
        total_cm=total_cm,
        points=cumulative_series(times, values, season_start),
    )


async def fetch_season_series(
    latitude: float,
    longitude: float,
    start: date,
    end: date,
    *,
    season_start: date,
    fetcher: HttpFetcher,
) -> SeasonSeries:
    try:
        data = await fetch_archive(latitude, longitude, start.isoformat(), end.isoformat(), fetcher=fetcher)
    except WeatherApiError as exc:
        logger.warning(
            "season.series_unavailable",
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            error=str(exc),
        )
        return SeasonSeries(start_date=start, end_date=end, available=False, error=str(exc))
    return _series_from_archive(data, start, end, season_start)


async def compute_season_snowfall(
    latitude: float,
    longitude: float,
    *,
    today: Optional[date] = None,
    fetcher: HttpFetcher | None = None,
) -> SeasonComparison:
    """Fetch the three archive ranges in parallel and build the comparison."""
    today = today or utcnow().date()
    current = season_window(season_start_year(today))
    last = season_window(current.start_year - 1)

    elapsed = days_into_season(today, current)
    current_end = min(today, current.end)
    last_equivalent_end = last_season_equivalent(elapsed, last)

    async with fetcher_scope(fetcher) as http:
        current_series, last_to_date, last_full = await asyncio.gather(
            fetch_season_series(latitude, longitude, current.start, current_end, season_start=current.start, fetcher=http),
            fetch_season_series(latitude, longitude, last.start, last_equivalent_end, season_start=last.start, fetcher=http),
            fetch_season_series(latitude, longitude, last.start, last.end, season_start=last.start, fetcher=http),
        )

    comparison = SeasonComparison(
        current_window=current,
        last_window=last,
        days_into_season=elapsed,
        current=current_series,
        last_to_date=last_to_date,
        last_full=last_full,
    )
    logger.info(
        "season.computed",
        season=current.start_year,
        days_into_season=elapsed,
        percent_of_last_season=comparison.percent_of_last_season,
    )
    return comparison
