from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import utcnow


@dataclass
class DailySnowfall:
    date: str
    snowfall_inches: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ModelForecast:
    """Per-model envelope: a failed model carries ``available=False`` and an error."""

    available: bool
    data: List[DailySnowfall] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def unavailable(cls, error: str) -> "ModelForecast":
        return cls(available=False, data=[], error=error)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "available": self.available,
            "data": [point.to_dict() for point in self.data],
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class MultiModelResponse:
    models: Dict[str, ModelForecast]
    historical: List[DailySnowfall] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "models": {name: forecast.to_dict() for name, forecast in self.models.items()},
            "historical": [point.to_dict() for point in self.historical],
            "fetched_at": self.fetched_at.isoformat(),
        }


@dataclass
class HourlyDataPoint:
    time: str
    temp_f: Optional[float] = None
    feels_like_f: Optional[float] = None
    snow_inches: Optional[float] = None
    precip_inches: Optional[float] = None
    wind_mph: Optional[float] = None
    gust_mph: Optional[float] = None
    humidity_pct: Optional[int] = None
    weather_code: Optional[int] = None
    conditions: str = "Unknown"
    freezing_level_ft: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HourlyModelForecast:
    available: bool
    data: List[HourlyDataPoint] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def unavailable(cls, error: str) -> "HourlyModelForecast":
        return cls(available=False, data=[], error=error)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "available": self.available,
            "data": [point.to_dict() for point in self.data],
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class MultiModelHourlyResponse:
    models: Dict[str, HourlyModelForecast]
    fetched_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "models": {name: forecast.to_dict() for name, forecast in self.models.items()},
            "fetched_at": self.fetched_at.isoformat(),
        }
