from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional

LIFT_TYPE_FIELDS = (
    "lifts_gondolas",
    "lifts_chairlifts_high_speed",
    "lifts_chairlifts_fixed_grip",
    "lifts_surface",
    "lifts_carpets",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise TypeError("expected a datetime or ISO-8601 string")


@dataclass
class ScrapedConditions:
    """Daily-changing conditions scraped from a resort page.

    Snow values are centimetres, terrain is kilometres. Any field the page
    did not yield stays ``None``; ``is_open`` is a best-effort heuristic.
    """

    snow_depth_summit: Optional[int] = None
    snow_depth_base: Optional[int] = None
    new_snow_24h: Optional[int] = None
    new_snow_48h: Optional[int] = None
    new_snow_7d: Optional[int] = None

    lifts_open: Optional[int] = None
    lifts_total: Optional[int] = None
    runs_open: Optional[int] = None
    runs_total: Optional[int] = None
    terrain_open_km: Optional[float] = None
    terrain_total_km: Optional[float] = None
    terrain_open_pct: Optional[int] = None

    is_open: bool = False
    season_start: Optional[str] = None
    season_end: Optional[str] = None
    last_snowfall: Optional[str] = None
    conditions: Optional[str] = None

    first_chair: Optional[str] = None
    last_chair: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScrapedConditions":
        names = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in names}
        if "is_open" in values:
            values["is_open"] = bool(values["is_open"])
        return cls(**values)


@dataclass
class ScrapedResortInfo:
    """Static resort facts. Elevations are metres, terrain kilometres."""

    elevation_base: Optional[int] = None
    elevation_summit: Optional[int] = None
    vertical_drop: Optional[int] = None

    terrain_total_km: Optional[float] = None
    terrain_easy_km: Optional[float] = None
    terrain_intermediate_km: Optional[float] = None
    terrain_difficult_km: Optional[float] = None
    terrain_easy_pct: Optional[int] = None
    terrain_intermediate_pct: Optional[int] = None
    terrain_difficult_pct: Optional[int] = None

    lifts_total: Optional[int] = None
    lifts_gondolas: Optional[int] = None
    lifts_chairlifts_high_speed: Optional[int] = None
    lifts_chairlifts_fixed_grip: Optional[int] = None
    lifts_surface: Optional[int] = None
    lifts_carpets: Optional[int] = None

    runs_total: Optional[int] = None

    def lift_component_total(self) -> Optional[int]:
        """Sum of the lift-type counts, or ``None`` when none were parsed."""
        counts = [getattr(self, name) for name in LIFT_TYPE_FIELDS]
        present = [count for count in counts if count is not None]
        if not present:
            return None
        return sum(present)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScrapedResortInfo":
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in names})


@dataclass
class ScrapeResult:
    conditions: ScrapedConditions
    info: ScrapedResortInfo

    def to_dict(self) -> Dict[str, Any]:
        return {"conditions": self.conditions.to_dict(), "info": self.info.to_dict()}


@dataclass
class Resort:
    """A row of the resort catalog."""

    id: str
    name: str
    slug: str
    state: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: Optional[str] = None
    skiresortinfo_id: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StoredConditions:
    resort_id: str
    scraped_date: date
    scraped_at: datetime
    conditions: ScrapedConditions


@dataclass
class StoredInfo:
    resort_id: str
    updated_at: datetime
    info: ScrapedResortInfo


@dataclass
class Snapshot:
    """One cached fetch result for a (resort, source) pair."""

    id: str
    resort_id: str
    source: str
    fetched_at: datetime
    expires_at: datetime
    payload: Any = None

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    def metadata(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "fetched_at": self.fetched_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass
class HourlyForecast:
    snapshot_id: str
    forecast_time: str
    temp_f: Optional[float] = None
    feels_like_f: Optional[float] = None
    snow_inches: Optional[float] = None
    precip_inches: Optional[float] = None
    wind_mph: Optional[float] = None
    gust_mph: Optional[float] = None
    humidity_pct: Optional[int] = None
    conditions: Optional[str] = None
    freezing_level_ft: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DailyForecast:
    snapshot_id: str
    forecast_date: str
    high_temp_f: Optional[float] = None
    low_temp_f: Optional[float] = None
    snow_total_inches: Optional[float] = None
    wind_max_mph: Optional[float] = None
    conditions_summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SnowDepthReading:
    resort_id: str
    depth_inches: int
    source: str  # "snotel" | "open-meteo"
    source_detail: str
    fetched_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resort_id": self.resort_id,
            "depth_inches": self.depth_inches,
            "source": self.source,
            "source_detail": self.source_detail,
            "fetched_at": self.fetched_at.isoformat(),
        }


@dataclass
class RadarFrame:
    frame_time: int
    path: str
    tile_url: str
    cached_at: datetime = field(default_factory=utcnow)
