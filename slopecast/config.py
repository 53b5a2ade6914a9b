from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "defaults.yaml"
load_dotenv()


def _bool_from_env(value: str | None) -> Optional[bool]:
    if value is None:
        return None
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return None


def _float_from_env(value: str | None) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _merge_dicts(base: Dict, overrides: Mapping) -> Dict:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), Mapping):
            merged[key] = _merge_dicts(base[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> Dict:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text()) or {}


@dataclass
class DatabaseConfig:
    path: str = ""


@dataclass
class ScraperConfig:
    base_url: str = "https://www.skiresort.info"
    user_agent: str = "Mozilla/5.0 (compatible; SlopecastBot/1.0; +https://github.com/slopecast)"
    request_delay: float = 1.0
    concurrency: int = 1
    timeout: float = 15.0
    max_errors: int = 50


@dataclass
class WeatherConfig:
    timeout: float = 10.0
    forecast_days: int = 10
    hourly_limit: int = 72


@dataclass
class CacheConfig:
    forecast_ttl_minutes: float = 60
    radar_ttl_minutes: float = 5
    photo_ttl_days: float = 7
    retention_hours: float = 48

    @property
    def forecast_ttl(self) -> timedelta:
        return timedelta(minutes=self.forecast_ttl_minutes)

    @property
    def radar_ttl(self) -> timedelta:
        return timedelta(minutes=self.radar_ttl_minutes)

    @property
    def photo_ttl(self) -> timedelta:
        return timedelta(days=self.photo_ttl_days)

    @property
    def retention(self) -> timedelta:
        return timedelta(hours=self.retention_hours)


@dataclass
class SchedulerConfig:
    enabled: bool = True
    ingest_cron: str = "0 6 * * *"
    snow_depth_cron: str = "30 6 * * *"
    maintenance_cron: str = "0 * * * *"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json: bool = True


@dataclass
class ApiConfig:
    cron_secret: str = ""
    unsplash_api_key: str = ""


@dataclass
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)


def load_config(*, config_path: str | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    env = dict(os.environ if env is None else env)
    data = _load_yaml(_DEFAULT_CONFIG_PATH)

    explicit_path = config_path or env.get("SLOPECAST_CONFIG_PATH")
    if explicit_path:
        data = _merge_dicts(data, _load_yaml(Path(explicit_path)))

    database_data = dict(data.get("database") or {})
    db_override = env.get("SLOPECAST_DATABASE_PATH")
    if db_override:
        database_data["path"] = db_override

    scraper_data = dict(data.get("scraper") or {})
    delay_override = _float_from_env(env.get("SLOPECAST_SCRAPER_DELAY"))
    if delay_override is not None:
        scraper_data["request_delay"] = delay_override
    concurrency_override = _float_from_env(env.get("SLOPECAST_SCRAPER_CONCURRENCY"))
    if concurrency_override is not None:
        scraper_data["concurrency"] = int(concurrency_override)

    scheduler_data = dict(data.get("scheduler") or {})
    enabled_override = _bool_from_env(env.get("SLOPECAST_SCHEDULER_ENABLED"))
    if enabled_override is not None:
        scheduler_data["enabled"] = enabled_override

    logging_data = dict(data.get("logging") or {})
    level_override = env.get("SLOPECAST_LOG_LEVEL")
    if level_override:
        logging_data["level"] = level_override
    json_override = _bool_from_env(env.get("SLOPECAST_LOG_JSON"))
    if json_override is not None:
        logging_data["json"] = json_override

    api_data = dict(data.get("api") or {})
    secret_override = env.get("SLOPECAST_CRON_SECRET")
    if secret_override:
        api_data["cron_secret"] = secret_override
    unsplash_key = env.get("UNSPLASH_API_KEY")
    if unsplash_key:
        api_data["unsplash_api_key"] = unsplash_key

    return AppConfig(
        database=DatabaseConfig(**database_data),
        scraper=ScraperConfig(**scraper_data),
        weather=WeatherConfig(**(data.get("weather") or {})),
        cache=CacheConfig(**(data.get("cache") or {})),
        scheduler=SchedulerConfig(**scheduler_data),
        logging=LoggingConfig(**logging_data),
        api=ApiConfig(**api_data),
    )


app_config = load_config()
