from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .config import AppConfig
from .errors import ConfigurationError
from .models import (
    DailyForecast,
    HourlyForecast,
    RadarFrame,
    Resort,
    ScrapedConditions,
    ScrapedResortInfo,
    Snapshot,
    SnowDepthReading,
    StoredConditions,
    StoredInfo,
    parse_timestamp,
    utcnow,
)

_CONDITION_COLUMNS = tuple(ScrapedConditions.__dataclass_fields__)
_INFO_COLUMNS = tuple(ScrapedResortInfo.__dataclass_fields__)
_HOURLY_COLUMNS = tuple(HourlyForecast.__dataclass_fields__)
_DAILY_COLUMNS = tuple(DailyForecast.__dataclass_fields__)
_RESORT_COLUMNS = tuple(Resort.__dataclass_fields__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS resorts (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        state TEXT NOT NULL DEFAULT '',
        latitude REAL,
        longitude REAL,
        timezone TEXT,
        skiresortinfo_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS resort_conditions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        resort_id TEXT NOT NULL REFERENCES resorts(id),
        scraped_date TEXT NOT NULL,
        scraped_at TEXT NOT NULL,
        snow_depth_summit INTEGER,
        snow_depth_base INTEGER,
        new_snow_24h INTEGER,
        new_snow_48h INTEGER,
        new_snow_7d INTEGER,
        lifts_open INTEGER,
        lifts_total INTEGER,
        runs_open INTEGER,
        runs_total INTEGER,
        terrain_open_km REAL,
        terrain_total_km REAL,
        terrain_open_pct INTEGER,
        is_open INTEGER NOT NULL DEFAULT 0,
        season_start TEXT,
        season_end TEXT,
        last_snowfall TEXT,
        conditions TEXT,
        first_chair TEXT,
        last_chair TEXT
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_conditions_resort_date
    ON resort_conditions(resort_id, scraped_date)
    """,
    """
    CREATE TABLE IF NOT EXISTS resort_info (
        resort_id TEXT PRIMARY KEY REFERENCES resorts(id),
        updated_at TEXT NOT NULL,
        elevation_base INTEGER,
        elevation_summit INTEGER,
        vertical_drop INTEGER,
        terrain_total_km REAL,
        terrain_easy_km REAL,
        terrain_intermediate_km REAL,
        terrain_difficult_km REAL,
        terrain_easy_pct INTEGER,
        terrain_intermediate_pct INTEGER,
        terrain_difficult_pct INTEGER,
        lifts_total INTEGER,
        lifts_gondolas INTEGER,
        lifts_chairlifts_high_speed INTEGER,
        lifts_chairlifts_fixed_grip INTEGER,
        lifts_surface INTEGER,
        lifts_carpets INTEGER,
        runs_total INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS snapshots (
        id TEXT PRIMARY KEY,
        resort_id TEXT NOT NULL,
        source TEXT NOT NULL,
        fetched_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        payload TEXT
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_snapshots_key
    ON snapshots(resort_id, source, expires_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS hourly_forecasts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        snapshot_id TEXT NOT NULL REFERENCES snapshots(id) ON DELETE CASCADE,
        forecast_time TEXT NOT NULL,
        temp_f REAL,
        feels_like_f REAL,
        snow_inches REAL,
        precip_inches REAL,
        wind_mph REAL,
        gust_mph REAL,
        humidity_pct INTEGER,
        conditions TEXT,
        freezing_level_ft INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS daily_forecasts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        snapshot_id TEXT NOT NULL REFERENCES snapshots(id) ON DELETE CASCADE,
        forecast_date TEXT NOT NULL,
        high_temp_f REAL,
        low_temp_f REAL,
        snow_total_inches REAL,
        wind_max_mph REAL,
        conditions_summary TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS snow_depth_readings (
        resort_id TEXT PRIMARY KEY,
        depth_inches INTEGER NOT NULL,
        source TEXT NOT NULL,
        source_detail TEXT NOT NULL,
        fetched_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS radar_frames (
        frame_time INTEGER PRIMARY KEY,
        path TEXT NOT NULL,
        tile_url TEXT NOT NULL,
        cached_at TEXT NOT NULL
    )
    """,
)


def _timestamp(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class SlopeStore:
    """SQLite-backed storage client shared by the ingestion, cache and API layers.

    Construct it once at start-up and pass it around; every method opens its
    own short-lived connection, and every write is a single statement.
    """

    def __init__(self, db_path: Path | str) -> None:
        if not str(db_path):
            raise ConfigurationError("database path is required")
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @classmethod
    def from_config(cls, config: AppConfig) -> "SlopeStore":
        if not config.database.path:
            raise ConfigurationError(
                "database.path is not configured (set SLOPECAST_DATABASE_PATH)"
            )
        return cls(config.database.path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        with closing(self._connect()) as conn, conn:
            return conn.execute(sql, tuple(params)).rowcount

    def _executemany(self, sql: str, rows: List[tuple]) -> int:
        if not rows:
            return 0
        with closing(self._connect()) as conn, conn:
            return conn.executemany(sql, rows).rowcount

    def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        with closing(self._connect()) as conn:
            return conn.execute(sql, tuple(params)).fetchall()

    def _fetchone(self, sql: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        with closing(self._connect()) as conn:
            return conn.execute(sql, tuple(params)).fetchone()

    def _ensure_schema(self) -> None:
        with closing(self._connect()) as conn, conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    # Resorts

    def upsert_resort(self, resort: Resort) -> None:
        updates = ", ".join(f"{column} = excluded.{column}" for column in _RESORT_COLUMNS[1:])
        self._execute(
            f"""
            INSERT INTO resorts ({", ".join(_RESORT_COLUMNS)})
            VALUES ({_placeholders(len(_RESORT_COLUMNS))})
            ON CONFLICT(id) DO UPDATE SET {updates}
            """,
            (getattr(resort, column) for column in _RESORT_COLUMNS),
        )

    def get_resort(self, resort_id: str) -> Optional[Resort]:
        row = self._fetchone("SELECT * FROM resorts WHERE id = ?", (resort_id,))
        return Resort(**dict(row)) if row else None

    def get_resort_by_slug(self, slug: str) -> Optional[Resort]:
        row = self._fetchone("SELECT * FROM resorts WHERE slug = ?", (slug,))
        return Resort(**dict(row)) if row else None

    def list_resorts(self, *, with_upstream_id: bool = False) -> List[Resort]:
        query = "SELECT * FROM resorts"
        if with_upstream_id:
            query += " WHERE skiresortinfo_id IS NOT NULL AND skiresortinfo_id != ''"
        query += " ORDER BY name"
        return [Resort(**dict(row)) for row in self._fetchall(query)]

    # Conditions (append-only)

    def add_conditions(
        self,
        resort_id: str,
        conditions: ScrapedConditions,
        *,
        scraped_at: Optional[datetime] = None,
    ) -> None:
        scraped_at = scraped_at or utcnow()
        data = conditions.to_dict()
        data["is_open"] = 1 if conditions.is_open else 0
        columns = ("resort_id", "scraped_date", "scraped_at") + _CONDITION_COLUMNS
        values = [resort_id, scraped_at.date().isoformat(), _timestamp(scraped_at)]
        values.extend(data[column] for column in _CONDITION_COLUMNS)
        self._execute(
            f"INSERT INTO resort_conditions ({', '.join(columns)}) VALUES ({_placeholders(len(columns))})",
            values,
        )

    def latest_conditions(self, resort_id: str) -> Optional[StoredConditions]:
        row = self._fetchone(
            """
            SELECT * FROM resort_conditions
            WHERE resort_id = ?
            ORDER BY scraped_at DESC, id DESC
            LIMIT 1
            """,
            (resort_id,),
        )
        return self._row_to_conditions(row) if row else None

    def list_conditions(self, resort_id: str, limit: Optional[int] = None) -> List[StoredConditions]:
        query = "SELECT * FROM resort_conditions WHERE resort_id = ? ORDER BY scraped_at DESC, id DESC"
        params: List[object] = [resort_id]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        return [self._row_to_conditions(row) for row in self._fetchall(query, params)]

    @staticmethod
    def _row_to_conditions(row: sqlite3.Row) -> StoredConditions:
        data = dict(row)
        return StoredConditions(
            resort_id=data["resort_id"],
            scraped_date=date.fromisoformat(data["scraped_date"]),
            scraped_at=parse_timestamp(data["scraped_at"]),
            conditions=ScrapedConditions.from_dict(data),
        )

    # Info (upsert in place)

    def upsert_info(
        self,
        resort_id: str,
        info: ScrapedResortInfo,
        *,
        updated_at: Optional[datetime] = None,
    ) -> None:
        updated_at = updated_at or utcnow()
        data = info.to_dict()
        columns = ("resort_id", "updated_at") + _INFO_COLUMNS
        updates = ", ".join(f"{column} = excluded.{column}" for column in columns[1:])
        values = [resort_id, _timestamp(updated_at)]
        values.extend(data[column] for column in _INFO_COLUMNS)
        self._execute(
            f"""
            INSERT INTO resort_info ({", ".join(columns)})
            VALUES ({_placeholders(len(columns))})
            ON CONFLICT(resort_id) DO UPDATE SET {updates}
            """,
            values,
        )

    def get_info(self, resort_id: str) -> Optional[StoredInfo]:
        row = self._fetchone("SELECT * FROM resort_info WHERE resort_id = ?", (resort_id,))
        if not row:
            return None
        data = dict(row)
        return StoredInfo(
            resort_id=data["resort_id"],
            updated_at=parse_timestamp(data["updated_at"]),
            info=ScrapedResortInfo.from_dict(data),
        )

    # Snapshots and derived forecast rows

    def insert_snapshot(self, snapshot: Snapshot) -> None:
        self._execute(
            """
            INSERT INTO snapshots (id, resort_id, source, fetched_at, expires_at, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.id,
                snapshot.resort_id,
                snapshot.source,
                _timestamp(snapshot.fetched_at),
                _timestamp(snapshot.expires_at),
                json.dumps(snapshot.payload),
            ),
        )

    def get_live_snapshot(self, resort_id: str, source: str, now: datetime) -> Optional[Snapshot]:
        """Newest snapshot for the key that has not expired at ``now``."""
        row = self._fetchone(
            """
            SELECT * FROM snapshots
            WHERE resort_id = ? AND source = ? AND expires_at > ?
            ORDER BY fetched_at DESC
            LIMIT 1
            """,
            (resort_id, source, _timestamp(now)),
        )
        if not row:
            return None
        return Snapshot(
            id=row["id"],
            resort_id=row["resort_id"],
            source=row["source"],
            fetched_at=parse_timestamp(row["fetched_at"]),
            expires_at=parse_timestamp(row["expires_at"]),
            payload=json.loads(row["payload"]) if row["payload"] is not None else None,
        )

    def insert_hourly_forecasts(self, rows: List[HourlyForecast]) -> int:
        return self._executemany(
            f"INSERT INTO hourly_forecasts ({', '.join(_HOURLY_COLUMNS)}) VALUES ({_placeholders(len(_HOURLY_COLUMNS))})",
            [tuple(getattr(row, column) for column in _HOURLY_COLUMNS) for row in rows],
        )

    def insert_daily_forecasts(self, rows: List[DailyForecast]) -> int:
        return self._executemany(
            f"INSERT INTO daily_forecasts ({', '.join(_DAILY_COLUMNS)}) VALUES ({_placeholders(len(_DAILY_COLUMNS))})",
            [tuple(getattr(row, column) for column in _DAILY_COLUMNS) for row in rows],
        )

    def list_hourly_forecasts(self, snapshot_id: str) -> List[HourlyForecast]:
        rows = self._fetchall(
            f"SELECT {', '.join(_HOURLY_COLUMNS)} FROM hourly_forecasts WHERE snapshot_id = ? ORDER BY forecast_time",
            (snapshot_id,),
        )
        return [HourlyForecast(**dict(row)) for row in rows]

    def list_daily_forecasts(self, snapshot_id: str) -> List[DailyForecast]:
        rows = self._fetchall(
            f"SELECT {', '.join(_DAILY_COLUMNS)} FROM daily_forecasts WHERE snapshot_id = ? ORDER BY forecast_date",
            (snapshot_id,),
        )
        return [DailyForecast(**dict(row)) for row in rows]

    def delete_snapshot(self, snapshot_id: str) -> int:
        return self._execute("DELETE FROM snapshots WHERE id = ?", (snapshot_id,))

    def prune_snapshots(self, before: datetime) -> int:
        """Delete snapshots fetched before ``before``; their forecast rows cascade.

        Returns the number of deleted snapshots.
        """
        return self._execute("DELETE FROM snapshots WHERE fetched_at < ?", (_timestamp(before),))

    # Snow depth

    def upsert_snow_depth(self, reading: SnowDepthReading) -> None:
        self._execute(
            """
            INSERT INTO snow_depth_readings (resort_id, depth_inches, source, source_detail, fetched_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(resort_id) DO UPDATE SET
                depth_inches = excluded.depth_inches,
                source = excluded.source,
                source_detail = excluded.source_detail,
                fetched_at = excluded.fetched_at
            """,
            (
                reading.resort_id,
                reading.depth_inches,
                reading.source,
                reading.source_detail,
                _timestamp(reading.fetched_at),
            ),
        )

    def get_snow_depth(self, resort_id: str) -> Optional[SnowDepthReading]:
        row = self._fetchone("SELECT * FROM snow_depth_readings WHERE resort_id = ?", (resort_id,))
        if not row:
            return None
        data = dict(row)
        data["fetched_at"] = parse_timestamp(data["fetched_at"])
        return SnowDepthReading(**data)

    # Radar frames

    def insert_radar_frame(self, frame: RadarFrame) -> bool:
        """Insert a frame unless one with the same ``frame_time`` exists."""
        inserted = self._execute(
            """
            INSERT INTO radar_frames (frame_time, path, tile_url, cached_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(frame_time) DO NOTHING
            """,
            (frame.frame_time, frame.path, frame.tile_url, _timestamp(frame.cached_at)),
        )
        return inserted > 0

    def list_radar_frames(self, since: int) -> List[RadarFrame]:
        rows = self._fetchall(
            "SELECT * FROM radar_frames WHERE frame_time >= ? ORDER BY frame_time",
            (since,),
        )
        return [
            RadarFrame(
                frame_time=row["frame_time"],
                path=row["path"],
                tile_url=row["tile_url"],
                cached_at=parse_timestamp(row["cached_at"]),
            )
            for row in rows
        ]

    def prune_radar_frames(self, before: int) -> int:
        return self._execute("DELETE FROM radar_frames WHERE frame_time < ?", (before,))
