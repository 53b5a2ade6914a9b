from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .logging import get_logger
from .models import Snapshot, utcnow
from .storage import SlopeStore

logger = get_logger(__name__)

FORECAST_TTL = timedelta(hours=1)
RADAR_TTL = timedelta(minutes=5)
PHOTO_TTL = timedelta(days=7)

# Key used for snapshots that are not tied to one resort (radar frames).
GLOBAL_KEY = "_global"

Fetch = Callable[[], Awaitable[Any]]
OnStore = Callable[[Snapshot], None]
Cacheable = Callable[[Any], bool]


@dataclass
class CacheResult:
    snapshot: Snapshot
    created: bool
    stored: bool = True

    @property
    def payload(self) -> Any:
        return self.snapshot.payload


class SnapshotCache:
    """Read-through cache of upstream payloads persisted as snapshots.

    A live (unexpired) snapshot for ``(resort_id, source)`` is returned as is;
    otherwise ``fetch`` runs, its JSON-serialisable result is stored with a
    fresh expiry and returned. A payload rejected by ``cacheable`` is returned
    without being stored, and a snapshot whose ``on_store`` hook raises is
    deleted again before the error propagates. Concurrent misses for the same
    key inside one process share a single fetch. Deleting old snapshots is left to
    :meth:`SlopeStore.prune_snapshots`.
    """

    def __init__(self, store: SlopeStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self._clock = clock
        self._inflight: Dict[Tuple[str, str], asyncio.Task] = {}

    async def get_or_fetch(
        self,
        resort_id: str,
        source: str,
        fetch: Fetch,
        *,
        ttl: timedelta = FORECAST_TTL,
        on_store: Optional[OnStore] = None,
        cacheable: Optional[Cacheable] = None,
    ) -> CacheResult:
        now = self._clock()
        live = self.store.get_live_snapshot(resort_id, source, now)
        if live is not None:
            logger.info("cache.hit", resort_id=resort_id, source=source, snapshot_id=live.id)
            return CacheResult(snapshot=live, created=False)

        key = (resort_id, source)
        task = self._inflight.get(key)
        if task is None:
            logger.info("cache.miss", resort_id=resort_id, source=source)
            task = asyncio.ensure_future(self._fill(resort_id, source, fetch, ttl, on_store, cacheable))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
            snapshot, stored = await task
            return CacheResult(snapshot=snapshot, created=True, stored=stored)

        logger.info("cache.join", resort_id=resort_id, source=source)
        # shield so one cancelled waiter does not cancel the shared fetch
        snapshot, stored = await asyncio.shield(task)
        return CacheResult(snapshot=snapshot, created=False, stored=stored)

    async def _fill(
        self,
        resort_id: str,
        source: str,
        fetch: Fetch,
        ttl: timedelta,
        on_store: Optional[OnStore],
        cacheable: Optional[Cacheable],
    ) -> Tuple[Snapshot, bool]:
        payload = await fetch()
        fetched_at = self._clock()
        snapshot = Snapshot(
            id=uuid.uuid4().hex,
            resort_id=resort_id,
            source=source,
            fetched_at=fetched_at,
            expires_at=fetched_at + ttl,
            payload=payload,
        )
        if cacheable is not None and not cacheable(payload):
            logger.warning("cache.not_stored", resort_id=resort_id, source=source)
            return snapshot, False

        self.store.insert_snapshot(snapshot)
        if on_store is not None:
            try:
                on_store(snapshot)
            except Exception:
                self.store.delete_snapshot(snapshot.id)
                logger.error("cache.on_store_failed", resort_id=resort_id, source=source, snapshot_id=snapshot.id)
                raise
        logger.info(
            "cache.stored",
            resort_id=resort_id,
            source=source,
            snapshot_id=snapshot.id,
            expires_at=snapshot.expires_at.isoformat(),
        )
        return snapshot, True

    def prune(self, *, retention: timedelta) -> int:
        cutoff = self._clock() - retention
        deleted = self.store.prune_snapshots(cutoff)
        logger.info("cache.pruned", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted
