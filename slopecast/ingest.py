"""Catalog-wide scrape runs.

Each resort moves ``pending -> scraping -> stored | failed | skipped``. One
resort failing never stops the run. Requests to the scraped host are spaced
out either by a fixed pause between resorts (sequential mode) or by a per-task
delay plus per-host throttling (bounded mode, at most ``concurrency`` resorts
in flight).
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from slopecast.config import ScraperConfig, app_config
from slopecast.logging import get_logger, log_context

from .errors import ResortNotFound
from .http_client import HttpFetcher, Sleeper, fetcher_scope
from .models import Resort, ScrapeResult, utcnow
from .scrapers import scrape_resort_conditions
from .storage import SlopeStore

logger = get_logger(__name__)

Scraper = Callable[[str], Awaitable[Optional[ScrapeResult]]]

FETCH_FAILED = "Failed to fetch data"


class IngestState(str, Enum):
    PENDING = "pending"
    SCRAPING = "scraping"
    STORED = "stored"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ResortOutcome:
    resort: Resort
    state: IngestState = IngestState.PENDING
    error: Optional[str] = None


@dataclass
class IngestionSummary:
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    max_errors: int = 50
    outcomes: List[ResortOutcome] = field(default_factory=list)

    def record(self, outcome: ResortOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.state is IngestState.STORED:
            self.success += 1
        elif outcome.state is IngestState.SKIPPED:
            self.skipped += 1
        elif outcome.state is IngestState.FAILED:
            self.failed += 1
            if outcome.error and len(self.errors) < self.max_errors:
                self.errors.append(outcome.error)

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class IngestionOrchestrator:
    def __init__(
        self,
        store: SlopeStore,
        *,
        scraper: Optional[Scraper] = None,
        fetcher: Optional[HttpFetcher] = None,
        config: Optional[ScraperConfig] = None,
        delay: Optional[float] = None,
        concurrency: Optional[int] = None,
        max_errors: Optional[int] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        config = config or app_config.scraper
        self.store = store
        self.config = config
        self.delay = config.request_delay if delay is None else delay
        self.concurrency = max(1, config.concurrency if concurrency is None else concurrency)
        self.max_errors = config.max_errors if max_errors is None else max_errors
        self._scraper = scraper
        self._fetcher = fetcher
        self._sleep = sleep

    async def run(self, resorts: Optional[Sequence[Resort]] = None) -> IngestionSummary:
        resorts = list(self.store.list_resorts() if resorts is None else resorts)
        summary = IngestionSummary(total=len(resorts), max_errors=self.max_errors)
        run_id = uuid.uuid4().hex

        with log_context(run_id=run_id):
            logger.info(
                "ingest.start",
                total=summary.total,
                concurrency=self.concurrency,
                delay=self.delay,
            )
            async with fetcher_scope(
                self._fetcher, timeout=self.config.timeout, user_agent=self.config.user_agent
            ) as http:
                if self.concurrency > 1:
                    # bounded mode relies on the fetcher to space requests per host
                    http = http.spaced(self.delay)
                scraper = self._scraper or self._default_scraper(http)
                if self.concurrency == 1:
                    await self._run_sequential(resorts, scraper, summary)
                else:
                    await self._run_bounded(resorts, scraper, summary)

            logger.info("ingest.complete", **summary.to_dict())
        return summary

    def _default_scraper(self, http: HttpFetcher) -> Scraper:
        async def scrape(upstream_id: str) -> Optional[ScrapeResult]:
            return await scrape_resort_conditions(upstream_id, fetcher=http, base_url=self.config.base_url)

        return scrape

    async def _run_sequential(
        self, resorts: Sequence[Resort], scraper: Scraper, summary: IngestionSummary
    ) -> None:
        for resort in resorts:
            outcome = await self.ingest_one(resort, scraper)
            summary.record(outcome)
            if outcome.state is IngestState.STORED and self.delay > 0:
                await self._sleep(self.delay)

    async def _run_bounded(
        self, resorts: Sequence[Resort], scraper: Scraper, summary: IngestionSummary
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(index: int, resort: Resort) -> ResortOutcome:
            async with semaphore:
                if index > 0 and self.delay > 0:
                    await self._sleep(self.delay)
                return await self.ingest_one(resort, scraper)

        outcomes = await asyncio.gather(*(worker(index, resort) for index, resort in enumerate(resorts)))
        for outcome in outcomes:
            summary.record(outcome)

    async def ingest_one(self, resort: Resort, scraper: Scraper) -> ResortOutcome:
        outcome = ResortOutcome(resort=resort)
        if not resort.skiresortinfo_id:
            outcome.state = IngestState.SKIPPED
            logger.info("ingest.resort_skipped", resort_id=resort.id)
            return outcome

        outcome.state = IngestState.SCRAPING
        try:
            result = await scraper(resort.skiresortinfo_id)
            if result is None:
                outcome.state = IngestState.FAILED
                outcome.error = f"{resort.name}: {FETCH_FAILED}"
            else:
                scraped_at = utcnow()
                self.store.add_conditions(resort.id, result.conditions, scraped_at=scraped_at)
                self.store.upsert_info(resort.id, result.info, updated_at=scraped_at)
                outcome.state = IngestState.STORED
        except Exception as exc:  # a single resort never aborts the run
            outcome.state = IngestState.FAILED
            outcome.error = f"{resort.name}: {exc}"

        if outcome.state is IngestState.FAILED:
            logger.error("ingest.resort_failed", resort_id=resort.id, error=outcome.error)
        else:
            logger.info("ingest.resort_stored", resort_id=resort.id)
        return outcome

    async def run_single(self, upstream_id: str) -> ResortOutcome:
        """Scrape and store the catalog resort carrying ``upstream_id``."""
        matches = [
            resort
            for resort in self.store.list_resorts(with_upstream_id=True)
            if resort.skiresortinfo_id == upstream_id
        ]
        if not matches:
            raise ResortNotFound(f"no resort with upstream id {upstream_id!r}")
        async with fetcher_scope(
            self._fetcher, timeout=self.config.timeout, user_agent=self.config.user_agent
        ) as http:
            return await self.ingest_one(matches[0], self._scraper or self._default_scraper(http))
