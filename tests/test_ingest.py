from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import httpx
import pytest

from slopecast.errors import ResortNotFound
from slopecast.http_client import HttpFetcher
from slopecast.ingest import IngestionOrchestrator, IngestState
from slopecast.models import Resort, ScrapedConditions, ScrapedResortInfo, ScrapeResult
from slopecast.storage import SlopeStore


def make_resort(resort_id: str, upstream_id: Optional[str] = "default") -> Resort:
    return Resort(
        id=resort_id,
        name=f"Resort {resort_id.upper()}",
        slug=resort_id,
        state="Colorado",
        skiresortinfo_id=resort_id if upstream_id == "default" else upstream_id,
    )


def seeded_store(tmp_path: Path, *resorts: Resort) -> SlopeStore:
    store = SlopeStore(tmp_path / "ingest.db")
    for resort in resorts:
        store.upsert_resort(resort)
    return store


class Sleeps:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


async def fake_scraper(upstream_id: str) -> Optional[ScrapeResult]:
    if upstream_id == "b":
        raise RuntimeError("layout changed")
    if upstream_id == "gone":
        return None
    return ScrapeResult(
        conditions=ScrapedConditions(snow_depth_base=100, lifts_open=5, lifts_total=10),
        info=ScrapedResortInfo(lifts_total=10),
    )


def test_one_failing_resort_does_not_stop_the_run(tmp_path: Path):
    store = seeded_store(tmp_path, make_resort("a"), make_resort("b"), make_resort("c"))
    sleeps = Sleeps()
    orchestrator = IngestionOrchestrator(store, scraper=fake_scraper, delay=1.0, concurrency=1, sleep=sleeps)

    summary = asyncio.run(orchestrator.run())

    assert summary.to_dict() == {
        "total": 3,
        "success": 2,
        "failed": 1,
        "skipped": 0,
        "errors": ["Resort B: layout changed"],
    }
    assert store.latest_conditions("a").conditions.lifts_open == 5
    assert store.latest_conditions("b") is None
    assert store.get_info("c").info.lifts_total == 10
    # sequential mode pauses after each stored resort
    assert sleeps.calls == [1.0, 1.0]


def test_missing_upstream_id_is_skipped_and_none_is_a_failure(tmp_path: Path):
    store = seeded_store(tmp_path, make_resort("a"), make_resort("n", upstream_id=None), make_resort("gone"))
    orchestrator = IngestionOrchestrator(store, scraper=fake_scraper, delay=0, sleep=Sleeps())

    summary = asyncio.run(orchestrator.run())

    assert (summary.total, summary.success, summary.failed, summary.skipped) == (3, 1, 1, 1)
    assert summary.errors == ["Resort GONE: Failed to fetch data"]
    states = {outcome.resort.id: outcome.state for outcome in summary.outcomes}
    assert states == {"a": IngestState.STORED, "n": IngestState.SKIPPED, "gone": IngestState.FAILED}


def test_bounded_mode_stores_every_resort(tmp_path: Path):
    resorts = [make_resort(name) for name in ("a", "c", "d", "e")]
    store = seeded_store(tmp_path, *resorts)
    sleeps = Sleeps()
    orchestrator = IngestionOrchestrator(store, scraper=fake_scraper, delay=0.5, concurrency=2, sleep=sleeps)

    summary = asyncio.run(orchestrator.run())

    assert summary.success == 4
    assert sleeps.calls == [0.5, 0.5, 0.5]


def test_error_list_is_capped(tmp_path: Path):
    store = seeded_store(tmp_path)
    resorts = [make_resort(f"r{index}", upstream_id="gone") for index in range(4)]
    orchestrator = IngestionOrchestrator(store, scraper=fake_scraper, delay=0, max_errors=2, sleep=Sleeps())

    summary = asyncio.run(orchestrator.run(resorts))

    assert summary.failed == 4
    assert len(summary.errors) == 2


def test_run_single_scrapes_matching_resort(tmp_path: Path):
    store = seeded_store(tmp_path, make_resort("a"), make_resort("c"))
    orchestrator = IngestionOrchestrator(store, scraper=fake_scraper, delay=0, sleep=Sleeps())

    outcome = asyncio.run(orchestrator.run_single("c"))

    assert outcome.state is IngestState.STORED
    assert store.latest_conditions("c") is not None
    assert store.latest_conditions("a") is None

    with pytest.raises(ResortNotFound):
        asyncio.run(orchestrator.run_single("unknown"))


def test_bounded_mode_spaces_requests_on_a_supplied_fetcher(tmp_path: Path):
    resorts = [make_resort(name) for name in ("a", "c", "d", "e")]
    store = seeded_store(tmp_path, *resorts)
    requests: List[httpx.Request] = []
    fetch_sleeps = Sleeps()

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(500)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = HttpFetcher(client=client, sleep=fetch_sleeps)
    orchestrator = IngestionOrchestrator(store, fetcher=fetcher, delay=5.0, concurrency=2, sleep=Sleeps())

    summary = asyncio.run(orchestrator.run())

    assert summary.failed == 4
    assert {request.url.host for request in requests} == {"www.skiresort.info"}
    # every request after the first waits out the per-host interval
    assert len(fetch_sleeps.calls) == len(requests) - 1
    assert all(seconds > 4.9 for seconds in fetch_sleeps.calls)
    assert client.is_closed is False
    asyncio.run(client.aclose())
