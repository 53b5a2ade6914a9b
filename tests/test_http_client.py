import asyncio
from typing import List

import httpx
import pytest

from slopecast.http_client import HostThrottle, HttpFetcher, fetcher_scope


def _recording_sleep(delays: List[float]):
    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    return sleep


def test_transport_errors_are_retried_with_backoff():
    attempts: List[httpx.Request] = []
    delays: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json={"ok": True})

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with HttpFetcher(client=client, sleep=_recording_sleep(delays)) as fetcher:
            return await fetcher.get_json("https://api.example.test/data")

    assert asyncio.run(run()) == {"ok": True}
    assert len(attempts) == 3
    assert delays == [0.5, 1.0]
    assert attempts[0].headers["User-Agent"].startswith("Mozilla/5.0 (compatible; SlopecastBot")


def test_http_status_errors_are_not_retried():
    attempts: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(503)

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with HttpFetcher(client=client, sleep=_recording_sleep([])) as fetcher:
            await fetcher.get_json("https://api.example.test/data")

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(run())
    assert len(attempts) == 1


def test_throttle_spaces_requests_to_the_same_host():
    now = [100.0]
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)
        now[0] += seconds

    throttle = HostThrottle(1.0, clock=lambda: now[0], sleep=sleep)

    async def run():
        await throttle.wait("www.skiresort.info")
        now[0] += 0.25
        await throttle.wait("www.skiresort.info")
        await throttle.wait("api.open-meteo.com")

    asyncio.run(run())

    assert delays == [0.75]


def test_fetcher_scope_leaves_supplied_fetcher_open():
    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda _: httpx.Response(204)))
        fetcher = HttpFetcher(client=client)
        async with fetcher_scope(fetcher) as http:
            assert http is fetcher
        closed = client.is_closed
        await fetcher.aclose()
        return closed

    assert asyncio.run(run()) is False
