from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

import httpx

from .logging import get_logger

logger = get_logger(__name__)


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SlopecastBot/1.0; +https://github.com/slopecast)"

Sleeper = Callable[[float], Awaitable[None]]


class HostThrottle:
    """Enforces a minimum interval between request starts aimed at the same host."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_start: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def wait(self, host: str) -> None:
        if self.min_interval <= 0:
            return
        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            last = self._last_start.get(host)
            if last is not None:
                remaining = self.min_interval - (self._clock() - last)
                if remaining > 0:
                    await self._sleep(remaining)
            self._last_start[host] = self._clock()


class HttpFetcher:
    """Async HTTP client wrapper with retry/backoff and optional per-host spacing."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        max_attempts: int = 3,
        backoff_factor: float = 0.5,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        min_interval: float = 0.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )
        self.user_agent = user_agent
        self.max_attempts = max_attempts
        self.backoff_factor = backoff_factor
        self.throttle = HostThrottle(min_interval, sleep=sleep)
        self._sleep = sleep

    async def get(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        trace_id: str | None = None,
    ) -> httpx.Response:
        request_headers: Dict[str, str] = {"User-Agent": self.user_agent}
        if headers:
            request_headers.update(headers)

        host = urlsplit(url).netloc
        for attempt in range(1, self.max_attempts + 1):
            await self.throttle.wait(host)
            try:
                logger.info("http.fetch", trace_id=trace_id, url=url, attempt=attempt)
                return await self.client.get(url, params=params, headers=request_headers)
            except httpx.RequestError as exc:
                logger.warning(
                    "http.fetch.retry",
                    trace_id=trace_id,
                    url=url,
                    attempt=attempt,
                    error=str(exc),
                )
                if attempt == self.max_attempts:
                    raise
                await self._sleep(self.backoff_factor * (2 ** (attempt - 1)))
        raise RuntimeError("Unexpected fetch state")

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        trace_id: str | None = None,
    ) -> Any:
        """GET ``url`` and decode JSON, raising ``httpx.HTTPStatusError`` on non-2xx."""
        response = await self.get(
            url, params=params, headers={"Accept": "application/json"}, trace_id=trace_id
        )
        response.raise_for_status()
        return response.json()

    def spaced(self, min_interval: float) -> "HttpFetcher":
        """A fetcher on the same client whose requests to one host start ``min_interval`` apart.

        Closing the returned fetcher closes the shared client, so only the
        owner of ``self`` should do it.
        """
        if min_interval <= self.throttle.min_interval:
            return self
        return HttpFetcher(
            self.client,
            max_attempts=self.max_attempts,
            backoff_factor=self.backoff_factor,
            user_agent=self.user_agent,
            min_interval=min_interval,
            sleep=self._sleep,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


@asynccontextmanager
async def fetcher_scope(fetcher: Optional[HttpFetcher] = None, **kwargs: Any) -> AsyncIterator[HttpFetcher]:
    """Yield ``fetcher`` untouched, or a fresh one that is closed on exit."""
    if fetcher is not None:
        yield fetcher
        return
    async with HttpFetcher(**kwargs) as owned:
        yield owned
