"""HTTP fetcher with header rotation, failure classification and retries.

Every attempt (first try and each retry) waits on the source's RateLimiter
first. Permanent failures short-circuit without touching the retry budget.
"""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from types import TracebackType
from typing import Protocol

import httpx

from jobdorker.core.cancellation import CancellationToken, check_cancelled
from jobdorker.core.config import DEFAULT_USER_AGENTS, SourceDescriptor
from jobdorker.core.errors import CancellationError, ErrorKind, NetworkError
from jobdorker.fetch.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

BACKOFF_BASE_MS = 1000
BACKOFF_MAX_MS = 10000

BASE_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


@dataclass(frozen=True)
class FetchResult:
    url: str
    status_code: int
    text: str
    attempts: int = 1


class PageRenderer(Protocol):
    """Anything that can turn a URL into script-rendered markup."""

    async def render(self, url: str) -> str: ...


def classify_status(status_code: int) -> ErrorKind | None:
    """Map an HTTP status to an error kind, or None for success."""
    if status_code < 400:
        return None
    if status_code in (408, 425, 429) or status_code >= 500:
        return "transient"
    return "permanent"


def backoff_delay_s(attempt: int) -> float:
    """Delay before retry number ``attempt + 1`` (attempt is zero-based)."""
    return min(BACKOFF_BASE_MS * (2 ** attempt), BACKOFF_MAX_MS) / 1000


class Fetcher:
    """Fetches pages for a single source.

    Usage::

        async with Fetcher(source) as fetcher:
            result = await fetcher.fetch(url)
            html = result.text
    """

    def __init__(
        self,
        source: SourceDescriptor,
        *,
        user_agents: Sequence[str] = DEFAULT_USER_AGENTS,
        rate_limiter: RateLimiter | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not user_agents:
            msg = "at least one user agent is required"
            raise ValueError(msg)
        self._source = source
        self._retries = source.retries
        self._agents = itertools.cycle(list(user_agents))
        self._limiter = rate_limiter or RateLimiter(source.rate_limit)
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(source.timeout_ms / 1000),
            follow_redirects=True,
            transport=transport,
        )

    @property
    def source(self) -> SourceDescriptor:
        return self._source

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._limiter

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def fetch(self, url: str, cancel: CancellationToken | None = None) -> FetchResult:
        """GET ``url`` with up to ``source.retries`` retries on transient failure.

        Raises:
            NetworkError: permanent failure, or transient after retries ran out.
            CancellationError: the token fired before or between attempts.
        """
        last_error: NetworkError | None = None
        for attempt in range(self._retries + 1):
            check_cancelled(cancel)
            await self._limiter.wait_for_slot(self._source.id, cancel)
            try:
                return await self._attempt(url, attempt + 1)
            except NetworkError as e:
                e.attempts = attempt + 1
                if e.permanent:
                    logger.info("Permanent failure for %s: %s", url, e)
                    raise
                last_error = e
                if attempt >= self._retries:
                    break
                delay = backoff_delay_s(attempt)
                logger.debug(
                    "Transient failure for %s (attempt %d/%d), retrying in %.1fs: %s",
                    url, attempt + 1, self._retries + 1, delay, e,
                )
                await self._sleep(delay)

        if last_error is None:
            msg = f"no fetch attempt made for {url}"
            raise NetworkError(url, msg, kind="permanent")
        logger.warning("Giving up on %s after %d attempts: %s", url, last_error.attempts, last_error)
        raise last_error

    async def render(
        self,
        url: str,
        renderer: PageRenderer,
        cancel: CancellationToken | None = None,
    ) -> FetchResult:
        """Render ``url`` in a browser, still honouring the rate limit."""
        check_cancelled(cancel)
        await self._limiter.wait_for_slot(self._source.id, cancel)
        try:
            html = await renderer.render(url)
        except CancellationError:
            raise
        except Exception as e:
            msg = f"browser render failed for {url}: {e}"
            raise NetworkError(url, msg, kind="transient") from e
        return FetchResult(url=url, status_code=200, text=html)

    async def _attempt(self, url: str, attempt: int) -> FetchResult:
        headers = self._next_headers()
        try:
            resp = await self._client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            msg = f"timeout fetching {url}"
            raise NetworkError(url, msg, kind="transient") from e
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            msg = f"malformed request for {url}: {e}"
            raise NetworkError(url, msg, kind="permanent") from e
        except httpx.TransportError as e:
            msg = f"transport error for {url}: {e}"
            raise NetworkError(url, msg, kind="transient") from e
        except httpx.RequestError as e:
            msg = f"request failed for {url}: {e}"
            raise NetworkError(url, msg, kind="permanent") from e

        kind = classify_status(resp.status_code)
        if kind is not None:
            msg = f"HTTP {resp.status_code} for {url}"
            raise NetworkError(url, msg, kind=kind, status_code=resp.status_code)

        logger.debug("Fetched %s (%d) on attempt %d", url, resp.status_code, attempt)
        return FetchResult(
            url=str(resp.url),
            status_code=resp.status_code,
            text=resp.text,
            attempts=attempt,
        )

    def _next_headers(self) -> dict[str, str]:
        return {**BASE_HEADERS, "User-Agent": next(self._agents)}
