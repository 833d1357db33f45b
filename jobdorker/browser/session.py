"""Browser session for script-rendered listing pages, using patchright.

Only ``dynamic`` and ``hybrid`` sources reach this module, and only when
``browser.enabled`` is set. One browser context per run; cookie auth only.
"""

import json
import logging
from pathlib import Path
from types import TracebackType
from typing import Any

from patchright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from jobdorker.browser.actions import scroll_until_stable
from jobdorker.core.config import BrowserConfig

logger = logging.getLogger(__name__)


class BrowserSession:
    """Async context manager that owns one patchright browser + context + page.

    Usage::

        async with BrowserSession(config) as session:
            html = await session.renderer(card_selectors).render(url)
    """

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        """The single page for this session. Raises if not entered."""
        if self._page is None:
            msg = "BrowserSession not entered, use 'async with'"
            raise RuntimeError(msg)
        return self._page

    def renderer(self, card_selectors: tuple[str, ...] = ()) -> "PageRenderer":
        return PageRenderer(self.page, card_selectors=card_selectors)

    async def __aenter__(self) -> "BrowserSession":
        pw = await async_playwright().start()
        self._playwright = pw
        self._browser = await pw.chromium.launch(headless=self._config.headless)

        cookies = _load_cookies(self._config.cookies_path)
        self._context = await self._browser.new_context()
        if cookies:
            await self._context.add_cookies(cookies)
            logger.info("Loaded %d cookies from %s", len(cookies), self._config.cookies_path)
        else:
            logger.debug("No cookies loaded, rendering anonymously")

        self._context.set_default_timeout(self._config.timeout_ms)
        self._page = await self._context.new_page()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()


class PageRenderer:
    """Turns a URL into fully rendered markup on an open page.

    Pages render sequentially; callers share one renderer per source.
    """

    def __init__(self, page: Any, *, card_selectors: tuple[str, ...] = ()) -> None:
        self._page = page
        self._card_selectors = card_selectors

    async def render(self, url: str) -> str:
        await self._page.goto(url, wait_until="domcontentloaded")
        if self._card_selectors:
            count = await scroll_until_stable(self._page, card_selectors=self._card_selectors)
            logger.debug("Rendered %s with %d cards", url, count)
        return await self._page.content()


def _load_cookies(path: str) -> list[Any]:
    """Load cookies from a JSON file. Returns empty list on any failure."""
    cookie_path = Path(path)
    if not cookie_path.exists():
        logger.debug("Cookie file not found: %s", path)
        return []
    try:
        data = json.loads(cookie_path.read_text())
        if isinstance(data, list):
            return data
        logger.warning("Cookie file is not a JSON array: %s", path)
        return []
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load cookies from %s: %s", path, e)
        return []
