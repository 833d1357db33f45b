"""Listing-page extraction: cards -> RawJobRecord, driven page by page.

Failure policy:
  - A card missing title or company raises ParsingError and is skipped.
  - Any other card-level failure is skipped the same way, never fatal.
  - A NetworkError (permanent, or transient after retries) stops this source
    only and lands in ``report.errors``.
  - A search engine's captcha page is a permanent NetworkError.
  - CancellationError always propagates.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from jobdorker.browser.actions import random_sleep
from jobdorker.core.cancellation import CancellationToken, check_cancelled
from jobdorker.core.config import SearchCriteria, SourceDescriptor
from jobdorker.core.errors import NetworkError, ParsingError
from jobdorker.core.schemas import RawJobRecord
from jobdorker.extraction.dorks import (
    company_from_result,
    dork_searches,
    is_blocked_page,
    location_from_result,
    unwrap_result_link,
)
from jobdorker.extraction.url_builder import build_search_url
from jobdorker.fetch.fetcher import Fetcher, FetchResult, PageRenderer
from jobdorker.pipeline.events import ProgressCallback, ProgressEvent, emit

logger = logging.getLogger(__name__)

UNUSABLE_HREF_PREFIXES = ("#", "javascript:", "mailto:")


@dataclass
class SourceReport:
    """Mutable counters for one source within one run."""

    source_id: str
    pages_fetched: int = 0
    records: int = 0
    cards_skipped: int = 0
    retries: int = 0
    errors: list[str] = field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.errors.append(message)


class ExtractionEngine:
    """Extracts raw records for the source its Fetcher is bound to.

    Usage::

        engine = ExtractionEngine(fetcher)
        report = SourceReport(fetcher.source.id)
        async for raw in engine.extract(criteria, report):
            ...
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        renderer: PageRenderer | None = None,
        page_delay_s: tuple[float, float] = (1.0, 3.0),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_event: ProgressCallback | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._source = fetcher.source
        self._renderer = renderer
        self._page_delay_s = page_delay_s
        self._sleep = sleep
        self._on_event = on_event

    @property
    def source(self) -> SourceDescriptor:
        return self._source

    async def extract(
        self,
        criteria: SearchCriteria,
        report: SourceReport,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[RawJobRecord]:
        """Yield records page by page until pagination ends or a cap is hit.

        A search-engine source runs one paginated search per dork query,
        sharing the ``max_results`` budget; a network failure ends them all.
        """
        source = self._source
        if source.search.dork:
            searches = dork_searches(criteria, source.search.max_queries)
            logger.info("Source '%s': running %d dork queries", source.id, len(searches))
        else:
            searches = [criteria]

        emitted = 0
        for n, search in enumerate(searches):
            if n > 0:
                await random_sleep(*self._page_delay_s, sleep=self._sleep)
            if source.search.dork:
                logger.debug(
                    "Source '%s' query %d/%d: %s", source.id, n + 1, len(searches), search.keywords[0],
                )
            failures = len(report.errors)
            async for record in self._extract_search(
                search, report, cancel, criteria.max_results - emitted,
            ):
                emitted += 1
                yield record
            if emitted >= criteria.max_results or len(report.errors) > failures:
                return

    async def _extract_search(
        self,
        criteria: SearchCriteria,
        report: SourceReport,
        cancel: CancellationToken | None,
        budget: int,
    ) -> AsyncIterator[RawJobRecord]:
        source = self._source
        url: str | None = build_search_url(source, criteria, 0)
        visited: set[str] = set()
        page_index = 0
        emitted = 0

        while url is not None:
            check_cancelled(cancel)
            if page_index > 0:
                await random_sleep(*self._page_delay_s, sleep=self._sleep)
                check_cancelled(cancel)

            visited.add(url)
            try:
                page, soup, cards = await self._load_cards(url, report, cancel)
            except NetworkError as e:
                report.retries += max(e.attempts - 1, 0)
                message = f"{source.id}: {e}"
                report.record_error(message)
                logger.warning("Stopping source '%s' on page %d: %s", source.id, page_index + 1, e)
                emit(self._on_event, ProgressEvent("source_failed", source.id, message))
                return

            report.pages_fetched += 1
            logger.info(
                "Source '%s' page %d: %d cards at %s",
                source.id, page_index + 1, len(cards), page.url,
            )
            emit(self._on_event, ProgressEvent(
                "page_fetched", source.id, page.url,
                {"page": page_index + 1, "cards": len(cards)},
            ))

            for index, card in enumerate(cards):
                if emitted >= budget:
                    return
                try:
                    record = self.parse_card(card, index, page.url)
                except ParsingError as e:
                    report.cards_skipped += 1
                    logger.debug("Skipping card %d on %s: %s", index, page.url, e)
                    continue
                except Exception:
                    report.cards_skipped += 1
                    logger.debug("Failed to parse card %d on %s", index, page.url, exc_info=True)
                    continue
                emitted += 1
                report.records += 1
                yield record

            if emitted >= budget:
                logger.debug("Source '%s' used its result budget of %d", source.id, budget)
                return

            page_index += 1
            if page_index >= source.pagination.max_pages:
                logger.debug("Source '%s' reached max_pages=%d", source.id, source.pagination.max_pages)
                return

            url = self.next_page_url(soup, page.url, criteria, page_index, has_cards=bool(cards))
            if url is not None and url in visited:
                logger.debug("Next page %s already visited, stopping", url)
                url = None

    # --- Page loading ---

    async def _load_cards(
        self, url: str, report: SourceReport, cancel: CancellationToken | None,
    ) -> tuple[FetchResult, BeautifulSoup, list[Tag]]:
        if self._source.render == "dynamic" and self._renderer is not None:
            page = await self._fetcher.render(url, self._renderer, cancel)
        else:
            page = await self._fetcher.fetch(url, cancel)
            report.retries += page.attempts - 1

        soup = BeautifulSoup(page.text, "html.parser")
        cards = self.find_cards(soup)

        if not cards and self._source.render == "hybrid" and self._renderer is not None:
            logger.info("No cards in static markup for %s, falling back to browser", url)
            page = await self._fetcher.render(url, self._renderer, cancel)
            soup = BeautifulSoup(page.text, "html.parser")
            cards = self.find_cards(soup)

        if not cards and self._source.search.dork and is_blocked_page(page.text):
            msg = f"search engine served a captcha instead of results for {page.url}"
            raise NetworkError(page.url, msg, kind="permanent")

        return page, soup, cards

    # --- Card parsing ---

    def find_cards(self, soup: BeautifulSoup | Tag) -> list[Tag]:
        """Cards matched by the first card selector that matches anything."""
        for selector in self._source.selectors.card:
            try:
                cards = soup.select(selector)
            except Exception:
                logger.debug("Card selector '%s' raised, trying next", selector, exc_info=True)
                continue
            if cards:
                return cards
        return []

    def parse_card(self, card: Tag, index: int, page_url: str) -> RawJobRecord:
        """Pull raw fields from one card.

        Raises:
            ParsingError: title or company is missing.
        """
        rules = self._source.selectors
        title = _text_of(_select_first(card, rules.title))
        if not title:
            msg = "card has no title"
            raise ParsingError(msg)
        company = _text_of(_select_first(card, rules.company))
        location = _text_of(_select_first(card, rules.location))
        link = self._link(card, page_url)
        description = _text_of(_select_first(card, rules.description))
        if self._source.search.dork:
            link = unwrap_result_link(link) if link else None
            company = company_from_result(title, link, description, site_name=company)
            location = location or location_from_result(title, description)
        if not company:
            msg = "card has no company"
            raise ParsingError(msg)

        if not description:
            description = _collapse(card.get_text(" "))

        return RawJobRecord(
            title=title,
            company=company,
            location=location or None,
            description=description or None,
            salary=_text_of(_select_first(card, rules.salary)) or None,
            posted_date=self._posted_date(card),
            employment_type=_text_of(_select_first(card, rules.employment_type)) or None,
            url=link,
            markup=str(card),
            page_url=page_url,
            element_index=index,
        )

    def _posted_date(self, card: Tag) -> str | None:
        """Prefer the machine-readable ``datetime`` attribute of <time> elements."""
        el = _select_first(card, self._source.selectors.posted_date)
        if el is None:
            return None
        dt_attr = el.get("datetime")
        if isinstance(dt_attr, str) and dt_attr.strip():
            return dt_attr.strip()
        return _text_of(el) or None

    def _link(self, card: Tag, page_url: str) -> str | None:
        """Resolve the posting link: link rule, then the title's anchor, then any anchor."""
        href = _href_of(_select_first(card, self._source.selectors.link))
        if href is None:
            title_el = _select_first(card, self._source.selectors.title)
            if title_el is not None:
                anchor = title_el if title_el.name == "a" else title_el.find_parent("a")
                href = _href_of(anchor) or _href_of(title_el.find("a"))
        if href is None:
            href = _href_of(card)
        if href is None:
            return None
        return urljoin(page_url, href)

    # --- Continuation ---

    def next_page_url(
        self,
        soup: BeautifulSoup,
        current_url: str,
        criteria: SearchCriteria,
        page_index: int,
        *,
        has_cards: bool = True,
    ) -> str | None:
        """URL of the next listing page, or None when pagination is over.

        With a next-affordance rule: absent, disabled or non-navigable means
        stop. A usable href wins; otherwise the pagination parameter is used.
        Without a rule, the pagination parameter drives continuation while
        pages still carry cards.
        """
        pagination = self._source.pagination
        rules = self._source.selectors.next_page
        if not rules:
            if pagination.param and has_cards:
                return build_search_url(self._source, criteria, page_index)
            return None

        el = _select_first(soup, rules)
        if el is None:
            logger.debug("No next affordance on %s", current_url)
            return None
        if _is_disabled(el):
            logger.debug("Next affordance disabled on %s", current_url)
            return None

        href = _href_of(el) or _href_of(el.find("a"))
        if href is not None:
            return urljoin(current_url, href)
        if pagination.param:
            return build_search_url(self._source, criteria, page_index)
        logger.debug("Next affordance on %s is not navigable", current_url)
        return None


def _select_first(parent: BeautifulSoup | Tag, selectors: tuple[str, ...]) -> Tag | None:
    """Return the first element matching any selector in order."""
    for selector in selectors:
        try:
            el = parent.select_one(selector)
        except Exception:
            logger.debug("Selector '%s' raised, trying next", selector, exc_info=True)
            continue
        if el is not None:
            return el
    return None


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _text_of(el: Tag | None) -> str:
    if el is None:
        return ""
    return _collapse(el.get_text(" "))


def _href_of(el: Tag | None) -> str | None:
    """Usable href of ``el``, ignoring fragments and script pseudo-links."""
    if el is None:
        return None
    href = el.get("href")
    if not isinstance(href, str):
        return None
    href = href.strip()
    if not href or href.lower().startswith(UNUSABLE_HREF_PREFIXES):
        return None
    return href


def _is_disabled(el: Tag) -> bool:
    if el.has_attr("disabled"):
        return True
    aria = el.get("aria-disabled")
    if isinstance(aria, str) and aria.strip().lower() == "true":
        return True
    classes = el.get("class") or []
    return any("disabled" in cls.lower() for cls in classes)
