"""Reusable pacing actions: randomized sleeps and scroll-until-stable.

All inter-page and scroll delays are randomized so request timing carries no
fixed signature.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

MAX_SCROLL_ATTEMPTS = 5

SCROLL_DELAY_FLOOR = 1.5


async def random_sleep(
    min_s: float,
    max_s: float,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> float:
    """Sleep for a random duration between min_s and max_s seconds.

    Floor enforcement: min_s is always respected as the absolute minimum.
    If max_s < min_s, max_s is raised to min_s.

    Returns the actual sleep duration (useful for testing).
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await sleep(duration)
    return duration


async def scroll_until_stable(
    page: Any,
    *,
    card_selectors: tuple[str, ...],
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    scroll_delay_min: float = 1.5,
    scroll_delay_max: float = 3.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Scroll a rendered listing page until its card count stops growing.

    Args:
        page: Browser page object (patchright Page or mock).
        card_selectors: Card selectors to try in fallback order.
        max_attempts: Max scroll iterations before giving up.
        scroll_delay_min: Minimum delay between scrolls (floor: 1.5s).
        scroll_delay_max: Maximum delay between scrolls.

    Returns:
        Final card count found on the page.
    """
    scroll_delay_min = max(scroll_delay_min, SCROLL_DELAY_FLOOR)
    scroll_delay_max = max(scroll_delay_max, scroll_delay_min)

    previous_count = 0

    for attempt in range(max_attempts):
        current_count = await _count_cards(page, card_selectors)
        logger.debug(
            "Scroll attempt %d/%d: %d cards (prev: %d)",
            attempt + 1, max_attempts, current_count, previous_count,
        )

        if current_count == previous_count and attempt > 0:
            logger.debug("Card count stable at %d, stopping scroll", current_count)
            break

        previous_count = current_count
        await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        await random_sleep(scroll_delay_min, scroll_delay_max, sleep=sleep)

    return previous_count


async def _count_cards(page: Any, selectors: tuple[str, ...]) -> int:
    """Count cards using the first matching selector."""
    for selector in selectors:
        cards = await page.query_selector_all(selector)
        if cards:
            return len(cards)
    return 0
