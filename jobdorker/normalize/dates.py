"""Posted-date text -> timezone-aware UTC datetime."""

import logging
import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

NOW_PHRASES = ("just now", "just posted", "today", "moments ago")

_RELATIVE_RE = re.compile(
    r"(\d+)\s*\+?\s*(minute|min|hour|hr|day|week|month|year)s?\s+ago",
    re.IGNORECASE,
)

_UNIT_DELTAS: dict[str, timedelta] = {
    "minute": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "hr": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}


def parse_date(text: str | None, *, now: datetime | None = None) -> datetime | None:
    """Parse relative ("3 days ago", "30+ days ago") or absolute date text.

    Invalid or unrecognized text yields None, never an error.
    """
    if not text or not text.strip():
        return None
    now = now or datetime.now(timezone.utc)
    clean = " ".join(text.split()).lower()

    relative = _parse_relative(clean, now)
    if relative is not None:
        return relative

    try:
        dt = date_parser.parse(text.strip())
    except (ValueError, OverflowError) as e:
        logger.debug("Unparseable date %r: %s", text, e)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_relative(text: str, now: datetime) -> datetime | None:
    match = _RELATIVE_RE.search(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        if unit == "month":
            return now - relativedelta(months=amount)
        if unit == "year":
            return now - relativedelta(years=amount)
        return now - _UNIT_DELTAS[unit] * amount

    if "yesterday" in text:
        return now - timedelta(days=1)
    if any(phrase in text for phrase in NOW_PHRASES):
        return now
    return None
