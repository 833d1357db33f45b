"""Salary text -> Salary.

Patterns are tried in order and the first match wins, so the most specific
shapes (ranges) come first. No match means no salary; amounts are never
guessed from bare numbers.
"""

import logging
import re

from jobdorker.core.schemas import Salary, SalaryPeriod

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS: dict[str, str] = {
    "$": "USD",
    "£": "GBP",
    "€": "EUR",
    "¥": "JPY",
    "₹": "INR",
}

_CODE_RE = re.compile(r"\b(USD|EUR|GBP|JPY|INR|CAD|AUD|CHF)\b")

_SYM = r"[$£€¥₹]"
_NUM = r"\d[\d,]*(?:\.\d+)?"
_K = r"k(?![a-z])"
_DASH = r"\s*(?:-|–|—|to)\s*"
_UNIT = (
    r"(?P<unit>hourly|hour|hr|daily|day|weekly|week|wk|monthly|month|mo"
    r"|yearly|year|yr|annually|annual|annum)\b"
)
# "/hour", "per hour", "an hour", " yearly"
_SEP = r"(?:\s*/\s*|\s+per\s+|\s+an?\s+|\s+)"
_STRICT_SEP = r"(?:\s*/\s*|\s+per\s+)"
# funding figures such as "$50-100M" or "$2 billion" are never salaries
_BIG = r"\s*(?:m|mm|b|bn|million|billion)\b"
_END = rf"(?!\d|[,.]\d|{_BIG})"

SALARY_PATTERNS: tuple[re.Pattern[str], ...] = (
    # $50k - $80k, £40,000 - 60,000 per year, $25-$35/hour
    re.compile(
        rf"(?P<sym>{_SYM})\s*(?P<lo>{_NUM})\s*(?P<lo_k>{_K})?{_DASH}(?:{_SYM})?\s*"
        rf"(?P<hi>{_NUM}){_END}\s*(?P<hi_k>{_K})?(?:{_SEP}{_UNIT})?",
        re.IGNORECASE,
    ),
    # 25-35 per hour (no symbol, so the unit is mandatory)
    re.compile(
        rf"(?<![\d.,])(?P<lo>{_NUM})\s*(?P<lo_k>{_K})?{_DASH}(?P<hi>{_NUM}){_END}\s*"
        rf"(?P<hi_k>{_K})?{_STRICT_SEP}{_UNIT}",
        re.IGNORECASE,
    ),
    # $60,000/year, $30 an hour
    re.compile(
        rf"(?P<sym>{_SYM})\s*(?P<amt>{_NUM})\s*(?P<amt_k>{_K})?{_SEP}{_UNIT}",
        re.IGNORECASE,
    ),
    # $120k
    re.compile(rf"(?P<sym>{_SYM})\s*(?P<amt>{_NUM})\s*(?P<amt_k>{_K})", re.IGNORECASE),
    # €45,000
    re.compile(
        rf"(?P<sym>{_SYM})\s*(?P<amt>{_NUM}){_END}(?!{_DASH}(?:{_SYM})?\s*{_NUM}{_BIG})",
        re.IGNORECASE,
    ),
)

_PERIODS: dict[str, SalaryPeriod] = {
    "hourly": "hourly", "hour": "hourly", "hr": "hourly",
    "daily": "daily", "day": "daily",
    "weekly": "weekly", "week": "weekly", "wk": "weekly",
    "monthly": "monthly", "month": "monthly", "mo": "monthly",
}


def parse_salary(text: str | None) -> Salary | None:
    """Parse the first salary mention in ``text``.

    >>> parse_salary("$50k - $80k")
    Salary(min=50000.0, max=80000.0, currency='USD', period='yearly')
    """
    if not text:
        return None
    clean = " ".join(text.split())
    for pattern in SALARY_PATTERNS:
        match = pattern.search(clean)
        if match is None:
            continue
        salary = _from_match(match, clean)
        if salary is not None:
            return salary
    return None


def _from_match(match: re.Match[str], text: str) -> Salary | None:
    groups = match.groupdict()
    currency = _currency(groups.get("sym"), text)
    period = _period(groups.get("unit"))

    if groups.get("lo") is not None:
        lo = _amount(groups["lo"], bool(groups.get("lo_k")))
        hi = _amount(groups["hi"], bool(groups.get("hi_k")))
        if lo is None or hi is None:
            return None
        # "$50-80k": the k on the upper bound applies to both
        if groups.get("hi_k") and not groups.get("lo_k") and lo < 1000 <= hi:
            lo *= 1000
        lo, hi = min(lo, hi), max(lo, hi)
    else:
        amount = _amount(groups["amt"], bool(groups.get("amt_k")))
        if amount is None:
            return None
        lo = hi = amount

    logger.debug("Salary %r -> %s-%s %s %s", match.group(0), lo, hi, currency, period)
    return Salary(min=lo, max=hi, currency=currency, period=period)


def _amount(raw: str, thousands: bool) -> float | None:
    try:
        value = float(raw.replace(",", ""))
    except ValueError:
        return None
    return value * 1000 if thousands else value


def _currency(symbol: str | None, text: str) -> str:
    if symbol:
        return CURRENCY_SYMBOLS.get(symbol, "USD")
    code = _CODE_RE.search(text)
    return code.group(1) if code else "USD"


def _period(unit: str | None) -> SalaryPeriod:
    if not unit:
        return "yearly"
    return _PERIODS.get(unit.lower(), "yearly")
