"""Criteria filter chain applied to normalized listings before dedup.

Filter order:
  1. ExcludeKeywordsFilter  - fast, title-only, case-insensitive
  2. RemoteFilter           - only when the criteria ask for remote work
  3. EmploymentTypeFilter   - only when employment types are requested
  4. SalaryRangeFilter      - listings without a salary always pass
  5. PostedWithinFilter     - listings without a date always pass
  6. AlreadyStoredFilter    - repository lookup by URL, cross-run
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from jobdorker.core.config import DatePosted, SearchCriteria
from jobdorker.core.db import JobRepository
from jobdorker.core.schemas import EmploymentType, NormalizedJobListing, Salary, utc_now

logger = logging.getLogger(__name__)

# A filter is a callable that takes listings and returns a subset.
Filter = Callable[[list[NormalizedJobListing]], list[NormalizedJobListing]]

DATE_POSTED_WINDOWS: dict[DatePosted, timedelta] = {
    "today": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

ANNUAL_MULTIPLIERS: dict[str, float] = {
    "hourly": 2080,
    "daily": 260,
    "weekly": 52,
    "monthly": 12,
    "yearly": 1,
}


def _log_removed(name: str, before: int, after: int) -> None:
    if before != after:
        logger.debug("%s: removed %d listings", name, before - after)


class ExcludeKeywordsFilter:
    """Remove listings whose title contains any excluded keyword (case-insensitive)."""

    def __init__(self, exclude_keywords: list[str]) -> None:
        self._keywords = [kw.lower().strip() for kw in exclude_keywords if kw.strip()]

    def __call__(self, listings: list[NormalizedJobListing]) -> list[NormalizedJobListing]:
        if not self._keywords:
            return listings
        result = [j for j in listings if not self._title_matches(j.title)]
        _log_removed("ExcludeKeywordsFilter", len(listings), len(result))
        return result

    def _title_matches(self, title: str) -> bool:
        title_lower = title.lower()
        return any(kw in title_lower for kw in self._keywords)


class RemoteFilter:
    """Keep only remote listings when ``remote=True``; otherwise a no-op."""

    def __init__(self, remote: bool | None) -> None:
        self._remote = bool(remote)

    def __call__(self, listings: list[NormalizedJobListing]) -> list[NormalizedJobListing]:
        if not self._remote:
            return listings
        result = [j for j in listings if j.remote]
        _log_removed("RemoteFilter", len(listings), len(result))
        return result


class EmploymentTypeFilter:
    def __init__(self, employment_types: list[EmploymentType] | None) -> None:
        self._types = set(employment_types or ())

    def __call__(self, listings: list[NormalizedJobListing]) -> list[NormalizedJobListing]:
        if not self._types:
            return listings
        result = [j for j in listings if j.employment_type in self._types]
        _log_removed("EmploymentTypeFilter", len(listings), len(result))
        return result


class SalaryRangeFilter:
    """Drop listings whose annualized salary range cannot overlap the requested one."""

    def __init__(self, salary_min: int | None, salary_max: int | None) -> None:
        self._min = salary_min
        self._max = salary_max

    def __call__(self, listings: list[NormalizedJobListing]) -> list[NormalizedJobListing]:
        if self._min is None and self._max is None:
            return listings
        result = [j for j in listings if self._overlaps(j.salary)]
        _log_removed("SalaryRangeFilter", len(listings), len(result))
        return result

    def _overlaps(self, salary: Salary | None) -> bool:
        if salary is None:
            return True
        factor = ANNUAL_MULTIPLIERS[salary.period]
        low = salary.min * factor if salary.min is not None else None
        high = salary.max * factor if salary.max is not None else low
        if self._min is not None and high is not None and high < self._min:
            return False
        if self._max is not None and low is not None and low > self._max:
            return False
        return True


class PostedWithinFilter:
    def __init__(
        self,
        date_posted: DatePosted,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._window = DATE_POSTED_WINDOWS.get(date_posted)
        self._clock = clock

    def __call__(self, listings: list[NormalizedJobListing]) -> list[NormalizedJobListing]:
        if self._window is None:
            return listings
        cutoff = self._clock() - self._window
        result = [j for j in listings if j.posted_date is None or j.posted_date >= cutoff]
        _log_removed("PostedWithinFilter", len(listings), len(result))
        return result


class AlreadyStoredFilter:
    """Remove listings whose URL is already in the repository."""

    def __init__(self, repository: JobRepository) -> None:
        self._repository = repository

    def __call__(self, listings: list[NormalizedJobListing]) -> list[NormalizedJobListing]:
        result = [j for j in listings if not self._repository.exists(j.url)]
        _log_removed("AlreadyStoredFilter", len(listings), len(result))
        return result


def build_filters(
    criteria: SearchCriteria,
    repository: JobRepository | None = None,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> list[Filter]:
    """Build the filter chain for ``criteria`` in the documented order."""
    filters: list[Filter] = [
        ExcludeKeywordsFilter(criteria.exclude_keywords),
        RemoteFilter(criteria.remote),
        EmploymentTypeFilter(criteria.employment_types),
        SalaryRangeFilter(criteria.salary_min, criteria.salary_max),
        PostedWithinFilter(criteria.date_posted, clock=clock),
    ]
    if repository is not None:
        filters.append(AlreadyStoredFilter(repository))
    return filters


def run_filter_chain(
    listings: list[NormalizedJobListing],
    filters: list[Filter],
) -> list[NormalizedJobListing]:
    """Apply filters in order, returning the surviving listings."""
    result = listings
    for f in filters:
        result = f(result)
    return result
