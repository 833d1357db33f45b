"""Search URL builder and pagination helpers.

Pure functions with no network dependency.
"""

import logging
from urllib.parse import quote_plus, urlencode

from jobdorker.core.config import PaginationConfig, SearchCriteria, SourceDescriptor

logger = logging.getLogger(__name__)


def build_search_url(
    source: SourceDescriptor, criteria: SearchCriteria, page_index: int = 0,
) -> str:
    """Build a listing-page URL for ``source`` from generic search criteria.

    Args:
        source: Descriptor carrying the site's parameter mapping.
        criteria: Validated search criteria.
        page_index: Zero-based page number. ``0`` omits the page parameter.

    Returns:
        Fully qualified search URL.
    """
    mapping = source.search
    names = mapping.params
    params: dict[str, str] = {names.keywords: " ".join(criteria.keywords)}

    if criteria.location and names.location:
        params[names.location] = criteria.location

    if criteria.date_posted != "any" and names.date_posted:
        codes = _map_values([criteria.date_posted], mapping.date_posted_values, "date_posted")
        if codes:
            params[names.date_posted] = codes[0]

    if criteria.salary_min is not None and names.salary_min:
        params[names.salary_min] = str(criteria.salary_min)
    if criteria.salary_max is not None and names.salary_max:
        params[names.salary_max] = str(criteria.salary_max)

    if criteria.employment_types and names.job_type:
        codes = _map_values(criteria.employment_types, mapping.job_type_values, "job_type")
        if codes:
            params[names.job_type] = ",".join(codes)

    if criteria.remote and names.remote:
        params[names.remote] = mapping.remote_value

    params.update(mapping.fixed_params)

    page_value = page_param_value(source.pagination, page_index)
    if page_value is not None and source.pagination.param:
        params[source.pagination.param] = page_value

    separator = "&" if "?" in mapping.search_url else "?"
    return f"{mapping.search_url}{separator}{urlencode(params, quote_via=quote_plus)}"


def page_param_value(pagination: PaginationConfig, page_index: int) -> str | None:
    """Value of the page parameter for ``page_index``, or None on the first page."""
    if page_index <= 0 or pagination.param is None:
        return None
    if pagination.style == "page":
        return str(pagination.start + page_index)
    return str(pagination.start + page_index * pagination.step)


def _map_values(
    values: list[str],
    mapping: dict[str, str],
    field_name: str,
) -> list[str]:
    """Map generic filter values to site codes.

    Unknown values are logged and skipped (never crash).
    """
    codes: list[str] = []
    for v in values:
        key = v.lower().strip()
        code = mapping.get(key)
        if code is None:
            logger.warning("No site code for %s value '%s', skipping", field_name, v)
        else:
            codes.append(code)
    return codes
