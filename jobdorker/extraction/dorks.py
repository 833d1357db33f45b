"""Search-engine dork generation for job boards without a usable search page."""

import logging
import re
from itertools import combinations
from urllib.parse import parse_qs, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from jobdorker.core.config import SearchCriteria

logger = logging.getLogger(__name__)

DORK_SITES: tuple[str, ...] = (
    "linkedin.com/jobs",
    "indeed.com",
    "glassdoor.com",
    "remoteok.com",
    "weworkremotely.com",
    "wellfound.com",
    "remote.co",
    "flexjobs.com",
    "ziprecruiter.com",
    "dice.com",
)

REMOTE_TERMS = ("remote", "work from home")
MAX_QUERIES = 20
MAX_VARIATIONS = 10
DORKS_PER_VARIATION = 3

# Result pages served instead of results when the engine throttles us
BLOCKED_PAGE_MARKERS = ("unusual traffic", "captcha", "/sorry/index")

BOARD_NAMES: dict[str, str] = {
    "linkedin.com": "LinkedIn",
    "indeed.com": "Indeed",
    "glassdoor.com": "Glassdoor",
}

_AT_COMPANY = re.compile(r"\bat\s+([^-\u2022|]+)", re.IGNORECASE)
_IS_HIRING = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s+is\s+hiring")
_TITLE_LOCATION = re.compile(r"\|\s*([^|]+)$")
_SNIPPET_LOCATION = re.compile(
    r"\b(Remote|San Francisco|New York|Seattle|Austin|Boston|Los Angeles|Chicago|Denver"
    r"|Portland|Atlanta|Washington|Miami|Dallas|Phoenix|Philadelphia|San Diego|Minneapolis"
    r"|London|Berlin|Amsterdam|Paris|Toronto|Dublin)(?:,\s*([A-Z]{2})\b)?",
)
UNKNOWN_LOCATION = "Various"


class DorkConfig(BaseModel):
    """One structured search-engine query before rendering."""

    model_config = ConfigDict(frozen=True)

    site: str = ""
    keywords: tuple[str, ...]
    exclude_keywords: tuple[str, ...] = ()
    file_types: tuple[str, ...] = ()
    custom_params: dict[str, str] = Field(default_factory=dict)


def site_dork(site: str, criteria: SearchCriteria) -> DorkConfig:
    keywords = list(criteria.keywords)
    params: dict[str, str] = {}
    if criteria.remote:
        keywords.extend(REMOTE_TERMS)
    elif criteria.location:
        params["location"] = criteria.location
    if criteria.salary_min:
        keywords.append(f"salary:>{criteria.salary_min}")
    return DorkConfig(
        site=site,
        keywords=tuple(keywords),
        exclude_keywords=tuple(criteria.exclude_keywords),
        custom_params=params,
    )


def file_type_dork(criteria: SearchCriteria) -> DorkConfig:
    """Job descriptions published as PDF documents."""
    return DorkConfig(
        keywords=(*criteria.keywords, "job description", "job posting"),
        exclude_keywords=tuple(criteria.exclude_keywords),
        file_types=("pdf",),
    )


def career_page_dork(criteria: SearchCriteria) -> DorkConfig:
    """Company career pages outside the big boards."""
    return DorkConfig(
        keywords=(*criteria.keywords, "careers", "jobs", "opportunities"),
        exclude_keywords=(*criteria.exclude_keywords, "apply", "application"),
        custom_params={"inurl": "careers OR jobs OR opportunities"},
    )


def generate_dorks(
    criteria: SearchCriteria, sites: tuple[str, ...] = DORK_SITES,
) -> list[DorkConfig]:
    dorks = [site_dork(site, criteria) for site in sites]
    dorks.append(file_type_dork(criteria))
    dorks.append(career_page_dork(criteria))
    logger.debug("Generated %d dorks for %s", len(dorks), criteria.keywords)
    return dorks


def build_query(config: DorkConfig) -> str:
    """Render a DorkConfig into a query string.

    >>> build_query(DorkConfig(site="indeed.com", keywords=("python", "data engineer")))
    'site:indeed.com python "data engineer"'
    """
    parts: list[str] = []
    if config.site:
        parts.append(f"site:{config.site}")
    parts.append(" ".join(f'"{kw}"' if " " in kw else kw for kw in config.keywords))
    if config.exclude_keywords:
        parts.append(" ".join(f"-{kw}" for kw in config.exclude_keywords))
    if config.file_types:
        parts.append(" OR ".join(f"filetype:{ft}" for ft in config.file_types))
    for key, value in config.custom_params.items():
        parts.append(f"{key}:{value}")
    return " ".join(parts)


def generate_queries(criteria: SearchCriteria, limit: int = MAX_QUERIES) -> list[str]:
    """Primary queries plus single-keyword and keyword-pair variations, deduplicated."""
    queries = [build_query(d) for d in generate_dorks(criteria)]

    if len(criteria.keywords) > 1:
        for keywords in _keyword_variations(criteria.keywords):
            variant = criteria.model_copy(update={"keywords": keywords})
            queries.extend(build_query(d) for d in generate_dorks(variant)[:DORKS_PER_VARIATION])

    unique = list(dict.fromkeys(queries))
    return unique[: min(limit, criteria.max_results)]


def _keyword_variations(keywords: list[str]) -> list[list[str]]:
    variations: list[list[str]] = [[kw] for kw in keywords]
    variations.extend([a, b] for a, b in combinations(keywords, 2))
    return variations[:MAX_VARIATIONS]


def dork_searches(criteria: SearchCriteria, limit: int = MAX_QUERIES) -> list[SearchCriteria]:
    """One criteria copy per dork query, the rendered query riding in ``keywords``."""
    return [
        criteria.model_copy(update={"keywords": [query]})
        for query in generate_queries(criteria, limit=limit)
    ]


def unwrap_result_link(url: str) -> str:
    """Target of a search engine's "/url?q=<target>" redirect link, else ``url``."""
    parts = urlsplit(url)
    if parts.path != "/url":
        return url
    query = parse_qs(parts.query)
    for key in ("q", "url"):
        target = query.get(key, [""])[0]
        if target.startswith(("http://", "https://")):
            return target
    return url


def is_blocked_page(text: str) -> bool:
    """True for the captcha / unusual-traffic interstitial a search engine serves."""
    lowered = text.lower()
    return any(marker in lowered for marker in BLOCKED_PAGE_MARKERS)


def company_from_result(
    title: str, url: str | None, snippet: str = "", *, site_name: str = "",
) -> str:
    """Best-effort hiring company for a search result, which has no company field.

    Tries "<role> at <Company>" in the title, then "<Company> is hiring" in
    the snippet, then the site name the engine shows, then the result's domain.

    >>> company_from_result("Data Engineer at Globex - LinkedIn", "https://www.linkedin.com/jobs/view/1")
    'Globex'
    >>> company_from_result("Careers", "https://jobs.initech.io/openings")
    'Initech'
    """
    for match in (_AT_COMPANY.search(title), _IS_HIRING.search(snippet)):
        if match is not None:
            name = match.group(1).strip()
            if 2 < len(name) < 50:
                return name
    if site_name:
        return site_name

    host = (urlsplit(url).hostname or "") if url else ""
    for domain, name in BOARD_NAMES.items():
        if host == domain or host.endswith(f".{domain}"):
            return name
    labels = host.split(".")
    if len(labels) >= 2:
        return labels[-2].capitalize()
    return ""


def location_from_result(title: str, snippet: str = "") -> str:
    """Location named in a result's snippet or trailing "| <place>" title part."""
    match = _SNIPPET_LOCATION.search(snippet)
    if match is not None:
        city, state = match.groups()
        return f"{city}, {state}" if state else city
    match = _TITLE_LOCATION.search(title)
    if match is not None and match.group(1).strip():
        return match.group(1).strip()
    return UNKNOWN_LOCATION
