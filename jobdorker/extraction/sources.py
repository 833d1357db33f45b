"""Built-in source registry.

Per-board differences (parameter names, pagination, selectors) are data.
Each selector field is a tuple so the extractor iterates until a match is
found; YAML ``sources`` entries replace or add descriptors by id.
"""

import logging
from collections.abc import Iterable

from jobdorker.core.config import (
    PaginationConfig,
    QueryParamMap,
    RateLimitConfig,
    SearchMapping,
    SelectorRules,
    Settings,
    SourceDescriptor,
)

logger = logging.getLogger(__name__)

_STRICT = RateLimitConfig(requests_per_minute=30, burst_limit=5)
_RELAXED = RateLimitConfig(requests_per_minute=60, burst_limit=10)

LINKEDIN = SourceDescriptor(
    id="linkedin",
    name="LinkedIn Jobs",
    base_url="https://www.linkedin.com",
    render="dynamic",
    rate_limit=_STRICT,
    timeout_ms=30000,
    selectors=SelectorRules(
        card=(".job-search-card", "li[data-occludable-job-id]", "div.base-card"),
        title=(".job-search-card__title", ".base-search-card__title", "h3"),
        company=(
            ".job-search-card__subtitle-primary-grouping",
            ".base-search-card__subtitle",
            "h4",
        ),
        location=(".job-search-card__subtitle-secondary-grouping", ".job-search-card__location"),
        link=(".job-search-card__link-wrapper", 'a[href*="/jobs/view/"]', "a.base-card__full-link"),
        salary=(".job-search-card__salary-info",),
        posted_date=("time", ".job-search-card__listdate"),
        next_page=(".artdeco-pagination__button--next",),
    ),
    search=SearchMapping(
        search_url="https://www.linkedin.com/jobs/search/",
        params=QueryParamMap(
            keywords="keywords",
            location="location",
            date_posted="f_TPR",
            job_type="f_JT",
            remote="f_WT",
        ),
        date_posted_values={"today": "r86400", "week": "r604800", "month": "r2592000"},
        job_type_values={
            "full-time": "F",
            "part-time": "P",
            "contract": "C",
            "temporary": "T",
            "internship": "I",
        },
        remote_value="2",
        fixed_params={"sortBy": "DD"},
    ),
    pagination=PaginationConfig(param="start", style="offset", start=0, step=25),
    id_pattern=r"/jobs/view/(?:[^/?#]*-)?(\d+)",
)

INDEED = SourceDescriptor(
    id="indeed",
    name="Indeed",
    base_url="https://www.indeed.com",
    render="static",
    rate_limit=_RELAXED,
    timeout_ms=20000,
    selectors=SelectorRules(
        card=("[data-jk]", "div.job_seen_beacon", "td.resultContent"),
        title=('[data-testid="job-title"]', "h2.jobTitle span", "h2 a"),
        company=('[data-testid="company-name"]', "span.companyName"),
        location=('[data-testid="job-location"]', "div.companyLocation"),
        link=("h2 a", "a.jcs-JobTitle"),
        salary=('[data-testid="job-salary"]', "div.salary-snippet"),
        description=('[data-testid="job-snippet"]', "div.job-snippet"),
        posted_date=('[data-testid="myJobsStateDate"]', "span.date"),
        next_page=('[aria-label="Next Page"]', 'a[data-testid="pagination-page-next"]'),
    ),
    search=SearchMapping(
        search_url="https://www.indeed.com/jobs",
        params=QueryParamMap(
            keywords="q",
            location="l",
            date_posted="fromage",
            salary_min="salary",
            job_type="jt",
            remote="remotejob",
        ),
        date_posted_values={"today": "1", "week": "7", "month": "30"},
        job_type_values={
            "full-time": "fulltime",
            "part-time": "parttime",
            "contract": "contract",
            "temporary": "temporary",
            "internship": "internship",
        },
        remote_value="032b3046-06a3-4876-8dfd-474eb5e7ed11",
        fixed_params={"sort": "date"},
    ),
    pagination=PaginationConfig(param="start", style="offset", start=0, step=10),
    id_pattern=r"jk=([a-f0-9]+)",
)

GLASSDOOR = SourceDescriptor(
    id="glassdoor",
    name="Glassdoor",
    base_url="https://www.glassdoor.com",
    render="dynamic",
    rate_limit=_STRICT,
    timeout_ms=30000,
    selectors=SelectorRules(
        card=('[data-test="job-listing"]', "li.react-job-listing"),
        title=('[data-test="job-title"]', '[data-test="job-link"]'),
        company=('[data-test="employer-name"]', ".job-search-key-l2wjgv"),
        location=('[data-test="job-location"]', '[data-test="emp-location"]'),
        link=('[data-test="job-title-link"]', '[data-test="job-link"]'),
        salary=('[data-test="detailSalary"]',),
        description=('[data-test="job-description"]',),
        next_page=('[data-test="pagination-next"]',),
    ),
    search=SearchMapping(
        search_url="https://www.glassdoor.com/Job/jobs.htm",
        params=QueryParamMap(keywords="sc.keyword", location="locT", job_type="jobType"),
        job_type_values={
            "full-time": "fulltime",
            "part-time": "parttime",
            "contract": "contract",
            "internship": "internship",
            "temporary": "temporary",
        },
    ),
    pagination=PaginationConfig(param="p", style="page", start=1, step=1),
)

STACKOVERFLOW = SourceDescriptor(
    id="stackoverflow",
    name="Stack Overflow Jobs",
    base_url="https://stackoverflow.com",
    enabled=False,
    render="static",
    rate_limit=_RELAXED,
    timeout_ms=20000,
    selectors=SelectorRules(
        card=(".listResults .result",),
        title=(".job-link",),
        company=(".fc-black-700",),
        location=(".fc-black-500",),
        link=(".result-link", ".job-link"),
        salary=(".salary",),
        description=(".job-summary",),
    ),
    search=SearchMapping(
        search_url="https://stackoverflow.com/jobs",
        params=QueryParamMap(keywords="q", location="l", remote="r"),
    ),
    pagination=PaginationConfig(param="pg", style="page", start=1, step=1),
)

REMOTEOK = SourceDescriptor(
    id="remoteok",
    name="Remote OK",
    base_url="https://remoteok.com",
    render="static",
    rate_limit=_RELAXED,
    timeout_ms=20000,
    selectors=SelectorRules(
        card=("tr.job", ".job"),
        title=(".company_and_position h2", '[itemprop="title"]'),
        company=(".company_and_position h3", '[itemprop="hiringOrganization"]'),
        location=(".location",),
        link=("a.preventLink", "h2 a"),
        salary=(".salary",),
        description=(".description",),
        posted_date=("time", ".time"),
    ),
    search=SearchMapping(
        search_url="https://remoteok.com/remote-jobs",
        params=QueryParamMap(keywords="search"),
    ),
    pagination=PaginationConfig(max_pages=1),
)

WEWORKREMOTELY = SourceDescriptor(
    id="weworkremotely",
    name="We Work Remotely",
    base_url="https://weworkremotely.com",
    render="static",
    rate_limit=_RELAXED,
    timeout_ms=20000,
    selectors=SelectorRules(
        card=("section.jobs li.feature", "section.jobs li", ".jobs li"),
        title=(".title",),
        company=(".company",),
        location=(".region",),
        link=('a[href^="/remote-jobs/"]', "a"),
        description=(".listing-job-post",),
        posted_date=("time", ".listing-date"),
    ),
    search=SearchMapping(
        search_url="https://weworkremotely.com/remote-jobs/search",
        params=QueryParamMap(keywords="term"),
    ),
    pagination=PaginationConfig(max_pages=1),
)

GOOGLE = SourceDescriptor(
    id="google",
    name="Google Search (dorks)",
    base_url="https://www.google.com",
    enabled=False,
    render="static",
    rate_limit=RateLimitConfig(requests_per_minute=20, burst_limit=3),
    timeout_ms=30000,
    retries=2,
    selectors=SelectorRules(
        card=("div.g", "div.MjjYud"),
        title=("h3",),
        company=("span.VuuXrf",),
        link=("a:has(h3)",),
        description=(".VwiC3b", "span.st", ".s"),
        next_page=("a#pnnext",),
    ),
    search=SearchMapping(
        search_url="https://www.google.com/search",
        params=QueryParamMap(keywords="q"),
        fixed_params={"hl": "en", "gl": "us", "num": "10"},
        dork=True,
    ),
    pagination=PaginationConfig(param="start", style="offset", start=0, step=10, max_pages=2),
)

BUILTIN_SOURCES: dict[str, SourceDescriptor] = {
    s.id: s
    for s in (LINKEDIN, INDEED, GLASSDOOR, STACKOVERFLOW, REMOTEOK, WEWORKREMOTELY, GOOGLE)
}


def get_source(source_id: str, registry: dict[str, SourceDescriptor] | None = None) -> SourceDescriptor:
    """Look up a descriptor by id (case-insensitive)."""
    registry = BUILTIN_SOURCES if registry is None else registry
    key = source_id.strip().lower()
    try:
        return registry[key]
    except KeyError:
        known = ", ".join(sorted(registry))
        msg = f"Unknown source '{source_id}' (known: {known})"
        raise ValueError(msg) from None


def build_registry(overrides: Iterable[SourceDescriptor] = ()) -> dict[str, SourceDescriptor]:
    """Built-in descriptors with ``overrides`` replacing or adding by id."""
    registry = dict(BUILTIN_SOURCES)
    for source in overrides:
        if source.id in registry:
            logger.debug("Source '%s' overridden by configuration", source.id)
        registry[source.id] = source
    return registry


def resolve_sources(
    settings: Settings, requested: Iterable[str] = (),
) -> list[SourceDescriptor]:
    """Pick the descriptors a run should crawl.

    Precedence: explicitly ``requested`` ids, then ``settings.enabled_sources``,
    then every descriptor with ``enabled=True``. Explicit ids may name a
    disabled source; the flag only governs the default selection.
    """
    registry = build_registry(settings.sources)
    ids = list(requested) or settings.enabled_sources
    if ids:
        return [get_source(source_id, registry) for source_id in ids]
    return [s for s in registry.values() if s.enabled]
