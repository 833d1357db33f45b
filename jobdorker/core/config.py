"""Configuration models and YAML loader for the job ingestion pipeline."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from jobdorker.core.schemas import EmploymentType

DatePosted = Literal["today", "week", "month", "any"]
RenderMode = Literal["static", "dynamic", "hybrid"]

DEFAULT_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_5) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
)


def _as_selector_tuple(value: Any) -> Any:
    """Accept a single selector string where a fallback tuple is expected."""
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    return value


class RateLimitConfig(BaseModel):
    """Per-source request budget."""

    model_config = ConfigDict(frozen=True)

    requests_per_minute: int = Field(default=30, ge=1)
    burst_limit: int = Field(default=5, ge=1)


class SelectorRules(BaseModel):
    """CSS selectors per card field, each tried in order until one matches."""

    model_config = ConfigDict(frozen=True)

    card: tuple[str, ...]
    title: tuple[str, ...]
    company: tuple[str, ...]
    location: tuple[str, ...] = ()
    link: tuple[str, ...] = ()
    salary: tuple[str, ...] = ()
    description: tuple[str, ...] = ()
    posted_date: tuple[str, ...] = ()
    employment_type: tuple[str, ...] = ()
    next_page: tuple[str, ...] = ()

    @field_validator(
        "card", "title", "company", "location", "link", "salary",
        "description", "posted_date", "employment_type", "next_page",
        mode="before",
    )
    @classmethod
    def coerce_selectors(cls, v: Any) -> Any:
        return _as_selector_tuple(v)

    @field_validator("card", "title", "company")
    @classmethod
    def required_selectors(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            msg = "card, title and company selectors must not be empty"
            raise ValueError(msg)
        return v


class QueryParamMap(BaseModel):
    """Generic search parameter name -> site-specific query parameter name."""

    model_config = ConfigDict(frozen=True)

    keywords: str
    location: str | None = None
    date_posted: str | None = None
    salary_min: str | None = None
    salary_max: str | None = None
    job_type: str | None = None
    remote: str | None = None


class SearchMapping(BaseModel):
    """How a source turns SearchCriteria into a search URL.

    With ``dork=True`` the source is a web search engine: the keyword
    parameter carries one rendered dork query per search instead of the
    plain keywords, and at most ``max_queries`` queries run.
    """

    model_config = ConfigDict(frozen=True)

    search_url: str
    params: QueryParamMap
    date_posted_values: dict[str, str] = Field(default_factory=dict)
    job_type_values: dict[str, str] = Field(default_factory=dict)
    remote_value: str = "true"
    fixed_params: dict[str, str] = Field(default_factory=dict)
    dork: bool = False
    max_queries: int = Field(default=5, ge=1, le=50)


class PaginationConfig(BaseModel):
    """Pagination descriptor.

    ``style="offset"`` sends ``start + page_index * step``; ``style="page"``
    sends ``start + page_index``. The first page never carries the parameter.
    """

    model_config = ConfigDict(frozen=True)

    param: str | None = None
    style: Literal["offset", "page"] = "offset"
    start: int = Field(default=0, ge=0)
    step: int = Field(default=10, ge=1)
    max_pages: int = Field(default=5, ge=1, le=100)


class SourceDescriptor(BaseModel):
    """Immutable description of one external job board."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    base_url: str
    enabled: bool = True
    render: RenderMode = "static"
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    timeout_ms: int = Field(default=30000, ge=1000)
    retries: int = Field(default=3, ge=0, le=10)
    selectors: SelectorRules
    search: SearchMapping
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    id_pattern: str | None = None

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "source id must not be empty"
            raise ValueError(msg)
        return v.strip().lower()


class SearchCriteria(BaseModel):
    """What the caller is looking for."""

    keywords: list[str]
    location: str | None = None
    remote: bool | None = None
    salary_min: int | None = Field(default=None, ge=0)
    salary_max: int | None = Field(default=None, ge=0)
    employment_types: list[EmploymentType] | None = None
    exclude_keywords: list[str] = Field(default_factory=list)
    date_posted: DatePosted = "any"
    max_results: int = Field(default=50, ge=1, le=1000)

    @field_validator("keywords")
    @classmethod
    def keywords_not_empty(cls, v: list[str]) -> list[str]:
        cleaned = [kw.strip() for kw in v if kw.strip()]
        if not cleaned:
            msg = "at least one keyword is required"
            raise ValueError(msg)
        return cleaned

    @model_validator(mode="after")
    def salary_range_ordered(self) -> "SearchCriteria":
        if (
            self.salary_min is not None
            and self.salary_max is not None
            and self.salary_min > self.salary_max
        ):
            msg = "salary_min must not exceed salary_max"
            raise ValueError(msg)
        return self


class FetchConfig(BaseModel):
    """HTTP client behaviour shared by every source."""

    user_agents: list[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    page_delay_min_s: float = Field(default=1.0, ge=0.0)
    page_delay_max_s: float = Field(default=3.0, ge=0.0)

    @field_validator("user_agents")
    @classmethod
    def at_least_one_agent(cls, v: list[str]) -> list[str]:
        agents = [ua.strip() for ua in v if ua.strip()]
        if not agents:
            msg = "at least one user agent must be configured"
            raise ValueError(msg)
        return agents


class BrowserConfig(BaseModel):
    """Browser session configuration for script-rendered sources."""

    enabled: bool = False
    headless: bool = True
    cookies_path: str = "config/cookies.json"
    timeout_ms: int = Field(default=30000, ge=1000)


class DedupConfig(BaseModel):
    """Thresholds for duplicate detection."""

    title_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    company_threshold: float = Field(default=0.90, ge=0.0, le=1.0)
    location_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    description_threshold: float = Field(default=0.70, ge=0.0, le=1.0)
    consider_description: bool = False
    url_exact_match: bool = True
    duplicate_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    min_matched_fields: int = Field(default=2, ge=1, le=4)
    mode: Literal["accurate", "fast", "auto"] = "auto"
    fast_mode_threshold: int = Field(default=1000, ge=1)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobs.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    sources: list[SourceDescriptor] = Field(default_factory=list)
    enabled_sources: list[str] = Field(default_factory=list)
    search: SearchCriteria | None = None

    @field_validator("sources")
    @classmethod
    def unique_source_ids(cls, v: list[SourceDescriptor]) -> list[SourceDescriptor]:
        ids = [s.id for s in v]
        if len(ids) != len(set(ids)):
            msg = "source ids must be unique"
            raise ValueError(msg)
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
