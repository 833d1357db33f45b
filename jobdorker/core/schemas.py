"""Core data models for the job ingestion pipeline.

Records are frozen; updates go through ``model_copy(update=...)``. Field names
are snake_case in Python and camelCase on the wire (``to_payload``).
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

EmploymentType = Literal[
    "full-time", "part-time", "contract", "temporary", "internship", "freelance",
]
SalaryPeriod = Literal["hourly", "daily", "weekly", "monthly", "yearly"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class RawJobRecord(_Record):
    """Free text pulled from one card on one listing page. Never persisted."""

    title: str | None = None
    company: str | None = None
    location: str | None = None
    description: str | None = None
    salary: str | None = None
    posted_date: str | None = None
    employment_type: str | None = None
    url: str | None = None
    markup: str = ""
    page_url: str
    element_index: int = Field(ge=0)


class Provenance(_Record):
    """Where a raw record came from."""

    site: str
    page_url: str
    scraped_at: datetime = Field(default_factory=utc_now)
    id_pattern: str | None = None


class Salary(_Record):
    min: float | None = None
    max: float | None = None
    currency: str = "USD"
    period: SalaryPeriod = "yearly"

    @model_validator(mode="after")
    def min_not_above_max(self) -> "Salary":
        if self.min is not None and self.max is not None and self.min > self.max:
            msg = f"salary min {self.min} exceeds max {self.max}"
            raise ValueError(msg)
        return self


class JobSource(_Record):
    site: str
    original_url: str
    scraped_at: datetime = Field(default_factory=utc_now)


class ListingMetadata(_Record):
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    raw_data: dict[str, Any] = Field(default_factory=dict)


class NormalizedJobListing(_Record):
    """Canonical job posting as handed to persistence."""

    id: str
    title: str
    company: str
    location: str
    description: str
    url: str
    salary: Salary | None = None
    employment_type: EmploymentType = "full-time"
    remote: bool = False
    posted_date: datetime | None = None
    expiry_date: datetime | None = None
    requirements: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    source: JobSource
    metadata: ListingMetadata = Field(default_factory=ListingMetadata)


class SimilarityResult(_Record):
    """Outcome of comparing a listing against one admitted candidate."""

    candidate: NormalizedJobListing
    score: float = Field(ge=0.0, le=1.0)
    matched_fields: tuple[str, ...] = ()


class DuplicateRecord(_Record):
    """Audit entry: ``duplicate_id`` was merged into ``original_id``."""

    original_id: str
    duplicate_id: str
    score: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utc_now)


class RunMetrics(_Record):
    """Counters for one pipeline invocation, frozen at run end."""

    pages_fetched: int = 0
    jobs_found: int = 0
    jobs_deduplicated: int = 0
    retries: int = 0
    errors: int = 0
    cards_skipped: int = 0
    listings_dropped: int = 0
    duration_ms: int = 0


class IngestionResult(_Record):
    """What the pipeline returns; consumed by report generators and storage."""

    jobs: list[NormalizedJobListing] = Field(default_factory=list)
    total_found: int = 0
    errors: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """camelCase dict with ISO-8601 timestamps."""
        return self.model_dump(mode="json", by_alias=True)
