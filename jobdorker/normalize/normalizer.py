"""RawJobRecord + Provenance -> NormalizedJobListing.

Required fields (title, company, location, description, url) must be
non-empty after trimming; anything else is enrichment and never blocks a
record. Confidence is a deterministic weighted presence score used by the
deduplicator to prefer richer records during merge.
"""

import hashlib
import logging
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from jobdorker.core.errors import ListingValidationError
from jobdorker.core.schemas import (
    EmploymentType,
    JobSource,
    ListingMetadata,
    NormalizedJobListing,
    Provenance,
    RawJobRecord,
    Salary,
    utc_now,
)
from jobdorker.normalize.dates import parse_date
from jobdorker.normalize.salary import parse_salary

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "company", "location", "description", "url")

CONFIDENCE_WEIGHTS: dict[str, float] = {
    "title": 0.25,
    "company": 0.20,
    "location": 0.15,
    "description": 0.15,
    "url": 0.10,
    "salary": 0.05,
    "employment_type": 0.05,
    "posted_date": 0.05,
}

# Order matters: first match wins.
EMPLOYMENT_TYPE_PATTERNS: tuple[tuple[EmploymentType, re.Pattern[str]], ...] = (
    ("full-time", re.compile(r"\bfull[\s-]?time\b", re.IGNORECASE)),
    ("part-time", re.compile(r"\bpart[\s-]?time\b", re.IGNORECASE)),
    ("contract", re.compile(r"\bcontract(?:or)?\b", re.IGNORECASE)),
    ("temporary", re.compile(r"\btemp(?:orary)?\b", re.IGNORECASE)),
    ("internship", re.compile(r"\bintern(?:ship)?s?\b", re.IGNORECASE)),
    ("freelance", re.compile(r"\bfreelanc(?:e|er|ing)\b", re.IGNORECASE)),
)

REMOTE_KEYWORDS: tuple[str, ...] = (
    "remote", "work from home", "wfh", "distributed team", "distributed company", "anywhere",
)
_REMOTE_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(kw) for kw in REMOTE_KEYWORDS) + r")\b", re.IGNORECASE,
)

TECH_KEYWORDS: tuple[str, ...] = (
    "javascript", "typescript", "python", "java", "react", "angular", "vue",
    "node.js", "express", "mongodb", "postgresql", "aws", "docker", "kubernetes",
    "git", "agile", "scrum", "rest", "api", "microservices", "devops",
)
MAX_TAGS = 8
MAX_SECTION_ITEMS = 10

REQUIREMENT_HEADINGS = ("requirement", "qualification", "must have", "skills")
REQUIREMENT_STOPS = ("benefit", "offer", "about us")
BENEFIT_HEADINGS = ("benefit", "offer", "perks", "compensation")
BENEFIT_STOPS = ("requirement", "about us", "how to apply")

_BULLET_RE = re.compile(r"^(?:[•\-*]|\d+[.)])\s*")


class JobNormalizer:
    """Stateless apart from the clock used for relative dates.

    Usage::

        normalizer = JobNormalizer()
        listing = normalizer.normalize(raw, Provenance(site="indeed", page_url=url))
    """

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def normalize(self, raw: RawJobRecord, provenance: Provenance) -> NormalizedJobListing | None:
        """Return the canonical listing, or None when a required field is empty."""
        try:
            return self.build(raw, provenance)
        except ListingValidationError as e:
            logger.debug(
                "Dropping record %d from %s: %s", raw.element_index, raw.page_url, e,
            )
            return None

    def build(self, raw: RawJobRecord, provenance: Provenance) -> NormalizedJobListing:
        """Like ``normalize`` but raises ListingValidationError on a missing field."""
        fields = {name: _clean(getattr(raw, name)) for name in REQUIRED_FIELDS}
        for name in REQUIRED_FIELDS:
            if not fields[name]:
                raise ListingValidationError(name)

        title, company, location = fields["title"], fields["company"], fields["location"]
        description, url = fields["description"], fields["url"]

        salary = parse_salary(raw.salary) or parse_salary(description)
        posted = parse_date(raw.posted_date, now=self._clock())
        employment_type = infer_employment_type(raw.employment_type, title, description)

        return NormalizedJobListing(
            id=listing_id(provenance.site, url, title, company, location, provenance.id_pattern),
            title=title,
            company=company,
            location=location,
            description=description,
            url=url,
            salary=salary,
            employment_type=employment_type,
            remote=infer_remote(location, description),
            posted_date=posted,
            requirements=extract_section_items(description, REQUIREMENT_HEADINGS, REQUIREMENT_STOPS),
            benefits=extract_section_items(description, BENEFIT_HEADINGS, BENEFIT_STOPS),
            tags=extract_tags(title, description),
            source=JobSource(
                site=provenance.site,
                original_url=url,
                scraped_at=provenance.scraped_at,
            ),
            metadata=ListingMetadata(
                confidence=compute_confidence(raw, salary, posted),
                raw_data=_raw_data(raw, provenance),
            ),
        )


def listing_id(
    site: str,
    url: str,
    title: str,
    company: str,
    location: str,
    id_pattern: str | None = None,
) -> str:
    """Deterministic listing id.

    ``{site}_{urlId}`` when the URL carries a posting id, otherwise a sha1
    prefix of the case- and whitespace-normalized title|company|location.
    """
    url_id = extract_url_id(url, id_pattern)
    if url_id:
        return f"{site}_{url_id}"
    key = "|".join(" ".join(part.lower().split()) for part in (title, company, location))
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]


def extract_url_id(url: str, id_pattern: str | None = None) -> str | None:
    """Posting id embedded in ``url``: source pattern first, else a numeric last segment."""
    if id_pattern:
        try:
            match = re.search(id_pattern, url)
        except re.error:
            logger.warning("Invalid id_pattern %r, ignoring", id_pattern)
            match = None
        if match and match.groups() and match.group(1):
            return match.group(1)
    last = urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]
    return last if last.isdigit() else None


def infer_employment_type(*texts: str | None) -> EmploymentType:
    """First vocabulary match over ``texts`` in the order given; full-time by default."""
    for text in texts:
        if not text:
            continue
        for employment_type, pattern in EMPLOYMENT_TYPE_PATTERNS:
            if pattern.search(text):
                return employment_type
    return "full-time"


def infer_remote(location: str, description: str) -> bool:
    return bool(_REMOTE_RE.search(f"{location} {description}"))


def extract_section_items(
    description: str,
    headings: tuple[str, ...],
    stops: tuple[str, ...],
    limit: int = MAX_SECTION_ITEMS,
) -> list[str]:
    """Bullet items listed under one of ``headings`` until a ``stops`` line."""
    items: list[str] = []
    in_section = False
    for line in description.splitlines():
        stripped = line.strip()
        lowered = stripped.lower()
        is_bullet = bool(_BULLET_RE.match(stripped))
        if not is_bullet and any(h in lowered for h in headings):
            in_section = True
            continue
        if not is_bullet and any(s in lowered for s in stops):
            in_section = False
            continue
        if in_section and is_bullet:
            item = _BULLET_RE.sub("", stripped)
            if item:
                items.append(item)
        if len(items) >= limit:
            break
    return items


def extract_tags(title: str, description: str) -> list[str]:
    text = f"{title} {description}".lower()
    tags = [
        kw for kw in TECH_KEYWORDS
        if re.search(rf"(?<![a-z0-9]){re.escape(kw)}(?![a-z0-9])", text)
    ]
    return tags[:MAX_TAGS]


def compute_confidence(
    raw: RawJobRecord, salary: Salary | None, posted: datetime | None,
) -> float:
    """Weighted presence sum, rounded to two decimals."""
    present = {
        "title": bool(_clean(raw.title)),
        "company": bool(_clean(raw.company)),
        "location": bool(_clean(raw.location)),
        "description": bool(_clean(raw.description)),
        "url": bool(_clean(raw.url)),
        "salary": salary is not None,
        "employment_type": bool(_clean(raw.employment_type)),
        "posted_date": posted is not None,
    }
    score = sum(CONFIDENCE_WEIGHTS[name] for name, ok in present.items() if ok)
    return round(min(score, 1.0), 2)


def _clean(value: str | None) -> str:
    return value.strip() if value else ""


def _raw_data(raw: RawJobRecord, provenance: Provenance) -> dict[str, Any]:
    data: dict[str, Any] = raw.model_dump(exclude={"markup"})
    data["sources"] = [provenance.site]
    return data
