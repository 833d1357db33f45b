"""Duplicate detection and merging over one run's admitted listings.

Accurate mode compares each incoming listing against every admitted one and
merges into the first candidate whose composite score exceeds the duplicate
threshold. Fast mode buckets by a truncated sha1 of normalized
(title, company, location); equal hashes are duplicates, collisions
included. First seen always stays canonical.
"""

import hashlib
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from jobdorker.core.config import DedupConfig
from jobdorker.core.schemas import (
    DuplicateRecord,
    NormalizedJobListing,
    SimilarityResult,
    utc_now,
)
from jobdorker.dedup.similarity import (
    compute_similarity,
    normalize_company,
    normalize_location,
    normalize_title,
)

logger = logging.getLogger(__name__)

HASH_LENGTH = 12


@dataclass(frozen=True)
class AdmitOutcome:
    status: Literal["unique", "merged"]
    listing_id: str
    merged_into: str | None = None
    record: DuplicateRecord | None = None


@dataclass
class DedupResult:
    unique: list[NormalizedJobListing] = field(default_factory=list)
    duplicates: list[DuplicateRecord] = field(default_factory=list)


def job_hash(listing: NormalizedJobListing) -> str:
    """Structural hash of normalized title|company|location."""
    key = "|".join((
        normalize_title(listing.title),
        normalize_company(listing.company),
        normalize_location(listing.location),
    ))
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def merge_listings(
    canonical: NormalizedJobListing, duplicate: NormalizedJobListing,
) -> NormalizedJobListing:
    """Fold ``duplicate`` into ``canonical`` and return the new canonical record.

    Confidence becomes the max of the two, the duplicate's sites are appended
    to ``raw_data["sources"]``, empty optional fields are backfilled, tags
    are unioned in order and ``posted_date`` becomes the later of the two.
    """
    raw_data = dict(canonical.metadata.raw_data)
    sources: list[str] = list(raw_data.get("sources") or [canonical.source.site])
    for site in [duplicate.source.site, *(duplicate.metadata.raw_data.get("sources") or [])]:
        if site not in sources:
            sources.append(site)
    raw_data["sources"] = sources

    metadata = canonical.metadata.model_copy(update={
        "confidence": max(canonical.metadata.confidence, duplicate.metadata.confidence),
        "raw_data": raw_data,
    })
    update: dict[str, object] = {
        "metadata": metadata,
        "tags": list(dict.fromkeys([*canonical.tags, *duplicate.tags])),
    }
    if not canonical.description and duplicate.description:
        update["description"] = duplicate.description
    if canonical.salary is None and duplicate.salary is not None:
        update["salary"] = duplicate.salary
    if not canonical.requirements and duplicate.requirements:
        update["requirements"] = list(duplicate.requirements)
    if not canonical.benefits and duplicate.benefits:
        update["benefits"] = list(duplicate.benefits)
    if duplicate.posted_date is not None and (
        canonical.posted_date is None or duplicate.posted_date > canonical.posted_date
    ):
        update["posted_date"] = duplicate.posted_date

    return canonical.model_copy(update=update)


def fast_deduplicate(listings: Iterable[NormalizedJobListing]) -> list[NormalizedJobListing]:
    """Keep the first listing per structural hash. Pure and idempotent."""
    seen: set[str] = set()
    unique: list[NormalizedJobListing] = []
    for listing in listings:
        h = job_hash(listing)
        if h not in seen:
            seen.add(h)
            unique.append(listing)
    return unique


class DeduplicationEngine:
    """Owns the admitted set for a single pipeline run.

    Usage::

        engine = DeduplicationEngine(settings.dedup)
        result = engine.deduplicate(listings)
        result.unique, result.duplicates
    """

    def __init__(
        self,
        config: DedupConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config or DedupConfig()
        self._clock = clock
        self._admitted: list[NormalizedJobListing] = []
        self._hash_index: dict[str, int] = {}

    @property
    def admitted(self) -> list[NormalizedJobListing]:
        return list(self._admitted)

    def similarity(self, a: NormalizedJobListing, b: NormalizedJobListing) -> SimilarityResult:
        return compute_similarity(a, b, self._config)

    def admit(self, listing: NormalizedJobListing, *, fast: bool = False) -> AdmitOutcome:
        """Admit ``listing`` as unique or merge it into an admitted listing."""
        if fast:
            index = self._hash_index.get(job_hash(listing))
            if index is not None:
                return self._merge_into(index, listing, 1.0)
        else:
            for index, candidate in enumerate(self._admitted):
                result = self.similarity(listing, candidate)
                if result.score > self._config.duplicate_threshold:
                    logger.debug(
                        "'%s' duplicates '%s' (score %.3f, fields %s)",
                        listing.id, candidate.id, result.score, ",".join(result.matched_fields),
                    )
                    return self._merge_into(index, listing, result.score)

        self._hash_index.setdefault(job_hash(listing), len(self._admitted))
        self._admitted.append(listing)
        return AdmitOutcome(status="unique", listing_id=listing.id)

    def deduplicate(self, listings: list[NormalizedJobListing]) -> DedupResult:
        """Admit ``listings`` in order; fast mode is used per ``config.mode``."""
        fast = self._use_fast_mode(len(listings))
        duplicates: list[DuplicateRecord] = []
        for listing in listings:
            outcome = self.admit(listing, fast=fast)
            if outcome.record is not None:
                duplicates.append(outcome.record)

        logger.info(
            "Deduplication (%s): %d in, %d unique, %d merged",
            "fast" if fast else "accurate", len(listings), len(self._admitted), len(duplicates),
        )
        return DedupResult(unique=self.admitted, duplicates=duplicates)

    def fast_deduplicate(self, listings: Iterable[NormalizedJobListing]) -> list[NormalizedJobListing]:
        return fast_deduplicate(listings)

    def reset(self) -> None:
        self._admitted.clear()
        self._hash_index.clear()

    def _use_fast_mode(self, batch_size: int) -> bool:
        if self._config.mode == "fast":
            return True
        if self._config.mode == "auto":
            return batch_size > self._config.fast_mode_threshold
        return False

    def _merge_into(
        self, index: int, duplicate: NormalizedJobListing, score: float,
    ) -> AdmitOutcome:
        canonical = self._admitted[index]
        self._admitted[index] = merge_listings(canonical, duplicate)
        record = DuplicateRecord(
            original_id=canonical.id,
            duplicate_id=duplicate.id,
            score=min(max(score, 0.0), 1.0),
            timestamp=self._clock(),
        )
        return AdmitOutcome(
            status="merged",
            listing_id=duplicate.id,
            merged_into=canonical.id,
            record=record,
        )
