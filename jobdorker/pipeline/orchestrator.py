"""Orchestrator: wires extraction, normalization, filtering, dedup and storage.

Data flow:
  1. Validate criteria and check cancellation (before any network activity)
  2. Extract every source concurrently, one Fetcher + RateLimiter each
  3. Normalize raw records in source, page, card order
  4. Criteria filter chain
  5. Dedup once over the combined output
  6. Persist unique listings and the duplicate audit trail
  7. Freeze run metrics
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from jobdorker.core.cancellation import CancellationToken, check_cancelled
from jobdorker.core.config import SearchCriteria, Settings, SourceDescriptor
from jobdorker.core.db import DuplicateAuditLog, JobRepository
from jobdorker.core.errors import CancellationError, ParsingError
from jobdorker.core.schemas import (
    DuplicateRecord,
    IngestionResult,
    NormalizedJobListing,
    Provenance,
    RawJobRecord,
    RunMetrics,
    utc_now,
)
from jobdorker.dedup.engine import DeduplicationEngine
from jobdorker.extraction.engine import ExtractionEngine, SourceReport
from jobdorker.fetch.fetcher import Fetcher, PageRenderer
from jobdorker.fetch.rate_limiter import RateLimiter
from jobdorker.normalize.normalizer import JobNormalizer
from jobdorker.pipeline.events import ProgressCallback, ProgressEvent, emit
from jobdorker.pipeline.matcher import build_filters, run_filter_chain

logger = logging.getLogger(__name__)

RendererFactory = Callable[[SourceDescriptor], PageRenderer | None]


class _SerializedRenderer:
    """Shares one browser page between concurrently running sources."""

    def __init__(self, renderer: PageRenderer, lock: asyncio.Lock) -> None:
        self._renderer = renderer
        self._lock = lock

    async def render(self, url: str) -> str:
        async with self._lock:
            return await self._renderer.render(url)


class IngestionPipeline:
    """Runs one ingestion over a set of sources.

    Usage::

        pipeline = IngestionPipeline(settings, repository=JobStore.open(path))
        result = await pipeline.run(sources, criteria, cancel=CancellationToken(deadline_s=300))
        payload = result.to_payload()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        repository: JobRepository | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        renderer_factory: RendererFactory | None = None,
        on_event: ProgressCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings or Settings()
        self._repository = repository
        self._transport = transport
        self._renderer_factory = renderer_factory
        self._on_event = on_event
        self._sleep = sleep
        self._now = now
        self._normalizer = JobNormalizer(clock=now)

    async def run(
        self,
        sources: list[SourceDescriptor],
        criteria: SearchCriteria | dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> IngestionResult:
        """Crawl ``sources`` for ``criteria`` and return the unique listings.

        Raises:
            pydantic.ValidationError: ``criteria`` is invalid.
            CancellationError: the token fired before or during the run.
        """
        if not isinstance(criteria, SearchCriteria):
            criteria = SearchCriteria.model_validate(criteria)
        check_cancelled(cancel)

        started_at = self._now()
        started = time.monotonic()
        emit(self._on_event, ProgressEvent(
            "run_started", message=", ".join(s.id for s in sources),
            data={"sources": [s.id for s in sources], "keywords": criteria.keywords},
        ))

        crawled = await self._crawl_all(sources, criteria, cancel)

        errors: list[str] = []
        raw_records: list[tuple[SourceDescriptor, RawJobRecord]] = []
        reports: list[SourceReport] = []
        for source, outcome in zip(sources, crawled):
            if isinstance(outcome, CancellationError):
                raise outcome
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Source '%s' failed unexpectedly", source.id, exc_info=outcome)
                errors.append(f"{source.id}: unexpected error: {outcome}")
                reports.append(SourceReport(source.id))
                continue
            report, records = outcome
            reports.append(report)
            errors.extend(report.errors)
            raw_records.extend((source, raw) for raw in records)

        listings, dropped = self._normalize(raw_records)
        filtered = run_filter_chain(listings, build_filters(criteria, self._repository, clock=self._now))

        dedup = DeduplicationEngine(self._settings.dedup, clock=self._now)
        outcome = dedup.deduplicate(filtered)
        unique = outcome.unique[: criteria.max_results]

        saved = 0
        if self._repository is not None:
            saved = self._persist(self._repository, unique, outcome.duplicates, errors)

        metrics = RunMetrics(
            pages_fetched=sum(r.pages_fetched for r in reports),
            jobs_found=len(raw_records),
            jobs_deduplicated=len(outcome.duplicates),
            retries=sum(r.retries for r in reports),
            errors=len(errors),
            cards_skipped=sum(r.cards_skipped for r in reports),
            listings_dropped=dropped,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Run finished: %d found, %d unique, %d merged, %d errors in %dms",
            metrics.jobs_found, len(unique), metrics.jobs_deduplicated,
            metrics.errors, metrics.duration_ms,
        )

        result = IngestionResult(
            jobs=unique,
            total_found=len(raw_records),
            errors=errors,
            metadata={
                "metrics": metrics.model_dump(by_alias=True),
                "sources": {
                    r.source_id: {
                        "pagesFetched": r.pages_fetched,
                        "records": r.records,
                        "cardsSkipped": r.cards_skipped,
                        "retries": r.retries,
                        "errors": len(r.errors),
                    }
                    for r in reports
                },
                "filteredOut": len(listings) - len(filtered),
                "saved": saved,
                "startedAt": started_at.isoformat(),
                "finishedAt": self._now().isoformat(),
            },
        )
        emit(self._on_event, ProgressEvent(
            "run_finished", data={"unique": len(unique), "errors": len(errors)},
        ))
        return result

    async def _crawl_all(
        self,
        sources: list[SourceDescriptor],
        criteria: SearchCriteria,
        cancel: CancellationToken | None,
    ) -> list[Any]:
        render_lock = asyncio.Lock()
        return await asyncio.gather(
            *(self._crawl_source(s, criteria, cancel, render_lock) for s in sources),
            return_exceptions=True,
        )

    async def _crawl_source(
        self,
        source: SourceDescriptor,
        criteria: SearchCriteria,
        cancel: CancellationToken | None,
        render_lock: asyncio.Lock,
    ) -> tuple[SourceReport, list[RawJobRecord]]:
        report = SourceReport(source.id)
        records: list[RawJobRecord] = []
        emit(self._on_event, ProgressEvent("source_started", source.id, source.name))

        fetch_cfg = self._settings.fetch
        limiter = RateLimiter(source.rate_limit, sleep=self._sleep)
        async with Fetcher(
            source,
            user_agents=fetch_cfg.user_agents,
            rate_limiter=limiter,
            transport=self._transport,
            sleep=self._sleep,
        ) as fetcher:
            engine = ExtractionEngine(
                fetcher,
                renderer=self._renderer_for(source, render_lock),
                page_delay_s=(fetch_cfg.page_delay_min_s, fetch_cfg.page_delay_max_s),
                sleep=self._sleep,
                on_event=self._on_event,
            )
            async for raw in engine.extract(criteria, report, cancel):
                records.append(raw)

        emit(self._on_event, ProgressEvent(
            "source_finished", source.id,
            data={"records": len(records), "pages": report.pages_fetched, "errors": len(report.errors)},
        ))
        return report, records

    def _renderer_for(
        self, source: SourceDescriptor, lock: asyncio.Lock,
    ) -> PageRenderer | None:
        if source.render == "static" or self._renderer_factory is None:
            return None
        renderer = self._renderer_factory(source)
        if renderer is None:
            return None
        return _SerializedRenderer(renderer, lock)

    def _normalize(
        self, raw_records: list[tuple[SourceDescriptor, RawJobRecord]],
    ) -> tuple[list[NormalizedJobListing], int]:
        listings: list[NormalizedJobListing] = []
        dropped = 0
        for source, raw in raw_records:
            provenance = Provenance(
                site=source.id,
                page_url=raw.page_url,
                scraped_at=self._now(),
                id_pattern=source.id_pattern,
            )
            try:
                listing = self._normalizer.normalize(raw, provenance)
            except (ParsingError, ValidationError):
                logger.debug("Failed to normalize record %d from %s", raw.element_index, raw.page_url, exc_info=True)
                listing = None
            if listing is None:
                dropped += 1
            else:
                listings.append(listing)
        return listings, dropped

    def _persist(
        self,
        repository: JobRepository,
        unique: list[NormalizedJobListing],
        duplicates: list[DuplicateRecord],
        errors: list[str],
    ) -> int:
        saved = repository.save_many(unique)
        logger.info("Saved %d/%d listings", saved, len(unique))

        if isinstance(repository, DuplicateAuditLog):
            for record in duplicates:
                try:
                    repository.record_duplicate(record)
                except Exception as e:
                    logger.warning("Failed to record duplicate %s: %s", record.duplicate_id, e)
                    errors.append(f"audit: {record.duplicate_id}: {e}")
        return saved


def export_results_json(result: IngestionResult) -> str:
    """Export an ingestion result as a camelCase JSON string."""
    return json.dumps(result.to_payload(), indent=2)
