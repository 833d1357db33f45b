"""CLI entry point for the job board crawler."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from jobdorker.browser.session import BrowserSession
from jobdorker.core.cancellation import CancellationToken
from jobdorker.core.config import SearchCriteria, Settings, SourceDescriptor
from jobdorker.core.db import JobStore
from jobdorker.core.errors import CancellationError
from jobdorker.core.schemas import IngestionResult, utc_now
from jobdorker.extraction.dorks import generate_queries
from jobdorker.extraction.sources import resolve_sources
from jobdorker.extraction.url_builder import build_search_url
from jobdorker.pipeline.events import ProgressEvent
from jobdorker.pipeline.orchestrator import (
    IngestionPipeline,
    RendererFactory,
    export_results_json,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config/settings.yaml"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job board crawler - extract, normalize and deduplicate postings",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- search subcommand (default) ---
    search_parser = subparsers.add_parser("search", help="Crawl job boards")
    _add_common_args(search_parser)
    search_parser.add_argument(
        "--source",
        action="append",
        default=[],
        help="Source id to crawl (repeatable; default: enabled sources)",
    )
    search_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the first-page URL per source without fetching anything",
    )
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )
    search_parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Abort the run after this many seconds",
    )

    # --- dorks subcommand ---
    dorks_parser = subparsers.add_parser("dorks", help="Print (or run) search-engine dork queries")
    _add_common_args(dorks_parser)
    dorks_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum number of queries (default: 20)",
    )
    dorks_parser.add_argument(
        "--execute",
        action="store_true",
        help="Run the queries through the search-engine source instead of printing them",
    )
    dorks_parser.add_argument(
        "--engine",
        default="google",
        help="Search-engine source id used with --execute (default: google)",
    )
    dorks_parser.add_argument("--export", choices=["json"], help="Export results to format (json)")
    dorks_parser.add_argument("--deadline", type=float, default=None, help="Abort after this many seconds")

    # --- backward compat: top-level flags for search ---
    parser.add_argument("--config", default=DEFAULT_CONFIG, help=argparse.SUPPRESS)
    parser.add_argument("--keywords", default=None, help=argparse.SUPPRESS)
    parser.add_argument("--location", default=None, help=argparse.SUPPRESS)
    parser.add_argument("--source", action="append", default=[], help=argparse.SUPPRESS)
    parser.add_argument("--dry-run", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--export", choices=["json"], help=argparse.SUPPRESS)
    parser.add_argument("--deadline", type=float, default=None, help=argparse.SUPPRESS)
    parser.add_argument("--verbose", "-v", action="store_true", help=argparse.SUPPRESS)

    args = parser.parse_args(argv)

    # Default to search when no subcommand given
    if args.command is None:
        args.command = "search"

    return args


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--keywords",
        default=None,
        help="Comma-separated keywords, overriding the config's search section",
    )
    parser.add_argument("--location", default=None, help="Location filter")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str) -> Settings:
    """Load YAML settings; a missing default config falls back to built-in defaults."""
    if path == DEFAULT_CONFIG and not Path(path).exists():
        logger.info("No %s found, using built-in defaults", path)
        return Settings()
    return Settings.from_yaml(path)


def build_criteria(settings: Settings, args: argparse.Namespace) -> SearchCriteria:
    """Criteria from the config's search section, overridden by CLI flags."""
    base = settings.search.model_dump() if settings.search is not None else {}
    if args.keywords:
        base["keywords"] = [kw.strip() for kw in args.keywords.split(",")]
    if args.location:
        base["location"] = args.location
    if not base.get("keywords"):
        msg = "no keywords given: pass --keywords or add a 'search' section to the config"
        raise ValueError(msg)
    return SearchCriteria.model_validate(base)


def print_progress(event: ProgressEvent) -> None:
    if event.kind == "page_fetched":
        print(f"  [{event.source_id}] page {event.data.get('page')}: "
              f"{event.data.get('cards')} cards")
    elif event.kind == "source_failed":
        print(f"  [{event.source_id}] stopped: {event.message}")
    elif event.kind == "source_finished":
        print(f"  [{event.source_id}] done: {event.data.get('records')} records")


def dry_run(sources: list[SourceDescriptor], criteria: SearchCriteria) -> None:
    """Print what would happen without fetching anything."""
    print(f"[DRY RUN] {len(sources)} sources, keywords: {criteria.keywords}")
    for source in sources:
        print(f"[DRY RUN] {source.id} ({source.render}, "
              f"{source.rate_limit.requests_per_minute} rpm, "
              f"max {source.pagination.max_pages} pages)")
        print(f"  {build_search_url(source, criteria)}")


async def _run_pipeline(
    settings: Settings,
    store: JobStore,
    sources: list[SourceDescriptor],
    criteria: SearchCriteria,
    cancel: CancellationToken | None,
    renderer_factory: RendererFactory | None = None,
) -> IngestionResult:
    pipeline = IngestionPipeline(
        settings,
        repository=store,
        renderer_factory=renderer_factory,
        on_event=print_progress,
    )
    return await pipeline.run(sources, criteria, cancel)


async def run(
    settings: Settings,
    sources: list[SourceDescriptor],
    criteria: SearchCriteria,
    export_format: str | None,
    deadline_s: float | None = None,
) -> IngestionResult:
    """Run the full pipeline, launching a browser only when a source needs one."""
    store = JobStore.open(settings.database.path)
    cancel = CancellationToken(deadline_s=deadline_s) if deadline_s else None
    started_at = utc_now()
    try:
        needs_browser = settings.browser.enabled and any(s.render != "static" for s in sources)
        if needs_browser:
            async with BrowserSession(settings.browser) as session:
                result = await _run_pipeline(
                    settings, store, sources, criteria, cancel,
                    renderer_factory=lambda s: session.renderer(s.selectors.card),
                )
        else:
            result = await _run_pipeline(settings, store, sources, criteria, cancel)

        store.insert_search_run(
            sources=[s.id for s in sources],
            keywords=criteria.keywords,
            criteria_json=criteria.model_dump_json(),
            total_found=result.total_found,
            unique_count=len(result.jobs),
            error_count=len(result.errors),
            started_at=started_at,
            finished_at=utc_now(),
        )
    finally:
        store.close()

    print(f"\nRun complete: {result.total_found} found, {len(result.jobs)} unique, "
          f"{result.metadata.get('saved', 0)} new listings written to DB.")
    for error in result.errors:
        print(f"  error: {error}")

    if export_format == "json":
        print(f"\n{export_results_json(result)}")
    return result


def cmd_dorks(args: argparse.Namespace) -> None:
    settings = load_settings(args.config)
    criteria = build_criteria(settings, args)
    if not args.execute:
        for query in generate_queries(criteria, limit=args.limit):
            print(query)
        return

    engine = resolve_sources(settings, [args.engine])[0]
    if not engine.search.dork:
        msg = f"source '{engine.id}' is not a search engine (search.dork is false)"
        raise ValueError(msg)
    engine = engine.model_copy(
        update={"search": engine.search.model_copy(update={"max_queries": args.limit})},
    )
    asyncio.run(run(settings, [engine], criteria, args.export, args.deadline))


def cmd_search(args: argparse.Namespace) -> None:
    settings = load_settings(args.config)
    criteria = build_criteria(settings, args)
    sources = resolve_sources(settings, args.source)
    if not sources:
        msg = "no sources selected"
        raise ValueError(msg)

    if args.dry_run:
        dry_run(sources, criteria)
    else:
        asyncio.run(run(settings, sources, criteria, args.export, args.deadline))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.command == "dorks":
            cmd_dorks(args)
        else:
            cmd_search(args)
    except (FileNotFoundError, ValueError, CancellationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
