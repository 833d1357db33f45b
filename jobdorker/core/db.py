"""SQLite persistence for listings, duplicate audit records and search runs.

The pipeline only sees the narrow ``JobRepository`` protocol; ``JobStore`` is
the SQLite implementation. Timestamps are stored as ISO-8601 text and list
or dict fields as JSON.
"""

import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from jobdorker.core.schemas import (
    DuplicateRecord,
    JobSource,
    ListingMetadata,
    NormalizedJobListing,
    Salary,
)

logger = logging.getLogger(__name__)

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    company         TEXT NOT NULL,
    location        TEXT NOT NULL,
    description     TEXT NOT NULL,
    url             TEXT NOT NULL UNIQUE,
    salary_min      REAL,
    salary_max      REAL,
    salary_currency TEXT,
    salary_period   TEXT,
    employment_type TEXT NOT NULL,
    remote          INTEGER NOT NULL DEFAULT 0,
    posted_date     TEXT,
    expiry_date     TEXT,
    requirements    TEXT NOT NULL DEFAULT '[]',
    benefits        TEXT NOT NULL DEFAULT '[]',
    tags            TEXT NOT NULL DEFAULT '[]',
    source_site     TEXT NOT NULL,
    source_url      TEXT NOT NULL,
    scraped_at      TEXT NOT NULL,
    confidence      REAL NOT NULL DEFAULT 0.0,
    raw_data        TEXT NOT NULL DEFAULT '{}'
);
"""

_DUPLICATES_TABLE = """
CREATE TABLE IF NOT EXISTS job_duplicates (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    original_id     TEXT NOT NULL,
    duplicate_id    TEXT NOT NULL,
    score           REAL NOT NULL,
    detected_at     TEXT NOT NULL
);
"""

_SEARCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS search_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    sources         TEXT NOT NULL,
    keywords        TEXT NOT NULL,
    criteria_json   TEXT NOT NULL,
    total_found     INTEGER NOT NULL,
    unique_count    INTEGER NOT NULL,
    error_count     INTEGER NOT NULL,
    started_at      TEXT NOT NULL,
    finished_at     TEXT NOT NULL
);
"""


class JobRepository(Protocol):
    """What the pipeline needs from durable storage."""

    def exists(self, url: str) -> bool: ...
    def save(self, listing: NormalizedJobListing) -> bool: ...
    def save_many(self, listings: Iterable[NormalizedJobListing]) -> int: ...


@runtime_checkable
class DuplicateAuditLog(Protocol):
    """Optional: repositories that also keep the merge audit trail."""

    def record_duplicate(self, record: DuplicateRecord) -> None: ...


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOBS_TABLE)
    conn.execute(_DUPLICATES_TABLE)
    conn.execute(_SEARCH_RUNS_TABLE)
    conn.commit()
    return conn


def insert_job(conn: sqlite3.Connection, listing: NormalizedJobListing) -> bool:
    """Insert a listing, ignoring it if its id or URL is already stored.

    Returns True if a new row was inserted, False if it was a duplicate.
    """
    salary = listing.salary
    try:
        conn.execute(
            """
            INSERT INTO jobs
                (id, title, company, location, description, url,
                 salary_min, salary_max, salary_currency, salary_period,
                 employment_type, remote, posted_date, expiry_date,
                 requirements, benefits, tags, source_site, source_url,
                 scraped_at, confidence, raw_data)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                listing.id,
                listing.title,
                listing.company,
                listing.location,
                listing.description,
                listing.url,
                salary.min if salary else None,
                salary.max if salary else None,
                salary.currency if salary else None,
                salary.period if salary else None,
                listing.employment_type,
                int(listing.remote),
                _iso(listing.posted_date),
                _iso(listing.expiry_date),
                json.dumps(listing.requirements),
                json.dumps(listing.benefits),
                json.dumps(listing.tags),
                listing.source.site,
                listing.source.original_url,
                listing.source.scraped_at.isoformat(),
                listing.metadata.confidence,
                json.dumps(listing.metadata.raw_data, default=str),
            ),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        return False


def job_exists(conn: sqlite3.Connection, url: str) -> bool:
    row = conn.execute("SELECT 1 FROM jobs WHERE url = ? LIMIT 1", (url,)).fetchone()
    return row is not None


def search_jobs(
    conn: sqlite3.Connection, keyword: str = "", limit: int = 50,
) -> list[NormalizedJobListing]:
    """Stored listings whose title, company or description contains ``keyword``."""
    pattern = f"%{keyword.strip()}%"
    rows = conn.execute(
        """
        SELECT * FROM jobs
        WHERE title LIKE ? OR company LIKE ? OR description LIKE ?
        ORDER BY COALESCE(posted_date, scraped_at) DESC
        LIMIT ?
        """,
        (pattern, pattern, pattern, limit),
    ).fetchall()
    return [_row_to_listing(row) for row in rows]


def insert_duplicate(conn: sqlite3.Connection, record: DuplicateRecord) -> int:
    cursor = conn.execute(
        """
        INSERT INTO job_duplicates (original_id, duplicate_id, score, detected_at)
        VALUES (?, ?, ?, ?)
        """,
        (record.original_id, record.duplicate_id, record.score, record.timestamp.isoformat()),
    )
    conn.commit()
    return cursor.lastrowid or 0


def insert_search_run(
    conn: sqlite3.Connection,
    sources: list[str],
    keywords: list[str],
    criteria_json: str,
    total_found: int,
    unique_count: int,
    error_count: int,
    started_at: datetime,
    finished_at: datetime,
) -> int:
    """Record a completed pipeline run. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO search_runs
            (sources, keywords, criteria_json, total_found, unique_count,
             error_count, started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            json.dumps(sources),
            json.dumps(keywords),
            criteria_json,
            total_found,
            unique_count,
            error_count,
            started_at.isoformat(),
            finished_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


class JobStore:
    """SQLite-backed ``JobRepository`` and ``DuplicateAuditLog``.

    Usage::

        store = JobStore(init_db("data/jobs.db"))
        saved = store.save_many(result.jobs)
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, path: str | Path) -> "JobStore":
        return cls(init_db(path))

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def exists(self, url: str) -> bool:
        return job_exists(self._conn, url)

    def save(self, listing: NormalizedJobListing) -> bool:
        return insert_job(self._conn, listing)

    def save_many(self, listings: Iterable[NormalizedJobListing]) -> int:
        """Commit each listing on its own; one failing item never aborts the batch.

        A transient SQLite error (locked or busy database) is retried once.
        """
        saved = 0
        for listing in listings:
            try:
                inserted = self._save_with_retry(listing)
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.warning("Failed to save listing '%s': %s", listing.id, e)
                continue
            if inserted:
                saved += 1
        return saved

    def search(self, keyword: str = "", limit: int = 50) -> list[NormalizedJobListing]:
        return search_jobs(self._conn, keyword, limit)

    def record_duplicate(self, record: DuplicateRecord) -> None:
        insert_duplicate(self._conn, record)

    def insert_search_run(self, **kwargs: Any) -> int:
        return insert_search_run(self._conn, **kwargs)

    def _save_with_retry(self, listing: NormalizedJobListing) -> bool:
        try:
            return insert_job(self._conn, listing)
        except sqlite3.OperationalError as e:
            self._conn.rollback()
            logger.debug("Transient error saving '%s', retrying once: %s", listing.id, e)
            return insert_job(self._conn, listing)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_listing(row: sqlite3.Row) -> NormalizedJobListing:
    salary = None
    if row["salary_min"] is not None or row["salary_max"] is not None:
        salary = Salary(
            min=row["salary_min"],
            max=row["salary_max"],
            currency=row["salary_currency"] or "USD",
            period=row["salary_period"] or "yearly",
        )
    return NormalizedJobListing(
        id=row["id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        description=row["description"],
        url=row["url"],
        salary=salary,
        employment_type=row["employment_type"],
        remote=bool(row["remote"]),
        posted_date=_parse_iso(row["posted_date"]),
        expiry_date=_parse_iso(row["expiry_date"]),
        requirements=json.loads(row["requirements"]),
        benefits=json.loads(row["benefits"]),
        tags=json.loads(row["tags"]),
        source=JobSource(
            site=row["source_site"],
            original_url=row["source_url"],
            scraped_at=datetime.fromisoformat(row["scraped_at"]),
        ),
        metadata=ListingMetadata(
            confidence=row["confidence"],
            raw_data=json.loads(row["raw_data"]),
        ),
    )
