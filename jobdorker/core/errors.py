"""Exception taxonomy for fetching, extraction and normalization."""

from typing import Literal

ErrorKind = Literal["transient", "permanent"]


class JobDorkerError(Exception):
    """Base class for every error raised by this package."""


class NetworkError(JobDorkerError):
    """A page could not be fetched.

    ``kind="transient"`` means a retry may succeed (timeouts, 429, 5xx);
    ``kind="permanent"`` means retrying is pointless (403, 404, 410, bad URL).
    """

    def __init__(
        self,
        url: str,
        message: str,
        *,
        kind: ErrorKind,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.kind = kind
        self.status_code = status_code
        self.attempts = attempts

    @property
    def transient(self) -> bool:
        return self.kind == "transient"

    @property
    def permanent(self) -> bool:
        return self.kind == "permanent"


class ParsingError(JobDorkerError):
    """A card or field could not be parsed. Always recoverable."""


class ListingValidationError(JobDorkerError):
    """A normalized listing is missing a required field."""

    def __init__(self, field: str) -> None:
        super().__init__(f"missing required field: {field}")
        self.field = field


class RateLimitExceeded(JobDorkerError):
    """Internal signal that a slot is not yet available; resolved by waiting."""

    def __init__(self, source_id: str, retry_after_s: float) -> None:
        super().__init__(f"rate limit reached for {source_id}, retry in {retry_after_s:.2f}s")
        self.source_id = source_id
        self.retry_after_s = retry_after_s


class CancellationError(JobDorkerError):
    """The caller cancelled the run or its deadline passed."""
