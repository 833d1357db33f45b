"""Caller-controlled abort signal with an optional deadline."""

import time
from collections.abc import Callable

from jobdorker.core.errors import CancellationError


class CancellationToken:
    """Checked before every page fetch and every rate-limiter wait.

    Usage::

        token = CancellationToken(deadline_s=120)
        result = await pipeline.run(sources, criteria, cancel=token)
        # elsewhere: token.cancel()
    """

    def __init__(
        self,
        *,
        deadline_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._deadline = clock() + deadline_s if deadline_s is not None else None
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._reason is None:
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        if self._reason is not None:
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise CancellationError(self._reason)
        if self._deadline is not None and self._clock() >= self._deadline:
            msg = "deadline exceeded"
            raise CancellationError(msg)


def check_cancelled(token: CancellationToken | None) -> None:
    """No-op when no token was supplied."""
    if token is not None:
        token.raise_if_cancelled()
