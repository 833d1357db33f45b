"""Progress events written by the pipeline to an explicit callback channel."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

EventKind = Literal[
    "run_started",
    "source_started",
    "page_fetched",
    "source_failed",
    "source_finished",
    "run_finished",
]


@dataclass(frozen=True)
class ProgressEvent:
    kind: EventKind
    source_id: str | None = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)


ProgressCallback = Callable[[ProgressEvent], None]


def emit(callback: ProgressCallback | None, event: ProgressEvent) -> None:
    """Deliver ``event``; a failing consumer never breaks the run."""
    if callback is None:
        return
    try:
        callback(event)
    except Exception:
        logger.warning("Progress callback failed on %s event", event.kind, exc_info=True)
