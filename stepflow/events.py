"""Structured per-step events for an external observability sink."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepEvent:
    """Emitted once per step completion.

    ``kind`` is ``"success"`` or the ``ErrorKind`` value of the failure.
    """

    step_name: str
    kind: str
    duration_ms: float
    step_index: int


EventListener = Callable[[StepEvent], None]


def emit(event: StepEvent, listeners: Iterable[EventListener]) -> None:
    """Log *event* and hand it to each listener.

    A failing listener is logged and skipped; the sink must never change the
    pipeline's outcome.
    """
    logger.info(
        "step %s finished: %s in %.1fms",
        event.step_name,
        event.kind,
        event.duration_ms,
        extra={"step_event": event},
    )
    for listener in listeners:
        try:
            listener(event)
        except Exception:
            logger.exception("Step event listener %r failed", listener)
