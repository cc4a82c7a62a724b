"""Structural protocol every step must satisfy."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .context import StepContext


@runtime_checkable
class StepProtocol(Protocol):
    """Structural protocol that every step (and wrapper) must satisfy.

    ``__call__`` may be ``async def`` or a plain function; plain functions
    are run in a worker thread so they never block the event loop.  It may
    return a ``Success`` / ``Failure``, a bare value (meaning success), or
    raise (meaning failure).

    Optional attribute, read with ``getattr``:

    - ``continue_on_error: bool`` — when ``True`` a failure of this step is
      recorded but does not halt the pipeline.

    ``@runtime_checkable`` lets the pipeline validator use
    ``isinstance(step, StepProtocol)`` at construction time to give a clear
    error if a step is missing required attributes.
    """

    name: str

    def __call__(self, ctx: StepContext) -> Any: ...
