"""Immutable step context — the single object handed to every step."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .cancel import CancellationToken


@dataclass(frozen=True)
class StepContext:
    """Frozen context object passed to each step.

    ``value`` is what flows from one step to the next: the pipeline input for
    the first step, the previous step's value afterwards (``None`` after a
    ``continue_on_error`` failure).  ``results`` gives named access to every
    earlier step's value, so a late step (send invoice) can still read an
    early one (create order).

    Steps never mutate the incoming context — they call ``.replace()`` to
    produce a new one.
    """

    input: Any = None
    value: Any = None

    # Values of earlier steps, by step name
    results: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    # Progress counters (set by the pipeline, not by steps)
    step_index: int = 0
    total_steps: int = 0

    # Set by DeadlineGuard for the duration of a guarded call
    cancel_token: CancellationToken | None = None

    # Caller-specific payload
    metadata: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        # Coerce plain dict → MappingProxyType so mutation is a hard runtime error
        if not isinstance(self.results, MappingProxyType):
            object.__setattr__(self, "results", MappingProxyType(dict(self.results)))
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def replace(self, **changes: Any) -> "StepContext":
        """Return a new StepContext with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    def advance(self, name: str, value: Any) -> "StepContext":
        """Context for the step after *name*, which produced *value*."""
        return self.replace(
            value=value,
            results=MappingProxyType({**self.results, name: value}),
            step_index=self.step_index + 1,
            cancel_token=None,
        )
