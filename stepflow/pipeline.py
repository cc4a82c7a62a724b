"""Pipeline — ordered, strictly sequential step runner."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable

from .context import StepContext
from .errors import PipelineConfigError
from .events import EventListener, StepEvent, emit
from .outcome import AllSucceeded, FailedAt, PipelineResult, StepRecord, Success
from .protocol import StepProtocol
from .step import run_step

logger = logging.getLogger(__name__)


class Pipeline:
    """Ordered sequence of steps.  Insertion order is execution order.

    Build via the fluent API::

        pipe = (
            Pipeline()
            .then(guard(check_inventory, 1500))
            .then(create_order)
            .then(charge_payment)
            .then(send_invoice)
        )
        result = pipe.run(cart)

    Guarantees:

    - one step at a time: step *i+1* starts only after step *i*'s outcome
      has been recorded;
    - the first ``Failure`` ends the run with ``FailedAt`` unless the step
      declares ``continue_on_error = True``, in which case the failure is
      recorded and the next step receives ``None`` as its value;
    - no retries — retry policy belongs inside a step.
    """

    def __init__(
        self,
        steps: Iterable[object] | None = None,
        *,
        listeners: Iterable[EventListener] = (),
    ) -> None:
        self._steps: list = list(steps or [])
        self._validate_steps(self._steps)
        self.listeners: list[EventListener] = list(listeners)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_steps(steps: list) -> None:
        """Raise PipelineConfigError for invalid wiring.

        - Every step must satisfy ``StepProtocol`` (a ``name`` and a
          ``__call__``).
        - Step names must be non-empty and unique: they key
          ``StepContext.results`` and identify the failing step.
        """
        seen: set[str] = set()
        for step in steps:
            if not isinstance(step, StepProtocol):
                raise PipelineConfigError(
                    f"{step!r} is not a step: it needs a 'name' attribute and "
                    f"must be callable."
                )
            name = step.name
            if not isinstance(name, str) or not name:
                raise PipelineConfigError(
                    f"{step!r} has an invalid name {name!r}; step names must be "
                    f"non-empty strings."
                )
            if name in seen:
                raise PipelineConfigError(
                    f"Duplicate step name {name!r}; step names must be unique "
                    f"within a pipeline."
                )
            seen.add(name)

    # ------------------------------------------------------------------
    # Fluent builder
    # ------------------------------------------------------------------

    def then(self, step: object) -> "Pipeline":
        """Append *step* and return ``self`` for chaining."""
        new_steps = self._steps + [step]
        # Validate before mutating so errors are raised immediately
        self._validate_steps(new_steps)
        self._steps = new_steps
        return self

    @property
    def steps(self) -> tuple:
        return tuple(self._steps)

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    # ------------------------------------------------------------------
    # run() — sync entry point
    # ------------------------------------------------------------------

    def run(self, input: Any = None, *, metadata: dict | None = None) -> PipelineResult:
        """Run every step on *input* (sync entry point).

        Must not be called from inside a running event loop; use
        ``await pipe.run_async(...)`` there.
        """
        return asyncio.run(self.run_async(input, metadata=metadata))

    # ------------------------------------------------------------------
    # run_async() — async entry point
    # ------------------------------------------------------------------

    async def run_async(
        self, input: Any = None, *, metadata: dict | None = None
    ) -> PipelineResult:
        """Async entry point; use ``await pipe.run_async(input)`` from
        coroutine contexts (e.g. inside a request handler)."""
        ctx = StepContext(
            input=input,
            value=input,
            total_steps=len(self._steps),
            metadata=metadata or {},
        )
        values: list = []
        records: list[StepRecord] = []

        for step in self._steps:
            started = time.monotonic()
            outcome = await run_step(step, ctx)
            duration_ms = (time.monotonic() - started) * 1000

            records.append(StepRecord(step.name, outcome, duration_ms))
            emit(
                StepEvent(
                    step_name=step.name,
                    kind="success" if outcome.ok else outcome.kind.value,
                    duration_ms=duration_ms,
                    step_index=ctx.step_index,
                ),
                self.listeners,
            )

            if isinstance(outcome, Success):
                value = outcome.value
            elif getattr(step, "continue_on_error", False):
                logger.info(
                    "Step %r failed (%s); continuing as it is marked continue_on_error",
                    step.name,
                    outcome.error.message,
                )
                value = None
            else:
                return FailedAt(
                    step_name=step.name,
                    error=outcome.error,
                    values=tuple(values),
                    records=tuple(records),
                )

            values.append(value)
            ctx = ctx.advance(step.name, value)

        return AllSucceeded(values=tuple(values), records=tuple(records))

    def __repr__(self) -> str:
        return f"Pipeline({list(self.step_names)!r})"
