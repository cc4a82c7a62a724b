"""DeadlineGuard — timeout wrapper with cancellation for slow external calls."""

from __future__ import annotations

import asyncio
import logging
import time

from .cancel import CancellationToken
from .context import StepContext
from .errors import PipelineConfigError, StepTimeout
from .outcome import Failure, StepOutcome
from .step import run_step

logger = logging.getLogger(__name__)


class DeadlineGuard:
    """Wraps one step with a deadline of ``timeout_ms`` whole milliseconds.

    The guard keeps the wrapped step's ``name`` and ``continue_on_error`` so it
    can stand in for it anywhere.  On every call it:

    1. hands the step a fresh ``CancellationToken`` on ``ctx.cancel_token``;
    2. runs the step as a task and waits up to the deadline;
    3. if the step finished, returns its outcome unchanged;
    4. otherwise fires the token, cancels the task and returns
       ``Failure(StepTimeout)``.  The task is kept referenced until it
       actually finishes so its resources are released; whatever it
       eventually produces is logged and dropped.
    """

    def __init__(self, step: object, timeout_ms: int) -> None:
        name = getattr(step, "name", None)
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int):
            raise PipelineConfigError(
                f"Deadline for step {name!r} must be whole milliseconds, "
                f"got {timeout_ms!r}."
            )
        if timeout_ms <= 0:
            raise PipelineConfigError(
                f"Deadline for step {name!r} must be positive, got {timeout_ms}ms."
            )
        self.step = step
        self.name = name
        self.continue_on_error = getattr(step, "continue_on_error", False)
        self.timeout_ms = timeout_ms
        self._abandoned: set[asyncio.Task] = set()

    async def __call__(self, ctx: StepContext) -> StepOutcome:
        token = CancellationToken()
        started = time.monotonic()
        task = asyncio.ensure_future(
            run_step(self.step, ctx.replace(cancel_token=token))
        )
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_ms / 1000)
        except asyncio.CancelledError:
            # The pipeline itself is being cancelled; take the step down too.
            token.cancel("pipeline cancelled")
            task.cancel()
            raise

        if task in done:
            return task.result()

        elapsed_ms = (time.monotonic() - started) * 1000
        error = StepTimeout(self.name, self.timeout_ms, elapsed_ms)
        logger.warning("%s", error.message)

        token.cancel(error.message)
        task.cancel()
        self._abandoned.add(task)
        task.add_done_callback(self._discard_late_outcome)
        return Failure(error)

    def _discard_late_outcome(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            logger.debug("Step %r released after timeout", self.name)
            return
        # Retrieve the result so asyncio does not report it as unobserved.
        exc = task.exception()
        logger.debug(
            "Discarding late outcome of timed-out step %r: %r",
            self.name,
            exc if exc is not None else task.result(),
        )

    def __repr__(self) -> str:
        return f"DeadlineGuard({self.step!r}, timeout_ms={self.timeout_ms})"


def guard(step: object, timeout_ms: int) -> DeadlineGuard:
    """Return *step* wrapped with a ``timeout_ms`` deadline."""
    return DeadlineGuard(step, timeout_ms)
