"""Step — adapts a plain callable into a named pipeline step.

Also hosts ``run_step``, the single place where a step's return value or
exception is normalised into a ``StepOutcome``.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import inspect
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from .context import StepContext
from .errors import StepflowError, StepRejected
from .outcome import Failure, StepOutcome, Success

# ---------------------------------------------------------------------------
# Thread pool for sync steps
# ---------------------------------------------------------------------------

SYNC_STEP_WORKERS = 32

_executor_lock = threading.Lock()
_sync_executor: ThreadPoolExecutor | None = None


def _get_sync_executor() -> ThreadPoolExecutor:
    """Return the shared pool that runs sync steps, creating it lazily.

    This is not the event loop's default executor: ``asyncio.run`` joins that
    one on exit, so a timed-out sync step still sleeping there would hold up
    ``Pipeline.run()`` until it finished on its own.
    """
    global _sync_executor
    if _sync_executor is None:
        with _executor_lock:
            # Double-checked locking
            if _sync_executor is None:
                _sync_executor = ThreadPoolExecutor(
                    max_workers=SYNC_STEP_WORKERS, thread_name_prefix="stepflow-step"
                )
    return _sync_executor


async def _run_in_thread(fn: Callable[[StepContext], Any], ctx: StepContext) -> Any:
    loop = asyncio.get_running_loop()
    call = functools.partial(contextvars.copy_context().run, fn, ctx)
    return await loop.run_in_executor(_get_sync_executor(), call)



class Step:
    """Named wrapper around ``fn(ctx)``.

    ``fn`` may be sync or async.  Sync functions are run on the engine's own
    thread pool::

        check_inventory = Step("check_inventory", fetch_stock)
        charge = Step("charge_payment", charge_card, continue_on_error=False)
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[StepContext], Any],
        *,
        continue_on_error: bool = False,
    ) -> None:
        if not callable(fn):
            raise TypeError(f"Step {name!r}: {fn!r} is not callable")
        self.name = name
        self.fn = fn
        self.continue_on_error = continue_on_error

    async def __call__(self, ctx: StepContext) -> StepOutcome:
        return await run_step(self.fn, ctx)

    def __repr__(self) -> str:
        return f"Step({self.name!r}, {getattr(self.fn, '__qualname__', self.fn)!r})"


def step(
    name: str | None = None, *, continue_on_error: bool = False
) -> Callable[[Callable[[StepContext], Any]], Step]:
    """Decorator form of ``Step``; the name defaults to the function name.

    ::

        @step()
        async def create_order(ctx):
            return await orders.create(ctx.value)
    """

    def decorate(fn: Callable[[StepContext], Any]) -> Step:
        return Step(name or fn.__name__, fn, continue_on_error=continue_on_error)

    return decorate


def _is_async_callable(fn: object) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


def as_outcome(result: Any) -> StepOutcome:
    """Wrap a bare return value as ``Success``; pass outcomes through.

    A returned ``Failure`` whose error is not a ``StepflowError`` is
    normalised to ``StepRejected`` like a raised exception.
    """
    if isinstance(result, Failure):
        if isinstance(result.error, StepflowError):
            return result
        return Failure(_rejected(result.error))
    if isinstance(result, Success):
        return result
    return Success(result)


def _rejected(error: Any) -> StepRejected:
    rejected = StepRejected(f"{type(error).__name__}: {error}")
    if isinstance(error, BaseException):
        rejected.__cause__ = error
    return rejected


async def run_step(fn: Callable[[StepContext], Any], ctx: StepContext) -> StepOutcome:
    """Invoke *fn* with *ctx* and return exactly one ``StepOutcome``.

    ``StepflowError`` subclasses become ``Failure`` unchanged; any other
    exception becomes ``Failure(StepRejected)`` chained to the original.
    ``CancelledError`` is not an ``Exception`` and propagates.
    """
    try:
        if _is_async_callable(fn):
            result = await fn(ctx)
        else:
            result = await _run_in_thread(fn, ctx)
            if inspect.isawaitable(result):
                result = await result
    except StepflowError as exc:
        return Failure(exc)
    except Exception as exc:
        return Failure(_rejected(exc))
    return as_outcome(result)
