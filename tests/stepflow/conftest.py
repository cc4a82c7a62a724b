"""Shared fixtures and reusable dummy steps for stepflow tests.

Every step here is a generic dummy that only uses the public primitives
(StepContext, outcomes, errors).
"""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from stepflow import OffloadExecutor, StepContext, StepRejected

# ---------------------------------------------------------------------------
# Reusable dummy step classes
# ---------------------------------------------------------------------------


class Const:
    """Async step returning *value* after *delay* seconds."""

    continue_on_error = False

    def __init__(self, name: str, value: object, delay: float = 0.0):
        self.name = name
        self.value = value
        self.delay = delay

    async def __call__(self, ctx: StepContext) -> object:
        await asyncio.sleep(self.delay)
        return self.value


class Echo:
    """Returns whatever value flowed into it."""

    def __init__(self, name: str = "echo"):
        self.name = name

    async def __call__(self, ctx: StepContext) -> object:
        return ctx.value


class Reject:
    """Raises StepRejected — a declared business failure."""

    def __init__(self, name: str, message: str = "declined", continue_on_error=False):
        self.name = name
        self.message = message
        self.continue_on_error = continue_on_error

    async def __call__(self, ctx: StepContext) -> object:
        raise StepRejected(self.message)


class Boom:
    """Sync step that always raises RuntimeError."""

    def __init__(self, name: str = "boom"):
        self.name = name

    def __call__(self, ctx: StepContext) -> object:
        raise RuntimeError("boom")


class Probe:
    """Records start/end of each call into a shared log (thread-safe)."""

    def __init__(self, name: str, log: list, delay: float = 0.0, value=None):
        self.name = name
        self.log = log
        self.delay = delay
        self.value = name if value is None else value
        self.calls = 0

    async def __call__(self, ctx: StepContext) -> object:
        self.calls += 1
        self.log.append(f"start:{self.name}")
        await asyncio.sleep(self.delay)
        self.log.append(f"end:{self.name}")
        return self.value


class SlowAsync:
    """Async step that sleeps, noting whether it was cancelled."""

    def __init__(self, name: str, delay: float, value: object = "late"):
        self.name = name
        self.delay = delay
        self.value = value
        self.cancelled = False
        self.finished = False

    async def __call__(self, ctx: StepContext) -> object:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        self.finished = True
        return self.value


class SlowSync:
    """Sync step (runs in a thread) that waits on the cancellation token."""

    def __init__(self, name: str, delay: float):
        self.name = name
        self.delay = delay
        self.saw_cancel = threading.Event()

    def __call__(self, ctx: StepContext) -> object:
        token = ctx.cancel_token
        if token is None:
            time.sleep(self.delay)
        elif token.wait(self.delay):
            self.saw_cancel.set()
            token.raise_if_cancelled()
        return "done"


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def base_ctx():
    """A minimal StepContext with input='test'."""
    return StepContext(input="test", value="test")


@pytest.fixture
def log():
    return []


@pytest.fixture
def executor():
    """Single-worker offload pool using spawned processes."""
    pool = OffloadExecutor(1, start_method="spawn")
    yield pool
    pool.shutdown()


@pytest.fixture
def executor2():
    pool = OffloadExecutor(2, start_method="spawn")
    yield pool
    pool.shutdown()
