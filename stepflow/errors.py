"""Pipeline error types."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a step failure, as reported to callers."""

    TIMEOUT = "timeout"
    WORKER_CRASHED = "worker_crashed"
    STEP_REJECTED = "step_rejected"
    CONFIGURATION = "configuration_error"


class StepflowError(Exception):
    """Base class for every error the engine produces.

    ``kind`` classifies the error; ``message`` is the caller-safe text that
    ends up in rendered responses (no traceback detail).
    """

    kind: ErrorKind = ErrorKind.STEP_REJECTED

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StepRejected(StepflowError):
    """A step's own declared business failure.

    Steps raise this (or return ``Failure(StepRejected(...))``) to signal that
    the work was refused, e.g. a declined payment.
    """

    kind = ErrorKind.STEP_REJECTED


class StepTimeout(StepflowError):
    """A guarded step did not produce an outcome within its deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, step_name: str, timeout_ms: int, elapsed_ms: float) -> None:
        self.step_name = step_name
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"Step {step_name!r} timed out after {elapsed_ms:.0f}ms "
            f"(deadline {timeout_ms}ms)"
        )

    def __reduce__(self):
        return type(self), (self.step_name, self.timeout_ms, self.elapsed_ms)


class WorkerCrashed(StepflowError):
    """An offload worker process terminated abnormally while running a job."""

    kind = ErrorKind.WORKER_CRASHED

    def __init__(self, exitcode: int | None, detail: str = "") -> None:
        self.exitcode = exitcode
        self.detail = detail
        message = f"Worker process crashed with exit code {exitcode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    def __reduce__(self):
        return type(self), (self.exitcode, self.detail)


class PipelineConfigError(StepflowError):
    """Invalid pipeline wiring, raised before any step executes.

    Examples:
    - Two steps sharing the same name.
    - A non-positive or non-integer deadline.
    - An offloaded callable that cannot be pickled to a worker process.
    """

    kind = ErrorKind.CONFIGURATION
