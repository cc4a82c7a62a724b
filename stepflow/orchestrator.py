"""Orchestrator — builds a pipeline from configuration, runs it, renders it."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Dict

from pydantic import BaseModel, Field

from .config import PipelineConfig, StepConfig, coerce_config
from .deadline import DeadlineGuard
from .errors import ErrorKind, PipelineConfigError
from .events import EventListener
from .offload import OffloadedStep, OffloadExecutor
from .outcome import AllSucceeded, FailedAt, PipelineResult
from .pipeline import Pipeline
from .settings import Settings
from .step import Step

logger = logging.getLogger(__name__)

# HTTP status per failure kind; the only transport detail the engine knows.
STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.TIMEOUT: 504,
    ErrorKind.STEP_REJECTED: 502,
    ErrorKind.WORKER_CRASHED: 500,
    ErrorKind.CONFIGURATION: 500,
}


class Response(BaseModel):
    """Transport-neutral rendering of a ``PipelineResult``."""

    status: int = Field(..., description="HTTP-style status code")
    body: Dict[str, Any] = Field(default_factory=dict)


class Orchestrator:
    """Entry point: config in, ``PipelineResult`` (or ``Response``) out.

    Composes a ``Pipeline`` per invocation (does not extend it) and owns the
    one cross-invocation resource, the ``OffloadExecutor``.  The executor is
    created lazily the first time a configuration declares an offloaded step,
    unless one is passed in.

    Each step is wrapped according to its ``StepConfig``:

    - ``offload=True``   → ``OffloadedStep`` on the shared executor;
    - otherwise          → ``Step`` around the callable;
    - ``timeout_ms``     → outermost ``DeadlineGuard``.  Non-offloaded steps
      without one fall back to ``settings.default_timeout_ms`` when set.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        executor: OffloadExecutor | None = None,
        listeners: Iterable[EventListener] = (),
    ) -> None:
        self.settings = settings or Settings()
        self.listeners = list(listeners)
        self._executor = executor
        self._owns_executor = executor is None
        self._executor_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Executor lifecycle
    # ------------------------------------------------------------------

    @property
    def executor(self) -> OffloadExecutor:
        """Return the offload executor, creating it lazily."""
        if self._executor is None:
            with self._executor_lock:
                # Double-checked locking
                if self._executor is None:
                    self._executor = OffloadExecutor(
                        self.settings.offload_workers,
                        start_method=self.settings.start_method,
                    )
        return self._executor

    def close(self) -> None:
        """Shut down the executor if this orchestrator created it."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown()
            self._executor = None

    def __enter__(self) -> "Orchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self, config: PipelineConfig | Mapping[str, Any]) -> Pipeline:
        """Translate *config* into a ready-to-run ``Pipeline``.

        Every problem surfaces here as ``PipelineConfigError``, before any
        step has executed.
        """
        config = coerce_config(config)
        steps = [self._build_step(step_config) for step_config in config.steps]
        pipeline = Pipeline(steps, listeners=self.listeners)
        logger.debug("Built pipeline %r: %s", config.name, pipeline.step_names)
        return pipeline

    def _build_step(self, step_config: StepConfig) -> object:
        if step_config.offload:
            built: object = OffloadedStep(
                step_config.name,
                step_config.call,
                self.executor,
                continue_on_error=step_config.continue_on_error,
            )
            timeout_ms = step_config.timeout_ms
        else:
            built = Step(
                step_config.name,
                step_config.call,
                continue_on_error=step_config.continue_on_error,
            )
            timeout_ms = step_config.timeout_ms or self.settings.default_timeout_ms

        if timeout_ms is not None:
            built = DeadlineGuard(built, timeout_ms)
        return built

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    async def execute_async(
        self, config: PipelineConfig | Mapping[str, Any], input: Any = None
    ) -> PipelineResult:
        pipeline = self.build(config)
        result = await pipeline.run_async(input)
        if isinstance(result, FailedAt):
            logger.warning(
                "Pipeline failed at step %r (%s): %s",
                result.step_name,
                result.kind.value,
                result.error.message,
            )
        return result

    def execute(
        self, config: PipelineConfig | Mapping[str, Any], input: Any = None
    ) -> PipelineResult:
        """Build and run one invocation (sync entry point)."""
        return asyncio.run(self.execute_async(config, input))

    async def execute_many_async(
        self,
        config: PipelineConfig | Mapping[str, Any],
        inputs: Sequence[Any] | Iterable[Any],
        *,
        workers: int = 1,
    ) -> list[PipelineResult]:
        """Run independent invocations, at most *workers* at a time.

        Each input gets its own freshly built pipeline; results come back in
        input order.  Configuration is validated once, up front.
        """
        if workers < 1:
            raise PipelineConfigError(f"workers must be >= 1, got {workers}.")
        config = coerce_config(config)
        self.build(config)

        sem = asyncio.Semaphore(workers)

        async def run_one(item: Any) -> PipelineResult:
            async with sem:
                return await self.execute_async(config, item)

        return list(await asyncio.gather(*[run_one(item) for item in inputs]))

    def execute_many(
        self,
        config: PipelineConfig | Mapping[str, Any],
        inputs: Sequence[Any] | Iterable[Any],
        *,
        workers: int = 1,
    ) -> list[PipelineResult]:
        return asyncio.run(self.execute_many_async(config, inputs, workers=workers))

    # ------------------------------------------------------------------
    # Rendering for the transport layer
    # ------------------------------------------------------------------

    @staticmethod
    def render(result: PipelineResult) -> Response:
        """Map a ``PipelineResult`` to a caller-facing ``Response``.

        Error bodies name the failing step and the error; they never carry a
        traceback.
        """
        if isinstance(result, AllSucceeded):
            return Response(status=200, body={"status": "ok", "results": list(result.values)})

        return Response(
            status=STATUS_BY_KIND.get(result.kind, 500),
            body={
                "status": "error",
                "failed_step": result.step_name,
                "error": {"kind": result.kind.value, "message": result.error.message},
                "completed": list(result.values),
            },
        )

    async def respond_async(
        self, config: PipelineConfig | Mapping[str, Any], input: Any = None
    ) -> Response:
        """Execute and render; configuration errors render as a 500."""
        try:
            result = await self.execute_async(config, input)
        except PipelineConfigError as exc:
            logger.error("Rejected pipeline configuration: %s", exc.message)
            return Response(
                status=STATUS_BY_KIND[exc.kind],
                body={
                    "status": "error",
                    "failed_step": None,
                    "error": {"kind": exc.kind.value, "message": exc.message},
                    "completed": [],
                },
            )
        return self.render(result)

    def respond(
        self, config: PipelineConfig | Mapping[str, Any], input: Any = None
    ) -> Response:
        return asyncio.run(self.respond_async(config, input))
