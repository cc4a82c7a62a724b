"""Ordered async task orchestration: run dependent steps in sequence, guard
slow calls with deadlines, offload CPU-bound work to worker processes.

Public surface::

    from stepflow import (
        Orchestrator,
        PipelineConfig,
        StepConfig,
        Pipeline,
        Step,
        step,
        guard,
        DeadlineGuard,
        OffloadExecutor,
        OffloadedStep,
        StepContext,
        Success,
        Failure,
        AllSucceeded,
        FailedAt,
        ErrorKind,
        StepRejected,
        StepTimeout,
        WorkerCrashed,
        PipelineConfigError,
    )
"""

from .cancel import CancellationToken
from .config import PipelineConfig, StepConfig
from .context import StepContext
from .deadline import DeadlineGuard, guard
from .errors import (
    ErrorKind,
    PipelineConfigError,
    StepflowError,
    StepRejected,
    StepTimeout,
    WorkerCrashed,
)
from .events import EventListener, StepEvent
from .offload import OffloadedStep, OffloadExecutor
from .orchestrator import Orchestrator, Response
from .outcome import (
    AllSucceeded,
    FailedAt,
    Failure,
    PipelineResult,
    StepOutcome,
    StepRecord,
    Success,
)
from .pipeline import Pipeline
from .protocol import StepProtocol
from .settings import Settings
from .step import Step, step

__all__ = [
    "Orchestrator",
    "Response",
    "Settings",
    "PipelineConfig",
    "StepConfig",
    "Pipeline",
    "Step",
    "step",
    "StepProtocol",
    "StepContext",
    "CancellationToken",
    "DeadlineGuard",
    "guard",
    "OffloadExecutor",
    "OffloadedStep",
    "Success",
    "Failure",
    "StepOutcome",
    "StepRecord",
    "AllSucceeded",
    "FailedAt",
    "PipelineResult",
    "StepEvent",
    "EventListener",
    "ErrorKind",
    "StepflowError",
    "StepRejected",
    "StepTimeout",
    "WorkerCrashed",
    "PipelineConfigError",
]
