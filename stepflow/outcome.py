"""Outcome types — what a step produces and what a pipeline returns.

A step execution produces exactly one ``StepOutcome``; a pipeline run produces
exactly one ``PipelineResult``.  All of them are frozen and hold tuples only,
so nothing can be appended after the fact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from .errors import ErrorKind, StepflowError


@dataclass(frozen=True)
class Success:
    """The step completed and produced ``value``."""

    value: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """The step failed with ``error``."""

    error: StepflowError

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


StepOutcome = Union[Success, Failure]


@dataclass(frozen=True)
class StepRecord:
    """One entry of the per-step execution trace."""

    name: str
    outcome: StepOutcome
    duration_ms: float


@dataclass(frozen=True)
class AllSucceeded:
    """Every step ran to completion without an unrecovered failure.

    ``values`` holds one entry per step, in declared order.  Steps flagged
    ``continue_on_error`` that failed contribute ``None``; their failures are
    still visible in ``records``.
    """

    values: tuple = ()
    records: tuple[StepRecord, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class FailedAt:
    """Execution halted at ``step_name``.

    ``values`` are the values of the steps that ran before the failing one,
    in order.
    """

    step_name: str
    error: StepflowError
    values: tuple = ()
    records: tuple[StepRecord, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


PipelineResult = Union[AllSucceeded, FailedAt]
