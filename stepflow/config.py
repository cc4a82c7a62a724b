"""Pipeline definitions as validated pydantic models."""

from __future__ import annotations

import importlib
from typing import Any, Callable, List, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import PipelineConfigError


def resolve_callable(ref: Any) -> Callable[..., Any]:
    """Return *ref* if callable, else import it from ``"pkg.module:attr"``.

    The dotted form ``"pkg.module.attr"`` is accepted as well.
    """
    if callable(ref):
        return ref
    if not isinstance(ref, str) or not ref:
        raise ValueError(f"expected a callable or an import string, got {ref!r}")

    if ":" in ref:
        module_name, _, attr_path = ref.partition(":")
    else:
        module_name, _, attr_path = ref.rpartition(".")
    if not module_name or not attr_path:
        raise ValueError(f"import string {ref!r} must look like 'package.module:attr'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"cannot import module {module_name!r}: {exc}") from exc
    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ValueError(f"{module_name!r} has no attribute {attr_path!r}") from None

    if not callable(target):
        raise ValueError(f"{ref!r} does not resolve to a callable")
    return target


class StepConfig(BaseModel):
    """Declaration of one pipeline step.

    Constructing the model directly raises pydantic's ``ValidationError``.
    Plain mappings handed to ``PipelineConfig.from_mapping`` (and so to
    ``Orchestrator``) surface the same problems as ``PipelineConfigError``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(..., min_length=1, description="Unique step name")
    call: Any = Field(
        ..., description="Callable taking a StepContext, or a 'module:attr' import string"
    )
    timeout_ms: Optional[int] = Field(
        default=None, description="Deadline in whole milliseconds (external I/O steps)"
    )
    offload: bool = Field(
        default=False, description="Run in a worker process (CPU-bound steps)"
    )
    continue_on_error: bool = Field(
        default=False, description="Record a failure and keep going instead of halting"
    )

    @field_validator("call")
    @classmethod
    def _resolve_call(cls, value: Any) -> Callable[..., Any]:
        return resolve_callable(value)

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _whole_positive_ms(cls, value: Any) -> Any:
        if value is None:
            return value
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"timeout_ms must be whole milliseconds, got {value!r}")
        if value <= 0:
            raise ValueError(f"timeout_ms must be positive, got {value}")
        return value


class PipelineConfig(BaseModel):
    """An ordered list of step declarations."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="pipeline", description="Label used in logs")
    steps: List[StepConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_step_names(self) -> "PipelineConfig":
        seen: set[str] = set()
        for step in self.steps:
            if step.name in seen:
                raise ValueError(f"duplicate step name {step.name!r}")
            seen.add(step.name)
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """Validate plain data (e.g. parsed JSON) into a ``PipelineConfig``.

        Raises ``PipelineConfigError`` instead of pydantic's
        ``ValidationError`` so callers deal with a single error type.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise PipelineConfigError(f"Invalid pipeline configuration: {exc}") from exc


def coerce_config(config: PipelineConfig | Mapping[str, Any]) -> PipelineConfig:
    if isinstance(config, PipelineConfig):
        return config
    if isinstance(config, Mapping):
        return PipelineConfig.from_mapping(config)
    raise PipelineConfigError(
        f"Expected a PipelineConfig or a mapping, got {type(config).__name__}."
    )
