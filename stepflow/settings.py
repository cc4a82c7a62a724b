"""Process-level settings read from the environment (and ``.env``)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .errors import PipelineConfigError

ENV_PREFIX = "STEPFLOW_"


class Settings(BaseModel):
    """Orchestrator settings.

    Environment variables (prefix ``STEPFLOW_``):

    - ``STEPFLOW_OFFLOAD_WORKERS``    size of the worker-process pool
    - ``STEPFLOW_START_METHOD``       multiprocessing start method
    - ``STEPFLOW_DEFAULT_TIMEOUT_MS`` deadline for steps that declare none
    """

    offload_workers: int = Field(default=1, ge=1)
    start_method: Optional[str] = Field(default=None)
    default_timeout_ms: Optional[int] = Field(default=None, gt=0)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Settings":
        """Load ``.env`` (without overriding the real environment) and read settings."""
        load_dotenv(env_file)
        raw = {
            "offload_workers": os.getenv(f"{ENV_PREFIX}OFFLOAD_WORKERS"),
            "start_method": os.getenv(f"{ENV_PREFIX}START_METHOD"),
            "default_timeout_ms": os.getenv(f"{ENV_PREFIX}DEFAULT_TIMEOUT_MS"),
        }
        values = {key: value for key, value in raw.items() if value not in (None, "")}
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise PipelineConfigError(f"Invalid {ENV_PREFIX}* settings: {exc}") from exc
