"""Unit tests for PipelineConfig / StepConfig and environment Settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stepflow import PipelineConfig, PipelineConfigError, Settings, StepConfig
from stepflow.config import coerce_config, resolve_callable
from tests.stepflow import workloads

# ---------------------------------------------------------------------------
# resolve_callable
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestResolveCallable:
    def test_callable_passes_through(self):
        assert resolve_callable(workloads.square) is workloads.square

    def test_colon_import_string(self):
        assert resolve_callable("tests.stepflow.workloads:square") is workloads.square

    def test_dotted_import_string(self):
        assert resolve_callable("tests.stepflow.workloads.shout") is workloads.shout

    def test_nested_attribute(self):
        assert resolve_callable("stepflow.config:PipelineConfig.from_mapping")

    @pytest.mark.parametrize(
        "ref, message",
        [
            ("", "callable or an import string"),
            (42, "callable or an import string"),
            ("noseparator", "must look like"),
            ("tests.stepflow.no_such_module:fn", "cannot import"),
            ("tests.stepflow.workloads:missing", "no attribute"),
            ("tests.stepflow.workloads:NOT_CALLABLE", "not resolve to a callable"),
        ],
    )
    def test_bad_references(self, ref, message):
        with pytest.raises(ValueError, match=message):
            resolve_callable(ref)


# ---------------------------------------------------------------------------
# StepConfig / PipelineConfig
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestStepConfig:
    def test_defaults(self):
        cfg = StepConfig(name="a", call=workloads.shout)
        assert cfg.timeout_ms is None
        assert cfg.offload is False
        assert cfg.continue_on_error is False

    def test_import_string_is_resolved(self):
        cfg = StepConfig(name="a", call="tests.stepflow.workloads:shout")
        assert cfg.call is workloads.shout

    def test_direct_construction_raises_validation_error(self):
        with pytest.raises(ValidationError, match="timeout_ms"):
            StepConfig(name="a", call=workloads.shout, timeout_ms=0)

    def test_frozen(self):
        cfg = StepConfig(name="a", call=workloads.shout)
        with pytest.raises(Exception):
            cfg.name = "b"  # type: ignore[misc]


@pytest.mark.unit
class TestPipelineConfig:
    def test_from_mapping(self):
        cfg = PipelineConfig.from_mapping(
            {
                "name": "orders",
                "steps": [
                    {"name": "inventory", "call": "tests.stepflow.workloads:shout",
                     "timeout_ms": 1500},
                    {"name": "hash", "call": workloads.square, "offload": True},
                ],
            }
        )
        assert cfg.name == "orders"
        assert [s.name for s in cfg.steps] == ["inventory", "hash"]
        assert cfg.steps[0].timeout_ms == 1500
        assert cfg.steps[1].offload

    @pytest.mark.parametrize("timeout", [0, -5, 1.5, "100", True])
    def test_bad_timeouts_raise_config_error(self, timeout):
        with pytest.raises(PipelineConfigError, match="timeout_ms"):
            PipelineConfig.from_mapping(
                {"steps": [{"name": "a", "call": workloads.shout, "timeout_ms": timeout}]}
            )

    def test_duplicate_names(self):
        with pytest.raises(PipelineConfigError, match="duplicate step name"):
            PipelineConfig.from_mapping(
                {"steps": [{"name": "a", "call": workloads.shout},
                           {"name": "a", "call": workloads.shout}]}
            )

    def test_unresolvable_call(self):
        with pytest.raises(PipelineConfigError, match="cannot import"):
            PipelineConfig.from_mapping(
                {"steps": [{"name": "a", "call": "nowhere.at_all:fn"}]}
            )

    def test_missing_name(self):
        with pytest.raises(PipelineConfigError):
            PipelineConfig.from_mapping({"steps": [{"call": workloads.shout}]})

    def test_coerce_accepts_model_and_mapping(self):
        cfg = PipelineConfig()
        assert coerce_config(cfg) is cfg
        assert isinstance(coerce_config({"steps": []}), PipelineConfig)

    def test_coerce_rejects_other_types(self):
        with pytest.raises(PipelineConfigError, match="Expected a PipelineConfig"):
            coerce_config(["not", "a", "config"])  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for var in ("OFFLOAD_WORKERS", "START_METHOD", "DEFAULT_TIMEOUT_MS"):
        # setenv first so undo restores the original state, even after
        # load_dotenv wrote to os.environ behind monkeypatch's back.
        monkeypatch.setenv(f"STEPFLOW_{var}", "")
        monkeypatch.delenv(f"STEPFLOW_{var}")
    return tmp_path


@pytest.mark.unit
class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.offload_workers == 1
        assert settings.start_method is None
        assert settings.default_timeout_ms is None

    def test_from_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("STEPFLOW_OFFLOAD_WORKERS", "4")
        monkeypatch.setenv("STEPFLOW_DEFAULT_TIMEOUT_MS", "3000")
        monkeypatch.setenv("STEPFLOW_START_METHOD", "spawn")
        settings = Settings.from_env(clean_env / "missing.env")
        assert settings.offload_workers == 4
        assert settings.default_timeout_ms == 3000
        assert settings.start_method == "spawn"

    def test_from_dotenv_file(self, clean_env, monkeypatch):
        env_file = clean_env / ".env"
        env_file.write_text("STEPFLOW_OFFLOAD_WORKERS=3\nSTEPFLOW_DEFAULT_TIMEOUT_MS=250\n")
        settings = Settings.from_env(env_file)
        assert settings.offload_workers == 3
        assert settings.default_timeout_ms == 250

    def test_real_environment_wins_over_dotenv(self, clean_env, monkeypatch):
        env_file = clean_env / ".env"
        env_file.write_text("STEPFLOW_OFFLOAD_WORKERS=3\n")
        monkeypatch.setenv("STEPFLOW_OFFLOAD_WORKERS", "2")
        assert Settings.from_env(env_file).offload_workers == 2

    def test_empty_values_fall_back_to_defaults(self, clean_env, monkeypatch):
        monkeypatch.setenv("STEPFLOW_START_METHOD", "")
        assert Settings.from_env(clean_env / "missing.env").start_method is None

    @pytest.mark.parametrize(
        "var, value",
        [("OFFLOAD_WORKERS", "0"), ("OFFLOAD_WORKERS", "many"), ("DEFAULT_TIMEOUT_MS", "-1")],
    )
    def test_invalid_values(self, clean_env, monkeypatch, var, value):
        monkeypatch.setenv(f"STEPFLOW_{var}", value)
        with pytest.raises(PipelineConfigError, match="STEPFLOW_"):
            Settings.from_env(clean_env / "missing.env")
