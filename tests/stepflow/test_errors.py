"""Unit tests for stepflow error types."""

from __future__ import annotations

import pytest

from stepflow import (
    ErrorKind,
    PipelineConfigError,
    StepflowError,
    StepRejected,
    StepTimeout,
    WorkerCrashed,
)


@pytest.mark.unit
class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            StepRejected("no"),
            StepTimeout("s", 10, 12.0),
            WorkerCrashed(1),
            PipelineConfigError("bad"),
        ],
    )
    def test_all_errors_share_base(self, error):
        assert isinstance(error, StepflowError)
        assert isinstance(error, Exception)

    def test_kinds(self):
        assert StepRejected("x").kind is ErrorKind.STEP_REJECTED
        assert StepTimeout("s", 1, 1.0).kind is ErrorKind.TIMEOUT
        assert WorkerCrashed(9).kind is ErrorKind.WORKER_CRASHED
        assert PipelineConfigError("x").kind is ErrorKind.CONFIGURATION

    def test_kind_values_are_strings(self):
        assert ErrorKind.TIMEOUT.value == "timeout"
        assert ErrorKind.CONFIGURATION == "configuration_error"


@pytest.mark.unit
class TestMessages:
    def test_message_attribute_matches_str(self):
        err = StepRejected("card declined")
        assert err.message == "card declined"
        assert str(err) == "card declined"

    def test_timeout_message_names_step_and_elapsed(self):
        err = StepTimeout("check_inventory", 1500, 1503.7)
        assert "check_inventory" in err.message
        assert "1504ms" in err.message
        assert "1500ms" in err.message
        assert err.step_name == "check_inventory"
        assert err.timeout_ms == 1500

    def test_worker_crashed_includes_exit_code(self):
        err = WorkerCrashed(3)
        assert err.exitcode == 3
        assert "exit code 3" in err.message

    def test_worker_crashed_detail(self):
        err = WorkerCrashed(None, "worker exited before accepting work")
        assert err.exitcode is None
        assert "before accepting work" in err.message

    def test_can_be_raised_and_caught_as_base(self):
        with pytest.raises(StepflowError) as exc_info:
            raise WorkerCrashed(-9)
        assert exc_info.value.exitcode == -9
