"""Tests for outcome and result types."""

from __future__ import annotations

from appforge.build.results import (
    UNSUPPORTED_STATUS,
    PipelineResult,
    ResultKind,
    StageResult,
    StepOutcome,
)


class TestStepOutcome:
    """Tests for the StepOutcome class."""

    def test_success_kinds(self):
        """OK and NO_OP are both successful."""
        assert StepOutcome.success().ok
        assert StepOutcome.no_op("nothing").ok

    def test_from_status(self):
        """Non-zero statuses keep their value and take the failure kind."""
        assert StepOutcome.from_status(0, ResultKind.BUILD_FAILURE).kind is ResultKind.OK

        failed = StepOutcome.from_status(2, ResultKind.BUILD_FAILURE, "make")
        assert not failed.ok
        assert failed.status == 2
        assert failed.kind is ResultKind.BUILD_FAILURE

    def test_unsupported(self):
        """Unsupported variants carry the dedicated status."""
        outcome = StepOutcome.unsupported("svn")

        assert outcome.status == UNSUPPORTED_STATUS
        assert outcome.status != 0
        assert "'svn'" in outcome.message


class TestPipelineResult:
    """Tests for the PipelineResult class."""

    def test_empty(self):
        """A result with no failures is ok with status 0."""
        result = PipelineResult()

        assert result.ok
        assert result.status == 0
        assert result.failure is None

    def test_first_failure_wins(self):
        """The status is that of the first failing stage result."""
        result = PipelineResult(
            results=[
                StageResult("clean_workspace", ResultKind.OK, 0),
                StageResult("build_dependencies", ResultKind.NO_OP, 0, component="appimage"),
                StageResult("build_dependencies", ResultKind.BUILD_FAILURE, 2, component="cmake"),
                StageResult("build_main_project", ResultKind.FETCH_FAILURE, 128),
            ]
        )

        assert not result.ok
        assert result.status == 2
        assert result.failure.component == "cmake"
        assert result.stages == ["clean_workspace", "build_dependencies", "build_main_project"]

    def test_from_outcome(self):
        """Stage results copy the outcome's classification."""
        result = StageResult.from_outcome("build_dependencies", StepOutcome.unsupported("svn"), "zlib")

        assert result.kind is ResultKind.UNSUPPORTED_VARIANT
        assert result.status == UNSUPPORTED_STATUS
        assert result.component == "zlib"
        assert not result.ok
