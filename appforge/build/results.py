"""Result types shared by the resolver, the executor and the orchestrator.

Every leaf operation reports a ``StepOutcome``; the orchestrator wraps those
into ``StageResult`` records and collects them in a ``PipelineResult``. The
only decision ever made on a result is whether it is ``ok``.
"""

from __future__ import annotations

import enum
import pathlib
from dataclasses import dataclass, field
from typing import List, Optional

SUCCESS = 0
FAILURE = 1
# sysexits EX_USAGE; never produced for a supported variant
UNSUPPORTED_STATUS = 64


class ResultKind(str, enum.Enum):
    """Classification of a step or stage outcome."""

    OK = "ok"
    NO_OP = "no_op"
    UNSUPPORTED_VARIANT = "unsupported_variant"
    FETCH_FAILURE = "fetch_failure"
    BUILD_FAILURE = "build_failure"
    ASSERTION_FAILURE = "assertion_failure"
    COMMAND_FAILURE = "command_failure"

    @property
    def is_success(self) -> bool:
        return self in (ResultKind.OK, ResultKind.NO_OP)


@dataclass(frozen=True)
class StepOutcome:
    """Outcome of one resolve or build call.

    Attributes:
        status: Exit status of the last command observed, 0 on success
        kind: Classification of the outcome
        message: Human readable description
    """

    status: int
    kind: ResultKind
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind.is_success and self.status == SUCCESS

    @classmethod
    def success(cls, message: str = "") -> StepOutcome:
        return cls(SUCCESS, ResultKind.OK, message)

    @classmethod
    def no_op(cls, message: str = "") -> StepOutcome:
        return cls(SUCCESS, ResultKind.NO_OP, message)

    @classmethod
    def unsupported(cls, variant: str, message: str = "") -> StepOutcome:
        return cls(
            UNSUPPORTED_STATUS,
            ResultKind.UNSUPPORTED_VARIANT,
            message or f"Unsupported variant: {variant!r}",
        )

    @classmethod
    def from_status(cls, status: int, failure_kind: ResultKind, message: str = "") -> StepOutcome:
        """Build an outcome from an exit status, classifying non-zero as ``failure_kind``."""
        if status == SUCCESS:
            return cls(SUCCESS, ResultKind.OK, message)
        return cls(status, failure_kind, message)


@dataclass(frozen=True)
class StageResult:
    """Structured result of one pipeline stage (or one component within it)."""

    stage: str
    kind: ResultKind
    status: int
    message: str = ""
    component: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind.is_success and self.status == SUCCESS

    @classmethod
    def from_outcome(
            cls, stage: str, outcome: StepOutcome, component: Optional[str] = None
    ) -> StageResult:
        return cls(stage, outcome.kind, outcome.status, outcome.message, component)


@dataclass
class PipelineResult:
    """Aggregate result of a pipeline run.

    Attributes:
        results: Every stage result recorded, in execution order
        version: Version derived from the main project, once known
        artifact_path: Path of the generated artifact, once known
    """

    results: List[StageResult] = field(default_factory=list)
    version: Optional[str] = None
    artifact_path: Optional[pathlib.Path] = None

    @property
    def failure(self) -> Optional[StageResult]:
        for result in self.results:
            if not result.ok:
                return result
        return None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def status(self) -> int:
        failure = self.failure
        return failure.status if failure else SUCCESS

    @property
    def stages(self) -> List[str]:
        """Distinct stage names in the order they ran."""
        seen: List[str] = []
        for result in self.results:
            if result.stage not in seen:
                seen.append(result.stage)
        return seen
