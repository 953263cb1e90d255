"""Build orchestration engine for appforge.

This package fetches component sources, builds them into a shared install
prefix and assembles the result into a portable application bundle.

Modules:
    recipe: Recipe models and loading
    workspace: Workspace paths and cleanup
    runner: Subprocess execution
    sources: Source resolution per source type
    executor: Build execution per build system
    collaborators: External packaging procedures
    orchestrator: The staged pipeline
    cli: Command-line interface for the pipeline
    results: Outcome and result types
    template: Artifact description rendering
    version: Version derivation
"""

from __future__ import annotations

from appforge.build.cli import main as build_cli
from appforge.build.collaborators import Collaborators, ShellCollaborators
from appforge.build.executor import MAKE_JOBS, BuildExecutor, BuildSystem
from appforge.build.orchestrator import PipelineOrchestrator, PipelineSettings, Stage
from appforge.build.recipe import Recipe, load_recipe
from appforge.build.results import (
    SUCCESS,
    UNSUPPORTED_STATUS,
    PipelineResult,
    ResultKind,
    StageResult,
    StepOutcome,
)
from appforge.build.runner import CommandRunner
from appforge.build.sources import SourceResolver, SourceType
from appforge.build.version import normalize_version
from appforge.build.workspace import WorkspaceContext

__all__ = [
    "BuildExecutor",
    "BuildSystem",
    "Collaborators",
    "CommandRunner",
    "MAKE_JOBS",
    "PipelineOrchestrator",
    "PipelineResult",
    "PipelineSettings",
    "Recipe",
    "ResultKind",
    "SUCCESS",
    "ShellCollaborators",
    "SourceResolver",
    "SourceType",
    "Stage",
    "StageResult",
    "StepOutcome",
    "UNSUPPORTED_STATUS",
    "WorkspaceContext",
    "build_cli",
    "load_recipe",
    "normalize_version",
]
