"""Pytest configuration and fixtures for appforge tests."""

import pathlib
import shlex
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from appforge.build.executor import BuildExecutor
from appforge.build.orchestrator import PipelineOrchestrator, PipelineSettings
from appforge.build.recipe import Recipe
from appforge.build.sources import SourceResolver
from appforge.build.workspace import WorkspaceContext

DESCRIBE_OUTPUT = "release-1.0.1-1-gdeadbee"


class FakeRunner:
    """Records commands instead of running them.

    ``statuses`` maps a command fragment to the status returned for any command
    containing it. ``on_run`` is called for every command before the status is
    chosen, so tests can create the files a real command would.
    """

    def __init__(
            self,
            statuses: Optional[Dict[str, int]] = None,
            on_run: Optional[Callable[[str, Optional[pathlib.Path]], None]] = None,
            describe: Tuple[int, str] = (0, DESCRIBE_OUTPUT),
    ) -> None:
        self.statuses = statuses or {}
        self.on_run = on_run
        self.describe = describe
        self.calls: List[Tuple[str, Optional[pathlib.Path]]] = []
        self.envs: List[Optional[Dict[str, str]]] = []

    def run(self, command: str, cwd: Any = None, env: Optional[Dict[str, str]] = None) -> int:
        cwd_path = pathlib.Path(cwd) if cwd else None
        self.calls.append((command, cwd_path))
        self.envs.append(env)
        if self.on_run:
            self.on_run(command, cwd_path)
        for fragment, status in self.statuses.items():
            if fragment in command:
                return status
        return 0

    def capture(self, command: str, cwd: Any = None, env: Optional[Dict[str, str]] = None) -> Tuple[int, str]:
        self.calls.append((command, pathlib.Path(cwd) if cwd else None))
        return self.describe

    @property
    def commands(self) -> List[str]:
        return [command for command, _ in self.calls]

    def cwd_of(self, fragment: str) -> Optional[pathlib.Path]:
        for command, cwd in self.calls:
            if fragment in command:
                return cwd
        raise AssertionError(f"No command containing {fragment!r} was run")


def create_clone_target(command: str, cwd: Optional[pathlib.Path]) -> None:
    """Simulate ``git clone <url> <target>`` by creating the target."""
    if command.startswith("git clone"):
        pathlib.Path(shlex.split(command)[-1]).mkdir(parents=True, exist_ok=True)


class FakeCollaborators:
    """In-memory collaborators producing the files the pipeline checks for."""

    def __init__(self, workspace: WorkspaceContext, statuses: Optional[Dict[str, int]] = None) -> None:
        self.workspace = workspace
        self.statuses = statuses or {}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.context: Dict[str, Any] = {}

    def _call(self, name: str, *args: Any) -> int:
        self.calls.append((name, args))
        return self.statuses.get(name, 0)

    @property
    def called(self) -> List[str]:
        return [name for name, _ in self.calls]

    def install_packages(self, names: Sequence[str]) -> int:
        return self._call("install_packages", *names)

    def integrate_desktop(self, name: str, desktop: str) -> int:
        (self.workspace.app_root / f"{desktop}.desktop").write_text(
            f"[Desktop Entry]\nExec={name}\nIcon=\n"
        )
        return self._call("integrate_desktop", name, desktop)

    def copy_icon(self, icon: str, icon_path: str, desktop: str) -> int:
        (self.workspace.app_root / icon).write_bytes(b"\x89PNG")
        return self._call("copy_icon", icon, icon_path, desktop)

    def run_integration(self, name: str) -> int:
        (self.workspace.app_root / "AppRun").write_text("#!/bin/sh\n")
        bin_dir = self.workspace.install_prefix / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        (bin_dir / f"{name}.wrapper").write_text("#!/bin/sh\n")
        return self._call("run_integration", name)

    def copy_libraries(self) -> int:
        return self._call("copy_libraries")

    def relocate_libraries(self) -> int:
        return self._call("relocate_libraries")

    def remove_blacklisted(self) -> int:
        return self._call("remove_blacklisted")

    def render_artifact_description(self, context: Mapping[str, Any]) -> str:
        self.context = dict(context)
        self._call("render_artifact_description")
        return f"#!/bin/bash\ntouch {context['artifact_path']}\n"


@pytest.fixture
def workspace(tmp_path: pathlib.Path) -> WorkspaceContext:
    """Workspace rooted in a temporary directory."""
    return WorkspaceContext.create(tmp_path / "root", "demo")


@pytest.fixture
def recipe_data() -> Dict[str, Any]:
    """Recipe with two dependencies and the main project, frameworks off."""
    return {
        "name": "demo",
        "main_source": {
            "type": "git",
            "url": "https://example.org/demo.git",
            "build_system": "cmake",
            "build_options": "-DX=1",
        },
        "dependencies": [
            {
                "key": "toolA",
                "dep_name": "toolA",
                "source": {"type": "git", "url": "https://example.org/toolA.git"},
                "build": {"build_system": "make", "build_options": "--flag"},
            },
            {
                "key": "toolB",
                "dep_name": "toolB",
                "source": {"type": "none"},
                "build": {"build_system": "custom", "build_options": "echo toolB"},
            },
        ],
        "frameworks": {"enabled": False, "members": []},
        "packages": ["libfoo-dev"],
    }


@pytest.fixture
def make_pipeline(workspace: WorkspaceContext):
    """Factory wiring an orchestrator to fakes.

    Returns a function ``(recipe_data, runner=None, collaborators=None,
    **settings) -> (orchestrator, runner, collaborators)``.
    """

    def factory(
            data: Dict[str, Any],
            runner: Optional[FakeRunner] = None,
            collaborators: Optional[FakeCollaborators] = None,
            mask_chain_failures: bool = True,
            **settings: Any,
    ):
        collaborators = collaborators or FakeCollaborators(workspace)

        def on_run(command: str, cwd: Optional[pathlib.Path]) -> None:
            create_clone_target(command, cwd)
            if command.startswith("/bin/bash -xe") and command.endswith("Recipe"):
                pathlib.Path(collaborators.context["artifact_path"]).touch()

        runner = runner or FakeRunner(on_run=on_run)
        if runner.on_run is None:
            runner.on_run = on_run
        resolver = SourceResolver(workspace, runner=runner)
        executor = BuildExecutor(
            workspace, runner=runner, mask_chain_failures=mask_chain_failures
        )
        orchestrator = PipelineOrchestrator(
            Recipe.from_dict(data),
            workspace,
            resolver,
            executor,
            collaborators,
            settings=PipelineSettings(**settings),
            runner=runner,
        )
        return orchestrator, runner, collaborators

    return factory
