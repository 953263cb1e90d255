"""Build execution for resolved components.

Each build system variant expands to a short chain of shell commands run in
the component's source directory. The reported status is that of the last
command in the chain. With ``mask_chain_failures`` enabled (the default) every
command runs even after an earlier one failed, so a failing configure step
only shows up if the install step fails too. Disabling it stops the chain at
the first non-zero status.
"""

from __future__ import annotations

import enum
import pathlib
import shlex
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from appforge.build.results import FAILURE, ResultKind, StepOutcome
from appforge.build.runner import CommandRunner
from appforge.build.workspace import WorkspaceContext

# Pipeline-wide build parallelism
MAKE_JOBS = 8
QMAKE_PROJECT_FILE = "linuxdeployqt.pro"
ROOT_BUILD_COMPONENT = "cpan"


class BuildSystem(str, enum.Enum):
    """Supported build procedures."""

    AUTOTOOLS = "autotools"
    CMAKE = "cmake"
    CUSTOM = "custom"
    QMAKE = "qmake"
    BOOTSTRAP = "bootstrap"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[BuildSystem]:
        """Map a recipe value to a build system, or None when unsupported."""
        if value is None:
            return None
        normalized = str(value).strip().lower()
        if normalized == "make":
            return cls.AUTOTOOLS
        try:
            return cls(normalized)
        except ValueError:
            return None


@dataclass(frozen=True)
class BuildPlan:
    """Commands for one build, and where they run."""

    cwd: pathlib.Path
    commands: Tuple[str, ...]


Handler = Callable[[str, str], BuildPlan]


class BuildExecutor:
    """Compiles and installs resolved components into the install prefix.

    Attributes:
        workspace: Workspace paths for the current run
        runner: Runs the build commands
        privilege_command: Prefix for install steps, empty to run unprivileged
        mask_chain_failures: Report only the last command's status
        root_build_component: Custom build that runs from the workspace root
    """

    def __init__(
            self,
            workspace: WorkspaceContext,
            runner: Optional[CommandRunner] = None,
            privilege_command: str = "sudo",
            mask_chain_failures: bool = True,
            root_build_component: str = ROOT_BUILD_COMPONENT,
            logger: Optional[Any] = None,
    ) -> None:
        self.workspace = workspace
        self.runner = runner or CommandRunner()
        self.privilege_command = privilege_command
        self.mask_chain_failures = mask_chain_failures
        self.root_build_component = root_build_component
        self.logger = logger or structlog.get_logger("appforge.executor")
        self._handlers: Dict[BuildSystem, Handler] = {
            BuildSystem.AUTOTOOLS: self._plan_autotools,
            BuildSystem.CMAKE: self._plan_cmake,
            BuildSystem.CUSTOM: self._plan_custom,
            BuildSystem.QMAKE: self._plan_qmake,
            BuildSystem.BOOTSTRAP: self._plan_bootstrap,
        }
        missing = set(BuildSystem) - set(self._handlers)
        if missing:
            raise TypeError(f"No build handler for: {sorted(m.value for m in missing)}")

    def plan(self, name: str, build_system: str, options: Optional[str]) -> Optional[BuildPlan]:
        """Expand a build request into its command chain.

        Returns:
            The plan, or None when ``build_system`` is not supported
        """
        variant = BuildSystem.parse(build_system)
        if variant is None:
            return None
        return self._handlers[variant](name, options or "")

    def build(self, name: str, build_system: str, options: Optional[str]) -> StepOutcome:
        """Build and install ``name`` with the given build system.

        Args:
            name: Component name
            build_system: One of the ``BuildSystem`` values (or ``make``)
            options: Opaque option string from the recipe

        Returns:
            Outcome carrying the status of the last command run
        """
        plan = self.plan(name, build_system, options)
        if plan is None:
            self.logger.error("unsupported build system", component=name, build_system=build_system)
            return StepOutcome.unsupported(
                str(build_system),
                f"You gave me {build_system} -- I have no idea what to do with that.",
            )

        if not plan.cwd.is_dir():
            self.logger.error("build directory missing", component=name, cwd=str(plan.cwd))
            return StepOutcome(
                FAILURE, ResultKind.ASSERTION_FAILURE, f"Build directory {plan.cwd} does not exist"
            )

        return self._run_chain(name, plan)

    def _run_chain(self, name: str, plan: BuildPlan) -> StepOutcome:
        env = self.workspace.build_environment()
        status = 0
        masked: List[Tuple[str, int]] = []

        for command in plan.commands:
            status = self.runner.run(command, cwd=plan.cwd, env=env)
            if status == 0:
                continue
            if not self.mask_chain_failures:
                return StepOutcome(status, ResultKind.BUILD_FAILURE, f"{name}: '{command}' exited {status}")
            masked.append((command, status))

        if masked and status == 0:
            for command, command_status in masked:
                self.logger.warning(
                    "build chain failure masked by later success",
                    component=name,
                    command=command,
                    status=command_status,
                )

        return StepOutcome.from_status(status, ResultKind.BUILD_FAILURE, f"build of {name}")

    def _component_dir(self, name: str) -> pathlib.Path:
        return self.workspace.component_dir(name)

    def _make_install(self, install_args: str = "") -> str:
        privilege = f"{self.privilege_command} " if self.privilege_command else ""
        install = f"{privilege}make install"
        if install_args:
            install = f"{install} {install_args}"
        return f"make -j {MAKE_JOBS} && {install}"

    def _tool(self, binary: str) -> str:
        return shlex.quote(str(self.workspace.install_prefix / "bin" / binary))

    def _plan_autotools(self, name: str, options: str) -> BuildPlan:
        prefix = shlex.quote(str(self.workspace.install_prefix))
        return BuildPlan(
            self._component_dir(name),
            (
                _join(f"./configure --prefix={prefix}", options),
                self._make_install(f"prefix={prefix}"),
            ),
        )

    def _plan_cmake(self, name: str, options: str) -> BuildPlan:
        return BuildPlan(
            self._component_dir(name),
            (_join(self._tool("cmake"), options), self._make_install()),
        )

    def _plan_custom(self, name: str, options: str) -> BuildPlan:
        # The root build component has no source directory of its own
        if name == self.root_build_component:
            return BuildPlan(self.workspace.root, (options,))
        return BuildPlan(self._component_dir(name), (options,))

    def _plan_qmake(self, name: str, options: str) -> BuildPlan:
        return BuildPlan(
            self._component_dir(name),
            (f"{self._tool('qmake')} {QMAKE_PROJECT_FILE}", self._make_install()),
        )

    def _plan_bootstrap(self, name: str, options: str) -> BuildPlan:
        return BuildPlan(
            self._component_dir(name),
            (_join("./bootstrap", options), self._make_install()),
        )


def _join(command: str, options: str) -> str:
    return f"{command} {options}".strip() if options else command
