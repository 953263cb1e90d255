"""External collaborators invoked by the pipeline as opaque pass/fail steps.

The orchestrator only depends on the ``Collaborators`` protocol. The default
``ShellCollaborators`` installs packages with apt-get, edits the desktop entry
in place, builds the AppImageKit runtime and calls the library helper scripts
found in the functions directory (``<root>/in/functions`` unless configured).
"""

from __future__ import annotations

import pathlib
import re
import shlex
import shutil
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

import structlog

from appforge.build.runner import CommandRunner
from appforge.build.template import load_template, render_template
from appforge.build.workspace import WorkspaceContext

RUNTIME_TOOLKIT_URL = "https://github.com/probonopd/AppImageKit"
BASE_PACKAGES = ("git", "wget")


@runtime_checkable
class Collaborators(Protocol):
    """Capabilities the pipeline delegates to outside procedures."""

    def install_packages(self, names: Sequence[str]) -> int:
        ...

    def integrate_desktop(self, name: str, desktop: str) -> int:
        ...

    def copy_icon(self, icon: str, icon_path: str, desktop: str) -> int:
        ...

    def run_integration(self, name: str) -> int:
        ...

    def copy_libraries(self) -> int:
        ...

    def relocate_libraries(self) -> int:
        ...

    def remove_blacklisted(self) -> int:
        ...

    def render_artifact_description(self, context: Mapping[str, Any]) -> str:
        ...


class ShellCollaborators:
    """Default collaborators backed by shell tools and helper scripts.

    Attributes:
        workspace: Workspace paths for the current run
        runner: Runs the shell commands
        privilege_command: Prefix for commands needing root, empty to disable
        functions_dir: Directory holding the helper scripts
        runtime_toolkit_url: Repository of the runtime wrapper toolkit
        template_path: Artifact description template, packaged default if None
    """

    def __init__(
            self,
            workspace: WorkspaceContext,
            runner: Optional[CommandRunner] = None,
            privilege_command: str = "sudo",
            functions_dir: Optional[Union[str, pathlib.Path]] = None,
            runtime_toolkit_url: str = RUNTIME_TOOLKIT_URL,
            template_path: Optional[Union[str, pathlib.Path]] = None,
            logger: Optional[Any] = None,
    ) -> None:
        self.workspace = workspace
        self.runner = runner or CommandRunner()
        self.privilege_command = privilege_command
        self.functions_dir = (
            pathlib.Path(functions_dir) if functions_dir else workspace.input_dir / "functions"
        )
        self.runtime_toolkit_url = runtime_toolkit_url
        self.template_path = template_path
        self.logger = logger or structlog.get_logger("appforge.collaborators")

    def _privileged(self, command: str) -> str:
        return f"{self.privilege_command} {command}" if self.privilege_command else command

    def _run_all(self, commands: Iterable[str], cwd: pathlib.Path) -> int:
        status = 0
        for command in commands:
            status = self.runner.run(command, cwd=cwd)
            if status != 0:
                break
        return status

    def install_packages(self, names: Sequence[str]) -> int:
        packages = " ".join(shlex.quote(n) for n in (*BASE_PACKAGES, *names))
        return self._run_all(
            [
                f"{self._privileged('apt-get update')} && {self._privileged('apt-get -y upgrade')}",
                self._privileged(f"apt-get -y install {packages}"),
                # The toolchain cmake is built from source into the install prefix
                self._privileged("apt-get -y remove cmake"),
            ],
            cwd=self.workspace.root,
        )

    def integrate_desktop(self, name: str, desktop: str) -> int:
        source = self.workspace.install_prefix / "share" / "applications" / f"{desktop}.desktop"
        target = self.workspace.app_root / f"{desktop}.desktop"
        if not source.is_file():
            self.logger.error("desktop entry not installed", path=str(source))
            return 1

        shutil.copyfile(source, target)
        text = target.read_text(encoding="utf-8")
        if "Icon" not in text:
            text = text.rstrip("\n") + "\nIcon=\n"
        text = re.sub(r"Exec=.*", lambda _: f"Exec={name}", text)
        target.write_text(text, encoding="utf-8")
        self.logger.info("desktop entry integrated", path=str(target))
        return 0

    def copy_icon(self, icon: str, icon_path: str, desktop: str) -> int:
        source = self.workspace.app_root / f"{icon_path}{icon}"
        desktop_file = self.workspace.app_root / f"{desktop}.desktop"
        if not source.is_file():
            self.logger.error("icon not found", path=str(source))
            return 1

        shutil.copyfile(source, self.workspace.app_root / pathlib.Path(icon).name)
        if desktop_file.is_file():
            text = desktop_file.read_text(encoding="utf-8")
            text = re.sub(r"Icon=.*", lambda _: f"Icon={icon}", text)
            desktop_file.write_text(text, encoding="utf-8")
        return 0

    def run_integration(self, name: str) -> int:
        toolkit = self.workspace.root / "AppImageKit"
        app_root = self.workspace.app_root
        commands = []
        if not toolkit.exists():
            commands.append(
                f"git clone {shlex.quote(self.runtime_toolkit_url)} {shlex.quote(str(toolkit))}"
            )
        status = self._run_all(commands, cwd=self.workspace.root)
        if status != 0:
            return status

        build = []
        apprun = self.functions_dir / "AppRun"
        if apprun.is_file():
            build.append(f"cp --force {shlex.quote(str(apprun))} AppImageAssistant.AppDir/AppRun")
        build.append("./build.sh")
        status = self._run_all(build, cwd=toolkit)
        if status != 0:
            return status

        out = shlex.quote(str(toolkit / "out"))
        status = self._run_all(
            [
                f"cp {out}/AppRun* ./AppRun",
                f"cp {out}/AppImageAssistant* ./AppImageAssistant",
                "chmod +x AppRun",
            ],
            cwd=app_root,
        )
        if status != 0:
            return status

        return self._run_script("desktop_integration.sh", cwd=app_root, args=[name])

    def copy_libraries(self) -> int:
        return self._run_script("copy_libs.sh")

    def relocate_libraries(self) -> int:
        return self._run_script("move_libs.sh")

    def remove_blacklisted(self) -> int:
        return self._run_script("delete_blacklisted.sh")

    def render_artifact_description(self, context: Mapping[str, Any]) -> str:
        return render_template(load_template(self.template_path), context)

    def _run_script(
            self,
            script: str,
            cwd: Optional[pathlib.Path] = None,
            args: Sequence[str] = (),
    ) -> int:
        path = self.functions_dir / script
        if not path.is_file():
            self.logger.error("helper script missing", script=str(path))
            return 1
        command = " ".join(["/bin/bash", "-xe", shlex.quote(str(path)), *map(shlex.quote, args)])
        return self.runner.run(command, cwd=cwd or self.workspace.app_bundle_dir)
