"""Pipeline orchestration for one packaging run.

The orchestrator walks a fixed, linear list of stages. Each stage records one
or more ``StageResult`` entries; the first entry that is not ``ok`` aborts the
run and becomes the overall result. There is no retry and no recovery: a
failed run is followed by a clean workspace and a fresh run.
"""

from __future__ import annotations

import enum
import pathlib
import shlex
import shutil
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import structlog

from appforge.build.collaborators import Collaborators, ShellCollaborators
from appforge.build.executor import ROOT_BUILD_COMPONENT, BuildExecutor
from appforge.build.recipe import Recipe
from appforge.build.results import (
    FAILURE,
    PipelineResult,
    ResultKind,
    StageResult,
    StepOutcome,
)
from appforge.build.runner import CommandRunner
from appforge.build.sources import SourceResolver, SourceType
from appforge.build.template import artifact_file_name
from appforge.build.version import DEFAULT_TAG_PREFIX, describe_version
from appforge.build.workspace import WorkspaceContext, is_empty
from appforge.utils.exceptions import AppForgeError, StageAbortError

FRAMEWORK_URL_TEMPLATE = "https://anongit.kde.org/{name}"
FRAMEWORK_OPTIONS = "-DCMAKE_INSTALL_PREFIX:PATH={prefix} -DBUILD_TESTING=OFF"


class Stage(str, enum.Enum):
    """Pipeline stages, in execution order."""

    CLEAN_WORKSPACE = "clean_workspace"
    INSTALL_SYSTEM_PACKAGES = "install_system_packages"
    BUILD_DEPENDENCIES = "build_dependencies"
    BUILD_FRAMEWORKS = "build_frameworks"
    BUILD_MAIN_PROJECT = "build_main_project"
    DERIVE_VERSION = "derive_version"
    INTEGRATE_DESKTOP = "integrate_desktop"
    INTEGRATE_ICON = "integrate_icon"
    RUNTIME_INTEGRATION = "runtime_integration"
    COPY_DEPENDENCIES = "copy_dependencies"
    COPY_LIBRARIES = "copy_libraries"
    RELOCATE_LIBRARIES = "relocate_libraries"
    REMOVE_BLACKLISTED = "remove_blacklisted"
    GENERATE_ARTIFACT = "generate_artifact"


@dataclass
class PipelineSettings:
    """Tunables of the pipeline that do not come from the recipe."""

    framework_url_template: str = FRAMEWORK_URL_TEMPLATE
    framework_options: str = FRAMEWORK_OPTIONS
    framework_special_options: Dict[str, str] = field(
        default_factory=lambda: {
            "phonon": FRAMEWORK_OPTIONS + " -DPHONON_BUILD_PHONON4QT5=ON",
        }
    )
    tag_prefix: str = DEFAULT_TAG_PREFIX
    arch: str = "x86_64"
    artifact_extension: str = "AppImage"
    root_build_component: str = ROOT_BUILD_COMPONENT
    teardown: bool = True

    @classmethod
    def from_config(cls, config_manager: Any) -> PipelineSettings:
        return cls(
            framework_url_template=config_manager.get("frameworks.url_template", FRAMEWORK_URL_TEMPLATE),
            framework_options=config_manager.get("frameworks.options", FRAMEWORK_OPTIONS),
            framework_special_options=dict(config_manager.get("frameworks.special_options", {}) or {}),
            tag_prefix=config_manager.get("version.tag_prefix", DEFAULT_TAG_PREFIX),
            arch=config_manager.get("artifact.arch", "x86_64"),
            artifact_extension=config_manager.get("artifact.extension", "AppImage"),
            root_build_component=config_manager.get("build.root_build_component", ROOT_BUILD_COMPONENT),
            teardown=bool(config_manager.get("pipeline.teardown", True)),
        )


class PipelineOrchestrator:
    """Runs the fixed stage sequence for one recipe.

    Attributes:
        recipe: The recipe being packaged
        workspace: Workspace paths for the run
        resolver: Source resolver used for every component
        executor: Build executor used for every component
        collaborators: External procedures for packaging steps
        settings: Pipeline tunables
        runner: Runs git describe and the artifact description
    """

    def __init__(
            self,
            recipe: Recipe,
            workspace: WorkspaceContext,
            resolver: SourceResolver,
            executor: BuildExecutor,
            collaborators: Collaborators,
            settings: Optional[PipelineSettings] = None,
            runner: Optional[CommandRunner] = None,
            logger: Optional[Any] = None,
    ) -> None:
        self.recipe = recipe
        self.workspace = workspace
        self.resolver = resolver
        self.executor = executor
        self.collaborators = collaborators
        self.settings = settings or PipelineSettings()
        self.runner = runner or CommandRunner()
        self.logger = logger or structlog.get_logger("appforge.pipeline")
        self._result = PipelineResult()

    @classmethod
    def from_config(
            cls,
            recipe: Recipe,
            config_manager: Any,
            runner: Optional[CommandRunner] = None,
            collaborators: Optional[Collaborators] = None,
            http_client: Optional[httpx.Client] = None,
            logger: Optional[Any] = None,
    ) -> PipelineOrchestrator:
        """Wire a pipeline from an initialized configuration manager."""
        runner = runner or CommandRunner()
        workspace = WorkspaceContext.create(config_manager.get("workspace.root", "/"), recipe.name)
        privilege_command = config_manager.get("build.privilege_command", "sudo") or ""
        resolver = SourceResolver(
            workspace,
            runner=runner,
            http_client=http_client,
            download_timeout=float(config_manager.get("sources.download_timeout", 300.0)),
        )
        executor = BuildExecutor(
            workspace,
            runner=runner,
            privilege_command=privilege_command,
            mask_chain_failures=bool(config_manager.get("build.mask_chain_failures", True)),
            root_build_component=config_manager.get("build.root_build_component", ROOT_BUILD_COMPONENT),
        )
        if collaborators is None:
            collaborators = ShellCollaborators(
                workspace,
                runner=runner,
                privilege_command=privilege_command,
                functions_dir=config_manager.get("integration.functions_dir"),
                runtime_toolkit_url=config_manager.get(
                    "integration.runtime_toolkit_url", "https://github.com/probonopd/AppImageKit"
                ),
                template_path=config_manager.get("artifact.template"),
            )
        return cls(
            recipe,
            workspace,
            resolver,
            executor,
            collaborators,
            settings=PipelineSettings.from_config(config_manager),
            runner=runner,
            logger=logger,
        )

    @property
    def artifact_path(self) -> Optional[pathlib.Path]:
        if not self._result.version:
            return None
        return self.workspace.output_dir / artifact_file_name(
            self.recipe.name,
            self._result.version,
            self.settings.arch,
            self.settings.artifact_extension,
        )

    def stages(self) -> List[Tuple[Stage, Callable[[], None]]]:
        return [
            (Stage.CLEAN_WORKSPACE, self._clean_workspace),
            (Stage.INSTALL_SYSTEM_PACKAGES, self._install_system_packages),
            (Stage.BUILD_DEPENDENCIES, self._build_dependencies),
            (Stage.BUILD_FRAMEWORKS, self._build_frameworks),
            (Stage.BUILD_MAIN_PROJECT, self._build_main_project),
            (Stage.DERIVE_VERSION, self._derive_version),
            (Stage.INTEGRATE_DESKTOP, self._integrate_desktop),
            (Stage.INTEGRATE_ICON, self._integrate_icon),
            (Stage.RUNTIME_INTEGRATION, self._runtime_integration),
            (Stage.COPY_DEPENDENCIES, self._copy_dependencies),
            (Stage.COPY_LIBRARIES, self._copy_libraries),
            (Stage.RELOCATE_LIBRARIES, self._relocate_libraries),
            (Stage.REMOVE_BLACKLISTED, self._remove_blacklisted),
            (Stage.GENERATE_ARTIFACT, self._generate_artifact),
        ]

    def run(self) -> PipelineResult:
        """Run every stage in order, stopping at the first failure.

        Returns:
            The pipeline result; ``status`` is the first failing stage's status
        """
        self._result = PipelineResult()
        self.logger.info("pipeline started", name=self.recipe.name, root=str(self.workspace.root))

        for stage, step in self.stages():
            if stage is Stage.BUILD_FRAMEWORKS and not self.recipe.frameworks.enabled:
                self.logger.info("stage skipped", stage=stage.value)
                continue

            self.logger.info("stage started", stage=stage.value)
            try:
                step()
            except StageAbortError as e:
                failure = e.result
                self.logger.error(
                    "stage failed",
                    stage=failure.stage,
                    component=failure.component,
                    kind=failure.kind.value,
                    status=failure.status,
                    message=failure.message,
                )
                return self._result
            except (AppForgeError, OSError) as e:
                self._result.results.append(
                    StageResult(stage.value, ResultKind.COMMAND_FAILURE, FAILURE, f"{type(e).__name__}: {e}")
                )
                self.logger.exception("stage raised", stage=stage.value)
                return self._result

        if self.settings.teardown:
            self.workspace.teardown()
            self.logger.info("workspace torn down", root=str(self.workspace.root))

        self.logger.info(
            "pipeline finished",
            name=self.recipe.name,
            version=self._result.version,
            artifact=str(self._result.artifact_path),
        )
        return self._result

    def _record(self, result: StageResult) -> None:
        self._result.results.append(result)
        if not result.ok:
            raise StageAbortError(result)

    def _record_status(self, stage: Stage, status: int, message: str = "") -> None:
        self._record(
            StageResult.from_outcome(
                stage.value, StepOutcome.from_status(status, ResultKind.COMMAND_FAILURE, message)
            )
        )

    def _require(self, stage: Stage, condition: bool, message: str, component: Optional[str] = None) -> None:
        if not condition:
            self._record(StageResult(stage.value, ResultKind.ASSERTION_FAILURE, FAILURE, message, component))

    def _clean_workspace(self) -> None:
        leftovers = self.workspace.clean()
        self._require(
            Stage.CLEAN_WORKSPACE,
            not leftovers,
            f"Please clean up from last build: {', '.join(str(p) for p in leftovers)}",
        )
        self.workspace.ensure()
        self._record_status(Stage.CLEAN_WORKSPACE, 0, "workspace clean")

    def _install_system_packages(self) -> None:
        status = self.collaborators.install_packages(list(self.recipe.packages))
        self._record_status(Stage.INSTALL_SYSTEM_PACKAGES, status, "install distribution packages")

    def _resolve_and_build(
            self,
            stage: Stage,
            name: str,
            source_type: str,
            url: str,
            branch: Optional[str],
            build_system: str,
            options: str,
    ) -> None:
        outcome = self.resolver.resolve(name, source_type, url, branch)
        self._record(StageResult.from_outcome(stage.value, outcome, component=name))

        if name != self.settings.root_build_component:
            if outcome.kind is ResultKind.NO_OP:
                # Nothing to fetch; the build runs in an empty component directory
                self.workspace.component_dir(name).mkdir(parents=True, exist_ok=True)
            self._require(
                stage,
                self.workspace.has_source(name),
                f"{name} directory does not exist, something went wrong with source retrieval",
                component=name,
            )

        outcome = self.executor.build(name, build_system, options)
        self._record(StageResult.from_outcome(stage.value, outcome, component=name))

    def _build_dependencies(self) -> None:
        for dependency in self.recipe.dependencies:
            self._resolve_and_build(
                Stage.BUILD_DEPENDENCIES,
                dependency.dep_name,
                dependency.source.type,
                dependency.source.url,
                dependency.source.branch,
                dependency.build.build_system,
                dependency.build.build_options,
            )

    def framework_options(self, member: str) -> str:
        template = self.settings.framework_special_options.get(member, self.settings.framework_options)
        return template.replace("{prefix}", str(self.workspace.install_prefix))

    def _build_frameworks(self) -> None:
        for member in self.recipe.frameworks.members:
            self._resolve_and_build(
                Stage.BUILD_FRAMEWORKS,
                member,
                SourceType.GIT.value,
                self.settings.framework_url_template.replace("{name}", member),
                None,
                "cmake",
                self.framework_options(member),
            )

    def _build_main_project(self) -> None:
        main = self.recipe.main_source
        self._resolve_and_build(
            Stage.BUILD_MAIN_PROJECT,
            self.recipe.name,
            main.type,
            main.url,
            main.branch,
            main.build_system,
            main.build_options,
        )

    def _derive_version(self) -> None:
        status, version = describe_version(
            self.runner, self.workspace.component_dir(self.recipe.name), self.settings.tag_prefix
        )
        self._record_status(Stage.DERIVE_VERSION, status, "git describe")
        self._require(Stage.DERIVE_VERSION, bool(version), "Expected the version not to be empty")
        self._result.version = version
        self.logger.info("version derived", version=version)

    def _integrate_desktop(self) -> None:
        desktop = self.recipe.desktop_name
        status = self.collaborators.integrate_desktop(self.recipe.name, desktop)
        self._record_status(Stage.INTEGRATE_DESKTOP, status, f"integrate {desktop}.desktop")

        desktop_file = self.workspace.app_root / f"{desktop}.desktop"
        self._require(
            Stage.INTEGRATE_DESKTOP,
            desktop_file.is_file(),
            f"Desktop file {desktop_file} does not exist",
        )
        self._require(
            Stage.INTEGRATE_DESKTOP,
            "Icon" in desktop_file.read_text(encoding="utf-8"),
            f"No Icon entry in {desktop_file}",
        )

    def _integrate_icon(self) -> None:
        icon = self.recipe.icon_name
        status = self.collaborators.copy_icon(icon, self.recipe.icon_path, self.recipe.desktop_name)
        self._record_status(Stage.INTEGRATE_ICON, status, f"copy icon {icon}")

        icon_file = self.workspace.app_root / pathlib.Path(icon).name
        self._require(Stage.INTEGRATE_ICON, icon_file.is_file(), f"Icon {icon_file} does not exist")

    def _runtime_integration(self) -> None:
        status = self.collaborators.run_integration(self.recipe.name)
        self._record_status(Stage.RUNTIME_INTEGRATION, status, "runtime integration")

        apprun = self.workspace.app_root / "AppRun"
        self._require(Stage.RUNTIME_INTEGRATION, apprun.exists(), f"AppRun missing at {apprun}")
        wrapper = self.workspace.install_prefix / "bin" / f"{self.recipe.name}.wrapper"
        self._require(Stage.RUNTIME_INTEGRATION, wrapper.exists(), f"Application wrapper missing at {wrapper}")

    def _copy_dependencies(self) -> None:
        bundle = self.workspace.app_bundle_dir
        bundle.mkdir(parents=True, exist_ok=True)
        shutil.copytree(self.workspace.app_root, bundle, symlinks=True, dirs_exist_ok=True)

        for dep in self.recipe.dep_path:
            source = pathlib.Path(dep)
            if not source.exists():
                self._record(
                    StageResult(
                        Stage.COPY_DEPENDENCIES.value,
                        ResultKind.COMMAND_FAILURE,
                        FAILURE,
                        f"Dependency path {source} does not exist",
                        component=dep,
                    )
                )
            # Keep the full path below the bundle root, like cp --parents
            target = bundle / (source.relative_to(source.anchor) if source.is_absolute() else source)
            target.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                shutil.copytree(source, target, symlinks=True, dirs_exist_ok=True)
            else:
                shutil.copy2(source, target)
        self._record_status(Stage.COPY_DEPENDENCIES, 0, f"copied into {bundle}")

        desktop_file = bundle / f"{self.recipe.desktop_name}.desktop"
        icon_file = bundle / pathlib.Path(self.recipe.icon_name).name
        self._require(Stage.COPY_DEPENDENCIES, desktop_file.is_file(), f"Desktop file {desktop_file} does not exist")
        self._require(Stage.COPY_DEPENDENCIES, icon_file.is_file(), f"Icon {icon_file} does not exist")

    def _copy_libraries(self) -> None:
        status = self.collaborators.copy_libraries()
        self._record_status(Stage.COPY_LIBRARIES, status, "copy shared libraries")

    def _relocate_libraries(self) -> None:
        status = self.collaborators.relocate_libraries()
        self._record_status(Stage.RELOCATE_LIBRARIES, status, "move libraries to usr/lib")

        lib_dir = self.workspace.app_bundle_dir / "lib"
        self._require(
            Stage.RELOCATE_LIBRARIES,
            is_empty(lib_dir),
            f"Files still in {lib_dir}, move them to usr",
        )

    def _remove_blacklisted(self) -> None:
        status = self.collaborators.remove_blacklisted()
        self._record_status(Stage.REMOVE_BLACKLISTED, status, "delete blacklisted libraries")

    def artifact_context(self) -> Dict[str, Any]:
        """Values available to the artifact description template."""
        return {
            "name": self.recipe.name,
            "version": self._result.version or "",
            "arch": self.settings.arch,
            "desktop": self.recipe.desktop_name,
            "icon": pathlib.Path(self.recipe.icon_name).name,
            "workspace_root": self.workspace.root,
            "app_root": self.workspace.app_root,
            "app_dir": self.workspace.app_bundle_dir,
            "install_prefix": self.workspace.install_prefix,
            "output_dir": self.workspace.output_dir,
            "artifact_path": self.artifact_path or "",
        }

    def _generate_artifact(self) -> None:
        description = self.collaborators.render_artifact_description(self.artifact_context())
        self.workspace.input_dir.mkdir(parents=True, exist_ok=True)
        description_path = self.workspace.input_dir / "Recipe"
        description_path.write_text(description, encoding="utf-8")

        status = self.runner.run(
            f"/bin/bash -xe {shlex.quote(str(description_path))}", cwd=self.workspace.root
        )
        self._record_status(Stage.GENERATE_ARTIFACT, status, "generate artifact")

        artifact = self.artifact_path
        self._require(
            Stage.GENERATE_ARTIFACT,
            artifact is not None and artifact.is_file(),
            f"Something went wrong, no artifact at {artifact}",
        )
        self._result.artifact_path = artifact
