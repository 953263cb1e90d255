"""Source resolution for recipe components.

A component's source tree lives in ``<source_dir>/<name>``. The presence of
that directory is the only completion marker: once it exists, resolving the
component again is a successful no-op, whatever state the tree is in.
"""

from __future__ import annotations

import enum
import pathlib
import shlex
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
import structlog

from appforge.build.results import FAILURE, ResultKind, StepOutcome
from appforge.build.runner import CommandRunner
from appforge.build.workspace import WorkspaceContext

DEFAULT_BRANCH = "master"


class SourceType(str, enum.Enum):
    """Supported ways of obtaining a source tree."""

    GIT = "git"
    TARBALL_XZ = "tarball-xz"
    TARBALL_BZ2 = "tarball-bz2"
    NONE = "none"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[SourceType]:
        """Map a recipe value to a source type, or None when unsupported."""
        if value is None:
            return None
        normalized = str(value).strip().lower()
        if normalized in _ALIASES:
            return _ALIASES[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return None


# Names used by metadata.yml recipes
_ALIASES = {
    "xz": SourceType.TARBALL_XZ,
    "bz2": SourceType.TARBALL_BZ2,
}


@dataclass(frozen=True)
class TarballFormat:
    suffix: str
    tar_flags: str


TARBALL_FORMATS = {
    SourceType.TARBALL_XZ: TarballFormat(".tar.xz", "-xJf"),
    SourceType.TARBALL_BZ2: TarballFormat(".tar.bz2", "-xjf"),
}

Handler = Callable[[str, str, Optional[str]], StepOutcome]


class SourceResolver:
    """Makes component source trees available under the workspace.

    Attributes:
        workspace: Workspace paths for the current run
        runner: Runs git and tar
        logger: Logger for resolution progress
    """

    def __init__(
            self,
            workspace: WorkspaceContext,
            runner: Optional[CommandRunner] = None,
            http_client: Optional[httpx.Client] = None,
            download_timeout: float = 300.0,
            logger: Optional[Any] = None,
    ) -> None:
        self.workspace = workspace
        self.runner = runner or CommandRunner()
        self.logger = logger or structlog.get_logger("appforge.sources")
        self._http_client = http_client
        self._download_timeout = download_timeout
        self._handlers: Dict[SourceType, Handler] = {
            SourceType.GIT: self._resolve_git,
            SourceType.TARBALL_XZ: self._tarball_handler(SourceType.TARBALL_XZ),
            SourceType.TARBALL_BZ2: self._tarball_handler(SourceType.TARBALL_BZ2),
            SourceType.NONE: self._resolve_none,
        }
        missing = set(SourceType) - set(self._handlers)
        if missing:
            raise TypeError(f"No source handler for: {sorted(m.value for m in missing)}")

    def resolve(
            self, name: str, source_type: str, url: str, branch: Optional[str] = None
    ) -> StepOutcome:
        """Obtain the source tree of ``name``.

        Args:
            name: Component name, also the directory name under the source dir
            source_type: One of the ``SourceType`` values (or an alias)
            url: Repository or archive URL
            branch: Branch to check out after a git clone

        Returns:
            Outcome carrying the status of the last fetch or extract command
        """
        variant = SourceType.parse(source_type)
        if variant is None:
            outcome = StepOutcome.unsupported(
                str(source_type),
                f"You gave me {source_type} -- I have no idea what to do with that.",
            )
            self.logger.error("unsupported source type", component=name, source_type=source_type)
            return outcome

        handler = self._handlers[variant]
        if variant is not SourceType.NONE and self.workspace.has_source(name):
            self.logger.info("source already present", component=name)
            return StepOutcome.success(f"{name} already resolved")

        self.logger.info("resolving source", component=name, source_type=variant.value, url=url)
        return handler(name, url, branch)

    def _resolve_none(self, name: str, url: str, branch: Optional[str]) -> StepOutcome:
        self.logger.info("no sources configured", component=name)
        return StepOutcome.no_op("No sources configured")

    def _resolve_git(self, name: str, url: str, branch: Optional[str]) -> StepOutcome:
        target = self.workspace.component_dir(name)
        self.workspace.source_dir.mkdir(parents=True, exist_ok=True)

        status = self.runner.run(
            f"git clone {shlex.quote(url)} {shlex.quote(str(target))}",
            cwd=self.workspace.source_dir,
        )
        if status == 0 and branch and branch != DEFAULT_BRANCH:
            status = self.runner.run(f"git checkout {shlex.quote(branch)}", cwd=target)

        return StepOutcome.from_status(status, ResultKind.FETCH_FAILURE, f"git fetch of {name}")

    def _tarball_handler(self, variant: SourceType) -> Handler:
        tarball = TARBALL_FORMATS[variant]

        def handler(name: str, url: str, branch: Optional[str]) -> StepOutcome:
            return self._resolve_tarball(name, url, tarball)

        return handler

    def _resolve_tarball(self, name: str, url: str, tarball: TarballFormat) -> StepOutcome:
        self.workspace.source_dir.mkdir(parents=True, exist_ok=True)
        archive = self.workspace.source_dir / f"{name}{tarball.suffix}"

        try:
            self._download(url, archive)
        except (httpx.HTTPError, OSError) as e:
            self.logger.error("download failed", component=name, url=url, error=str(e))
            archive.unlink(missing_ok=True)
            return StepOutcome(FAILURE, ResultKind.FETCH_FAILURE, f"Download of {url} failed: {e}")

        status = self.runner.run(
            f"tar {tarball.tar_flags} {shlex.quote(archive.name)}",
            cwd=self.workspace.source_dir,
        )
        return StepOutcome.from_status(status, ResultKind.FETCH_FAILURE, f"extraction of {archive.name}")

    def _download(self, url: str, destination: pathlib.Path) -> None:
        if self._http_client is not None:
            self._stream_to_file(self._http_client, url, destination)
            return

        with httpx.Client(follow_redirects=True, timeout=self._download_timeout) as client:
            self._stream_to_file(client, url, destination)

    def _stream_to_file(self, client: httpx.Client, url: str, destination: pathlib.Path) -> None:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)
        self.logger.info("downloaded archive", url=url, path=str(destination))
