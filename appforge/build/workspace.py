"""Workspace layout shared by every stage of a pipeline run.

All paths derive from a single root::

    <root>/app          assembly root
    <root>/app/src      one directory per component
    <root>/app/usr      install prefix shared by every build
    <root>/<name>.AppDir
    <root>/out          final artifacts
    <root>/in           helper scripts and rendered descriptions
"""

from __future__ import annotations

import os
import pathlib
import shutil
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from appforge.utils.exceptions import WorkspaceError


@dataclass(frozen=True)
class WorkspaceContext:
    """Explicit holder of the workspace paths for one pipeline run."""

    root: pathlib.Path
    name: str

    @classmethod
    def create(cls, root: Union[str, pathlib.Path], name: str) -> WorkspaceContext:
        return cls(root=pathlib.Path(root), name=name)

    @property
    def app_root(self) -> pathlib.Path:
        return self.root / "app"

    @property
    def source_dir(self) -> pathlib.Path:
        return self.app_root / "src"

    @property
    def install_prefix(self) -> pathlib.Path:
        return self.app_root / "usr"

    @property
    def app_bundle_dir(self) -> pathlib.Path:
        return self.root / f"{self.name}.AppDir"

    @property
    def output_dir(self) -> pathlib.Path:
        return self.root / "out"

    @property
    def input_dir(self) -> pathlib.Path:
        return self.root / "in"

    def component_dir(self, component: str) -> pathlib.Path:
        """Directory holding the source tree of ``component``."""
        return self.source_dir / component

    def has_source(self, component: str) -> bool:
        return self.component_dir(component).is_dir()

    def ensure(self) -> None:
        """Create every workspace directory that does not exist yet.

        Raises:
            WorkspaceError: If a directory cannot be created
        """
        for path in (self.source_dir, self.install_prefix, self.app_bundle_dir, self.output_dir):
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise WorkspaceError(
                    f"Cannot create workspace directory {path}: {e}", path=str(path)
                ) from e

    def clean(self) -> List[pathlib.Path]:
        """Empty the assembly, bundle and output roots.

        Returns:
            The directories that are still not empty afterwards
        """
        targets = (self.app_root, self.app_bundle_dir, self.output_dir)
        for target in targets:
            _empty_directory(target)
        return [target for target in targets if not is_empty(target)]

    def teardown(self) -> List[pathlib.Path]:
        """Empty the assembly and bundle roots, keeping generated artifacts."""
        targets = (self.app_root, self.app_bundle_dir)
        for target in targets:
            _empty_directory(target)
        return [target for target in targets if not is_empty(target)]

    def build_environment(self, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Environment for build commands, with the install prefix searched first."""
        env = dict(os.environ if base is None else base)
        prefix = self.install_prefix
        _prepend(env, "PATH", [prefix / "bin"])
        _prepend(env, "LD_LIBRARY_PATH", [prefix / "lib", prefix / "lib64"])
        _prepend(env, "PKG_CONFIG_PATH", [prefix / "lib" / "pkgconfig", prefix / "share" / "pkgconfig"])
        _prepend(env, "CMAKE_PREFIX_PATH", [prefix])
        return env


def is_empty(path: pathlib.Path) -> bool:
    """True when ``path`` is missing or has no entries."""
    if not path.exists():
        return True
    return not any(path.iterdir())


def _empty_directory(path: pathlib.Path) -> None:
    if not path.exists():
        return
    try:
        for item in path.iterdir():
            if item.is_dir() and not item.is_symlink():
                shutil.rmtree(item)
            else:
                item.unlink()
    except OSError as e:
        raise WorkspaceError(f"Cannot clean {path}: {e}", path=str(path)) from e


def _prepend(env: Dict[str, str], key: str, paths: Iterable[pathlib.Path]) -> None:
    entries = [str(p) for p in paths]
    current = env.get(key)
    if current:
        entries.append(current)
    env[key] = os.pathsep.join(entries)
