"""Tests for the workspace layout."""

from __future__ import annotations

import os
from unittest import mock

import pytest

from appforge.build.workspace import WorkspaceContext, is_empty
from appforge.utils.exceptions import WorkspaceError


class TestWorkspaceContext:
    """Tests for the WorkspaceContext class."""

    def test_layout(self, tmp_path):
        """Every path derives from the root."""
        ws = WorkspaceContext.create(str(tmp_path), "kdenlive")

        assert ws.app_root == tmp_path / "app"
        assert ws.source_dir == tmp_path / "app" / "src"
        assert ws.install_prefix == tmp_path / "app" / "usr"
        assert ws.app_bundle_dir == tmp_path / "kdenlive.AppDir"
        assert ws.output_dir == tmp_path / "out"
        assert ws.input_dir == tmp_path / "in"
        assert ws.component_dir("cmake") == tmp_path / "app" / "src" / "cmake"

    def test_default_root(self):
        """The conventional layout lives at the filesystem root."""
        ws = WorkspaceContext.create("/", "kdenlive")

        assert str(ws.install_prefix) == "/app/usr"
        assert str(ws.app_bundle_dir) == "/kdenlive.AppDir"

    def test_ensure_and_has_source(self, workspace):
        """ensure creates the directories the stages write to."""
        workspace.ensure()

        assert workspace.source_dir.is_dir()
        assert workspace.install_prefix.is_dir()
        assert workspace.app_bundle_dir.is_dir()
        assert workspace.output_dir.is_dir()
        assert not workspace.has_source("zlib")
        workspace.component_dir("zlib").mkdir()
        assert workspace.has_source("zlib")

    def test_ensure_failure(self, workspace):
        """A directory that cannot be created raises WorkspaceError."""
        with mock.patch("pathlib.Path.mkdir", side_effect=PermissionError("denied")):
            with pytest.raises(WorkspaceError, match="Cannot create workspace directory"):
                workspace.ensure()

    def test_clean(self, workspace):
        """clean empties the assembly, bundle and output roots."""
        workspace.ensure()
        (workspace.component_dir("zlib")).mkdir()
        (workspace.app_bundle_dir / "AppRun").write_text("x")
        (workspace.output_dir / "old.AppImage").write_text("x")
        os.symlink(workspace.output_dir, workspace.app_root / "link")
        (workspace.input_dir).mkdir()
        (workspace.input_dir / "Recipe").write_text("x")

        leftovers = workspace.clean()

        assert leftovers == []
        assert is_empty(workspace.app_root)
        assert is_empty(workspace.app_bundle_dir)
        assert is_empty(workspace.output_dir)
        # The roots themselves and the input dir are kept
        assert workspace.app_root.is_dir()
        assert (workspace.input_dir / "Recipe").is_file()

    def test_clean_missing_directories(self, workspace):
        """Cleaning a workspace that was never created is fine."""
        assert workspace.clean() == []

    def test_teardown_keeps_output(self, workspace):
        """teardown empties the assembly and bundle, keeping the artifact."""
        workspace.ensure()
        (workspace.install_prefix / "bin").mkdir()
        (workspace.output_dir / "demo.AppImage").write_text("x")

        workspace.teardown()

        assert is_empty(workspace.app_root)
        assert (workspace.output_dir / "demo.AppImage").is_file()

    def test_build_environment(self, workspace):
        """The install prefix is searched before inherited paths."""
        env = workspace.build_environment({"PATH": "/usr/bin", "HOME": "/root"})

        assert env["PATH"] == os.pathsep.join([str(workspace.install_prefix / "bin"), "/usr/bin"])
        assert env["LD_LIBRARY_PATH"].startswith(str(workspace.install_prefix / "lib"))
        assert str(workspace.install_prefix / "share" / "pkgconfig") in env["PKG_CONFIG_PATH"]
        assert env["CMAKE_PREFIX_PATH"] == str(workspace.install_prefix)
        assert env["HOME"] == "/root"


def test_is_empty(tmp_path):
    """Missing and empty directories are both empty."""
    assert is_empty(tmp_path / "missing")
    assert is_empty(tmp_path)
    (tmp_path / "file").write_text("x")
    assert not is_empty(tmp_path)
