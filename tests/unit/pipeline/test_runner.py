"""Tests for the subprocess runner."""

from __future__ import annotations

import os
from unittest import mock

from appforge.build.executor import BuildExecutor
from appforge.build.results import ResultKind
from appforge.build.runner import CommandRunner


class TestRun:
    """Tests for CommandRunner.run against real shell commands."""

    def test_success(self):
        """A succeeding command reports status 0."""
        assert CommandRunner().run("true") == 0

    def test_status_returned_verbatim(self):
        """Non-zero exit statuses come back unchanged."""
        assert CommandRunner().run("exit 42") == 42

    def test_cwd(self, tmp_path):
        """The command runs inside the given directory."""
        status = CommandRunner().run("touch marker", cwd=tmp_path)

        assert status == 0
        assert (tmp_path / "marker").exists()

    def test_env(self, tmp_path):
        """The given environment replaces the inherited one."""
        env = dict(os.environ, APPFORGE_RUNNER_CHECK="present")

        status = CommandRunner().run('test "$APPFORGE_RUNNER_CHECK" = present', cwd=tmp_path, env=env)

        assert status == 0

    def test_output_streamed_to_logger(self):
        """Each output line, stderr included, reaches the logger."""
        logger = mock.MagicMock()

        CommandRunner(logger=logger).run("echo first; echo second >&2")

        lines = [call.args[0] for call in logger.debug.call_args_list]
        assert lines == ["first", "second"]

    def test_failure_logged(self):
        """A failing command is reported as a warning."""
        logger = mock.MagicMock()

        CommandRunner(logger=logger).run("exit 3")

        logger.warning.assert_called_once_with("command failed", command="exit 3", status=3)

    def test_undecodable_output(self):
        """Output that is not valid UTF-8 does not interrupt the command."""
        logger = mock.MagicMock()

        status = CommandRunner(logger=logger).run(r"printf 'gcc: \xe9rreur\n'; exit 0")

        assert status == 0
        assert logger.debug.call_args_list[0].args[0] == "gcc: �rreur"


class TestCapture:
    """Tests for CommandRunner.capture."""

    def test_stdout_stripped(self, tmp_path):
        """Captured output has surrounding whitespace removed."""
        status, output = CommandRunner().capture("echo '  release-1.0.1  '; echo", cwd=tmp_path)

        assert status == 0
        assert output == "release-1.0.1"

    def test_status_and_stderr(self):
        """The status is returned and stderr is not part of the output."""
        status, output = CommandRunner().capture("echo out; echo err >&2; exit 128")

        assert status == 128
        assert output == "out"

    def test_undecodable_output(self):
        """Invalid bytes in captured output are replaced."""
        status, output = CommandRunner().capture(r"printf 'v\xff1'")

        assert status == 0
        assert output == "v�1"


def test_build_with_undecodable_output(workspace):
    """A build printing invalid UTF-8 still yields an outcome."""
    workspace.component_dir("demo").mkdir(parents=True)
    executor = BuildExecutor(workspace, runner=CommandRunner())

    outcome = executor.build("demo", "custom", r"printf '\xff\n'; true")

    assert outcome.kind is ResultKind.OK
    assert outcome.status == 0
