"""Subprocess execution for build and integration commands.

Commands are opaque shell strings taken from recipes, so they run through
``/bin/bash -c``. Output is streamed line by line to the logger at debug level
and the exit status is returned untouched. Output that is not valid UTF-8 is
decoded with replacement characters.
"""

from __future__ import annotations

import pathlib
import subprocess
from typing import Any, Dict, Optional, Tuple, Union

import structlog

PathLike = Union[str, pathlib.Path]


class CommandRunner:
    """Runs shell commands and reports their exit status.

    Attributes:
        shell: Shell binary used to interpret commands
        logger: Logger receiving command lines and streamed output
    """

    def __init__(self, shell: str = "/bin/bash", logger: Optional[Any] = None) -> None:
        self.shell = shell
        self.logger = logger or structlog.get_logger("appforge.runner")

    def run(
            self,
            command: str,
            cwd: Optional[PathLike] = None,
            env: Optional[Dict[str, str]] = None,
    ) -> int:
        """Run a command to completion.

        Args:
            command: Shell command line
            cwd: Working directory, the current one when omitted
            env: Full environment for the child process

        Returns:
            Exit status of the command
        """
        self.logger.info("running command", command=command, cwd=str(cwd) if cwd else None)

        process = subprocess.Popen(
            [self.shell, "-c", command],
            cwd=str(cwd) if cwd else None,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )

        with process.stdout:
            for line in process.stdout:
                self.logger.debug(line.rstrip(), command=command)

        process.wait()

        if process.returncode != 0:
            self.logger.warning("command failed", command=command, status=process.returncode)
        return process.returncode

    def capture(
            self,
            command: str,
            cwd: Optional[PathLike] = None,
            env: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, str]:
        """Run a command and capture its standard output.

        Returns:
            Tuple of exit status and stripped standard output
        """
        self.logger.debug("capturing command", command=command, cwd=str(cwd) if cwd else None)
        completed = subprocess.run(
            [self.shell, "-c", command],
            cwd=str(cwd) if cwd else None,
            env=env,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
        if completed.stderr:
            self.logger.debug(completed.stderr.strip(), command=command)
        return completed.returncode, completed.stdout.strip()
