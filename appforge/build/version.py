"""Version derivation from the main project's git metadata."""

from __future__ import annotations

import pathlib
import re
from typing import Optional, Tuple

from appforge.build.runner import CommandRunner

DEFAULT_TAG_PREFIX = "release-"

# "-<commits since tag>-g<abbreviated sha>" as appended by git describe
_DESCRIBE_SUFFIX = re.compile(r"-\d+-g[0-9a-fA-F]+$")
_DIRTY_SUFFIX = re.compile(r"-dirty$")


def normalize_version(tag: str, prefix: str = DEFAULT_TAG_PREFIX) -> str:
    """Turn ``git describe`` output into a plain version string.

    >>> normalize_version("release-5.2.1-3-gabc1234")
    '5.2.1'
    """
    version = tag.strip()
    if prefix and version.startswith(prefix):
        version = version[len(prefix):]
    version = _DIRTY_SUFFIX.sub("", version)
    return _DESCRIBE_SUFFIX.sub("", version)


def describe_version(
        runner: CommandRunner,
        source_dir: pathlib.Path,
        prefix: str = DEFAULT_TAG_PREFIX,
) -> Tuple[int, Optional[str]]:
    """Run ``git describe`` in ``source_dir`` and normalize the result.

    Returns:
        Exit status of git and the normalized version (None on failure)
    """
    status, output = runner.capture("git describe --tags", cwd=source_dir)
    if status != 0 or not output:
        return status, None
    return status, normalize_version(output.splitlines()[0], prefix)
