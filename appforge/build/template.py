"""Rendering of the executable artifact description."""

from __future__ import annotations

import pathlib
import string
from typing import Any, Dict, Mapping, Optional, Union

from appforge.utils.exceptions import ConfigurationError

DEFAULT_TEMPLATE = pathlib.Path(__file__).parent / "templates" / "artifact.sh.tmpl"


def artifact_file_name(name: str, version: str, arch: str, extension: str) -> str:
    return f"{name}-{version}-{arch}.{extension}"


def load_template(path: Optional[Union[str, pathlib.Path]] = None) -> string.Template:
    """Read a template file, the packaged default when ``path`` is None.

    Raises:
        ConfigurationError: If the template file cannot be read
    """
    template_path = pathlib.Path(path) if path else DEFAULT_TEMPLATE
    try:
        return string.Template(template_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read artifact template {template_path}: {e}",
            config_key="artifact.template",
        ) from e


def render_template(template: string.Template, context: Mapping[str, Any]) -> str:
    """Substitute ``${placeholders}`` from ``context``.

    Raises:
        ConfigurationError: If the template references an unknown placeholder
    """
    values: Dict[str, str] = {key: str(value) for key, value in context.items()}
    try:
        return template.substitute(values)
    except (KeyError, ValueError) as e:
        raise ConfigurationError(
            f"Artifact template has an unknown or malformed placeholder: {e}",
            config_key="artifact.template",
        ) from e
