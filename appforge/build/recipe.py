"""Recipe models and loading.

A recipe describes the main project, the dependencies built before it, an
optional framework set and the packaging metadata. Two layouts are accepted:
the normalized one produced by ``Recipe.to_dict`` and the ``metadata.yml``
layout used by existing recipes::

    name: kdenlive
    type: git
    url: https://anongit.kde.org/kdenlive
    buildsystem: cmake
    buildoptions: -DCMAKE_INSTALL_PREFIX:PATH=/app/usr
    packages: [libxml2-dev]
    dependencies:
      - appimage:
          depname: appimage
          source: {type: none, url: ""}
          build: {buildsystem: custom, buildoptions: ""}
    frameworks:
      build_kf5: false
      frameworks: []
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from appforge.utils.exceptions import RecipeError

PACKAGING_TOOL = "appimage"

_MAIN_SOURCE_KEYS = ("type", "url", "branch", "buildsystem", "build_system", "buildoptions", "build_options")


class SourceSpec(BaseModel):
    """Where a component's source comes from."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = "none"
    url: str = ""
    branch: Optional[str] = None

    @field_validator("url", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class BuildSpec(BaseModel):
    """How a component is built."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    build_system: str = Field("custom", validation_alias=AliasChoices("build_system", "buildsystem"))
    build_options: str = Field("", validation_alias=AliasChoices("build_options", "buildoptions"))

    @field_validator("build_options", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else str(v)


class MainSource(SourceSpec):
    """Source and build settings of the main project."""

    build_system: str = Field("cmake", validation_alias=AliasChoices("build_system", "buildsystem"))
    build_options: str = Field("", validation_alias=AliasChoices("build_options", "buildoptions"))

    @field_validator("build_options", mode="before")
    @classmethod
    def _options_to_str(cls, v: Any) -> Any:
        return "" if v is None else str(v)


class Dependency(BaseModel):
    """One entry of the ordered dependency list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str
    dep_name: str = Field(validation_alias=AliasChoices("dep_name", "depname"))
    source: SourceSpec = Field(default_factory=SourceSpec)
    build: BuildSpec = Field(default_factory=BuildSpec)

    @model_validator(mode="before")
    @classmethod
    def _default_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "key" not in data:
            data = dict(data)
            data["key"] = data.get("dep_name") or data.get("depname")
        return data


class FrameworkSet(BaseModel):
    """Frameworks built from the fixed upstream host."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = Field(False, validation_alias=AliasChoices("enabled", "build_kf5"))
    members: Tuple[str, ...] = Field((), validation_alias=AliasChoices("members", "frameworks"))

    @field_validator("members", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return () if v is None else v


class Recipe(BaseModel):
    """Declarative build plan for one packaging run.

    Attributes:
        name: Main project name, also used for the bundle and artifact names
        main_source: Source and build settings of the main project
        dependencies: Components built first, in list order
        frameworks: Optional framework set built after the dependencies
        packages: OS packages installed before any build
        desktop: Desktop entry basename (defaults to ``name``)
        icon: Icon file name (defaults to ``<name>.png``)
        icon_path: Prefix the icon is copied from, relative to the assembly root
        dep_path: Extra paths copied into the bundle
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    main_source: MainSource
    dependencies: Tuple[Dependency, ...] = ()
    frameworks: FrameworkSet = Field(default_factory=FrameworkSet)
    packages: Tuple[str, ...] = ()
    desktop: Optional[str] = None
    icon: Optional[str] = None
    icon_path: str = Field("", validation_alias=AliasChoices("icon_path", "iconpath"))
    dep_path: Tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _normalize_layout(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        if "main_source" not in data:
            data["main_source"] = {k: data.pop(k) for k in _MAIN_SOURCE_KEYS if k in data}

        dependencies = data.get("dependencies") or []
        data["dependencies"] = [_normalize_dependency(entry) for entry in dependencies]

        packages = data.get("packages")
        if packages is None:
            data["packages"] = ()
        elif isinstance(packages, str):
            data["packages"] = tuple(packages.replace(",", " ").split())

        for key in ("dep_path", "frameworks"):
            if data.get(key) is None:
                data.pop(key, None)
        if data.get("icon_path", data.get("iconpath")) is None:
            data.pop("icon_path", None)
            data.pop("iconpath", None)
        return data

    @property
    def desktop_name(self) -> str:
        return self.desktop or self.name

    @property
    def icon_name(self) -> str:
        return self.icon or f"{self.name}.png"

    def has_packaging_tool(self) -> bool:
        """True when the first dependency is the packaging tool."""
        return bool(self.dependencies) and self.dependencies[0].key == PACKAGING_TOOL

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Recipe:
        """Create a Recipe from a dictionary.

        Raises:
            RecipeError: If the data does not describe a valid recipe
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise RecipeError(f"Invalid recipe: {e}", details={"validation_errors": e.errors()}) from e

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def _normalize_dependency(entry: Any) -> Any:
    """Unwrap ``{key: {depname: ..., ...}}`` entries into flat mappings."""
    if isinstance(entry, dict) and len(entry) == 1:
        (key, value), = entry.items()
        if isinstance(value, dict):
            flattened = dict(value)
            flattened.setdefault("key", key)
            flattened.setdefault("depname", flattened.get("dep_name", key))
            return flattened
    return entry


def load_recipe(path: Union[str, pathlib.Path]) -> Recipe:
    """Load a recipe from a YAML or JSON file.

    Args:
        path: Path to the recipe file

    Returns:
        The validated recipe

    Raises:
        RecipeError: If the file is missing, unparsable or invalid
    """
    recipe_path = pathlib.Path(path)
    if not recipe_path.is_file():
        raise RecipeError(f"Recipe file not found: {recipe_path}", recipe_path=str(recipe_path))

    try:
        content = recipe_path.read_text(encoding="utf-8")
        if recipe_path.suffix.lower() == ".json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (yaml.YAMLError, json.JSONDecodeError, OSError) as e:
        raise RecipeError(
            f"Error parsing recipe {recipe_path}: {e}", recipe_path=str(recipe_path)
        ) from e

    if not isinstance(data, dict):
        raise RecipeError(f"Recipe {recipe_path} must be a mapping", recipe_path=str(recipe_path))

    return Recipe.from_dict(data)


def missing_packaging_tool(recipe: Recipe) -> List[str]:
    """Describe violations of the packaging tool rule, empty when satisfied."""
    if recipe.has_packaging_tool():
        return []
    first = recipe.dependencies[0].key if recipe.dependencies else None
    return [
        f"The first dependency must be {PACKAGING_TOOL!r} and it cannot be omitted "
        f"(found {first!r})"
    ]
