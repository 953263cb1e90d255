"""Tests for recipe models and loading."""

from __future__ import annotations

import json

import pytest
import yaml
from pydantic import ValidationError

from appforge.build.recipe import Recipe, load_recipe, missing_packaging_tool
from appforge.utils.exceptions import RecipeError

METADATA_YML = """
name: kdenlive
type: git
url: https://anongit.kde.org/kdenlive
branch: release/17.04
buildsystem: cmake
buildoptions: -DCMAKE_INSTALL_PREFIX:PATH=/app/usr .
packages: libxml2-dev, libgl1-mesa-dev
dependencies:
  - appimage:
      depname: appimage
      source:
        type: none
        url: ""
      build:
        buildsystem: custom
        buildoptions: ""
  - cmake:
      depname: cmake
      source:
        type: git
        url: https://github.com/Kitware/CMake
        branch: release
      build:
        buildsystem: bootstrap
        buildoptions: --prefix=/app/usr
frameworks:
  build_kf5: true
  frameworks:
    - extra-cmake-modules
    - phonon
desktop: org.kde.kdenlive
iconpath: usr/share/icons/
dep_path:
  - /usr/lib/x86_64-linux-gnu/gstreamer-1.0
"""


class TestRecipe:
    """Tests for the Recipe model."""

    def test_metadata_layout(self):
        """The flat metadata.yml layout is normalized."""
        recipe = Recipe.from_dict(yaml.safe_load(METADATA_YML))

        assert recipe.name == "kdenlive"
        assert recipe.main_source.type == "git"
        assert recipe.main_source.branch == "release/17.04"
        assert recipe.main_source.build_system == "cmake"
        assert recipe.main_source.build_options == "-DCMAKE_INSTALL_PREFIX:PATH=/app/usr ."
        assert recipe.packages == ("libxml2-dev", "libgl1-mesa-dev")
        assert [d.key for d in recipe.dependencies] == ["appimage", "cmake"]
        assert recipe.dependencies[1].source.branch == "release"
        assert recipe.dependencies[1].build.build_system == "bootstrap"
        assert recipe.frameworks.enabled is True
        assert recipe.frameworks.members == ("extra-cmake-modules", "phonon")
        assert recipe.desktop_name == "org.kde.kdenlive"
        assert recipe.icon_path == "usr/share/icons/"
        assert recipe.dep_path == ("/usr/lib/x86_64-linux-gnu/gstreamer-1.0",)

    def test_defaults(self):
        """Optional sections fall back to empty values."""
        recipe = Recipe.from_dict({"name": "demo", "type": "git", "url": "https://example.org/demo"})

        assert recipe.dependencies == ()
        assert recipe.packages == ()
        assert recipe.frameworks.enabled is False
        assert recipe.main_source.build_system == "cmake"
        assert recipe.desktop_name == "demo"
        assert recipe.icon_name == "demo.png"

    def test_null_sections(self):
        """Explicit nulls in the file are treated as omitted."""
        recipe = Recipe.from_dict(
            {"name": "demo", "type": "git", "url": None, "dependencies": None,
             "packages": None, "frameworks": None, "dep_path": None}
        )

        assert recipe.main_source.url == ""
        assert recipe.dependencies == ()

    def test_round_trip_through_normalized_layout(self):
        """The normalized dictionary loads back into an equal recipe."""
        recipe = Recipe.from_dict(yaml.safe_load(METADATA_YML))

        assert Recipe.from_dict(recipe.to_dict()) == recipe

    def test_frozen(self):
        """Recipes are read-only once loaded."""
        recipe = Recipe.from_dict({"name": "demo", "type": "git", "url": "u"})

        with pytest.raises(ValidationError):
            recipe.name = "other"

    def test_invalid(self):
        """Missing required fields raise RecipeError."""
        with pytest.raises(RecipeError) as excinfo:
            Recipe.from_dict({"type": "git"})

        assert "validation_errors" in excinfo.value.details["details"]

    def test_packaging_tool(self):
        """The packaging tool must be the first dependency."""
        recipe = Recipe.from_dict(yaml.safe_load(METADATA_YML))
        assert recipe.has_packaging_tool()
        assert missing_packaging_tool(recipe) == []

        data = yaml.safe_load(METADATA_YML)
        data["dependencies"].reverse()
        reordered = Recipe.from_dict(data)
        assert not reordered.has_packaging_tool()
        assert "'cmake'" in missing_packaging_tool(reordered)[0]

    def test_packaging_tool_omitted(self):
        """A recipe without dependencies lacks the packaging tool."""
        recipe = Recipe.from_dict({"name": "demo", "type": "git", "url": "u"})

        assert missing_packaging_tool(recipe)


class TestLoadRecipe:
    """Tests for load_recipe."""

    def test_yaml(self, tmp_path):
        """YAML recipes are loaded."""
        path = tmp_path / "metadata.yml"
        path.write_text(METADATA_YML)

        assert load_recipe(path).name == "kdenlive"

    def test_json(self, tmp_path):
        """JSON recipes are loaded."""
        path = tmp_path / "recipe.json"
        path.write_text(json.dumps({"name": "demo", "type": "git", "url": "u"}))

        assert load_recipe(path).name == "demo"

    def test_missing_file(self, tmp_path):
        """A missing file raises RecipeError."""
        with pytest.raises(RecipeError, match="not found"):
            load_recipe(tmp_path / "nope.yml")

    def test_unparsable(self, tmp_path):
        """Broken YAML raises RecipeError."""
        path = tmp_path / "broken.yml"
        path.write_text("name: {demo")

        with pytest.raises(RecipeError, match="Error parsing"):
            load_recipe(path)

    def test_not_a_mapping(self, tmp_path):
        """A recipe must be a mapping."""
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")

        with pytest.raises(RecipeError, match="must be a mapping"):
            load_recipe(path)
