from __future__ import annotations

from pathlib import Path
import tomllib

import agentsync

REPO_ROOT = Path(__file__).resolve().parents[2]
README_PATH = REPO_ROOT / "README.md"
PYPROJECT_PATH = REPO_ROOT / "pyproject.toml"


def load_pyproject() -> dict:
    with PYPROJECT_PATH.open("rb") as handle:
        return tomllib.load(handle)


def test_readme_and_pyproject_descriptions_are_in_sync() -> None:
    pyproject = load_pyproject()
    description = pyproject["project"]["description"]
    readme_text = README_PATH.read_text(encoding="utf-8")

    assert description in readme_text, "README must include the project description from pyproject.toml"


def test_package_version_matches_pyproject() -> None:
    assert agentsync.__version__ == load_pyproject()["project"]["version"]


def test_console_script_points_at_the_cli() -> None:
    scripts = load_pyproject()["project"]["scripts"]

    assert scripts == {"agentsync": "agentsync.cli:main"}
