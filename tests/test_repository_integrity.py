"""Repository-level integrity checks."""

from __future__ import annotations

import ast
import re
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
PACKAGES = ("app", "mylists")
CONFLICT_PATTERN = re.compile(r"^(<<<<<<<|=======|>>>>>>>)", re.MULTILINE)
IGNORED_PARTS = {".git", "__pycache__", ".mypy_cache", ".pytest_cache", ".venv"}

# Import name -> distribution name where the two differ.
DISTRIBUTIONS = {"pydantic_settings": "pydantic-settings"}


def _source_files() -> list[Path]:
    files: list[Path] = []
    for package in PACKAGES:
        files.extend(
            path
            for path in (REPO_ROOT / package).rglob("*.py")
            if not any(part in IGNORED_PARTS for part in path.parts)
        )
    return files


def _top_level_imports(path: Path) -> set[str]:
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            names.add(node.module.split(".")[0])
    return names


def _declared_dependencies() -> set[str]:
    text = (REPO_ROOT / "pyproject.toml").read_text(encoding="utf-8")
    block = re.search(r"^dependencies\s*=\s*\[(.*?)^\]", text, re.MULTILINE | re.DOTALL)
    assert block, "pyproject.toml has no dependencies list"
    return {
        re.split(r"[\[<>=!~ ]", entry, maxsplit=1)[0].lower()
        for entry in re.findall(r"\"([^\"]+)\"", block.group(1))
    }


def test_repository_has_no_merge_conflict_markers() -> None:
    """Ensure no files in the repo still contain git conflict markers."""

    offending_files: list[Path] = []

    for path in REPO_ROOT.rglob("*"):
        if not path.is_file():
            continue
        if any(part in IGNORED_PARTS for part in path.parts):
            continue

        contents = path.read_text(encoding="utf-8", errors="ignore")
        if CONFLICT_PATTERN.search(contents):
            offending_files.append(path.relative_to(REPO_ROOT))

    assert not offending_files, (
        "The following files still contain git conflict markers: "
        + ", ".join(str(path) for path in offending_files)
    )


def test_every_third_party_import_is_declared() -> None:
    declared = _declared_dependencies()
    missing: dict[str, str] = {}

    for path in _source_files():
        for name in _top_level_imports(path):
            if name in sys.stdlib_module_names or name in PACKAGES:
                continue
            distribution = DISTRIBUTIONS.get(name, name).lower()
            if distribution not in declared:
                missing[name] = str(path.relative_to(REPO_ROOT))

    assert not missing, f"Imports missing from pyproject.toml dependencies: {missing}"
