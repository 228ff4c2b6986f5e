"""TOML reading utilities.

Uses tomlkit to read pyproject.toml files: package names and versions,
dependency strings, workspace members and the [tool.wheel-cascade] config.
Writing manifests is line-based and lives in manifest.py.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name
from pydantic import BaseModel, ConfigDict, Field

from .errors import WheelCascadeError

CONFIG_TABLE = "wheel-cascade"


def load_pyproject(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a pyproject.toml file."""
    return tomlkit.parse(path.read_text())


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Extract the canonical package name from [project].name.

    Falls back to [tool.poetry].name, then to ``fallback``. Names are
    normalized per PEP 503 (lowercase, hyphens instead of underscores) for
    consistent comparison.
    """
    name = doc.get("project", {}).get("name")
    if name is None:
        name = doc.get("tool", {}).get("poetry", {}).get("name", fallback)
    return canonicalize_name(str(name))


def get_project_version(doc: tomlkit.TOMLDocument) -> str:
    """Extract version from [project].version, defaulting to '0.0.0'."""
    version = doc.get("project", {}).get("version")
    if version is None:
        version = doc.get("tool", {}).get("poetry", {}).get("version", "0.0.0")
    return str(version)


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[str]:
    """Collect all PEP 508 dependency strings from a pyproject.toml.

    Gathers dependencies from three locations:
    - [project].dependencies (main runtime deps)
    - [project].optional-dependencies.* (extras like [dev], [test])
    - [dependency-groups].* (PEP 735 dependency groups)

    Returns raw PEP 508 strings like "requests>=2.0" or "pkg[extra]~=1.0".
    Include-group tables in [dependency-groups] are skipped.
    """
    project = doc.get("project", {})
    deps: list[str] = [str(d) for d in project.get("dependencies", [])]
    for group_deps in project.get("optional-dependencies", {}).values():
        deps.extend(str(d) for d in group_deps)
    for group_deps in doc.get("dependency-groups", {}).values():
        deps.extend(str(d) for d in group_deps if isinstance(d, str))
    return deps


def get_poetry_dependencies(doc: tomlkit.TOMLDocument) -> dict[str, str]:
    """Collect key-form dependencies from [tool.poetry] tables.

    Reads [tool.poetry.dependencies] and [tool.poetry.group.*.dependencies].
    Values are either a version string or an inline table with a "version"
    key; the returned map holds the version text ("" when absent).
    """
    poetry = doc.get("tool", {}).get("poetry", {})
    tables: list[Any] = [poetry.get("dependencies", {})]
    for group in poetry.get("group", {}).values():
        tables.append(group.get("dependencies", {}))

    deps: dict[str, str] = {}
    for table in tables:
        for name, value in table.items():
            if isinstance(value, str):
                deps[name] = value
            elif isinstance(value, dict):
                deps[name] = str(value.get("version", ""))
    return deps


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract workspace member glob patterns from [tool.uv.workspace].

    These patterns (e.g., "packages/*", "libs/*") define which directories
    contain workspace packages.

    Raises:
        WheelCascadeError: If no workspace members are defined.
    """
    members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
    if not members:
        raise WheelCascadeError(
            "No [tool.uv.workspace] members defined in root pyproject.toml"
        )
    return [str(m) for m in members]


class ReleaseConfig(BaseModel):
    """Settings from [tool.wheel-cascade] in the workspace root.

    Attributes:
        cache_dir: Directory of the isolated workspace copy used for tests
                   and publishing. Relative paths resolve from the root.
        remote: Git remote that receives the release branch and tag.
        publish_url: Upload URL passed to ``uv publish``; None uses PyPI.
        test_command: Command run through ``uv run`` to test a package.
                      "{path}" is replaced with the package directory.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cache_dir: str | None = Field(default=None, alias="cache-dir")
    remote: str = "origin"
    publish_url: str | None = Field(default=None, alias="publish-url")
    test_command: list[str] = Field(
        default_factory=lambda: ["pytest", "{path}"], alias="test-command"
    )

    def resolve_cache_dir(self, root: Path) -> Path:
        if self.cache_dir is None:
            return root.parent / f"{root.name}-cache"
        path = Path(self.cache_dir)
        return path if path.is_absolute() else root / path


def load_config(root: Path) -> ReleaseConfig:
    """Read [tool.wheel-cascade] from the workspace root pyproject.toml."""
    pyproject = root / "pyproject.toml"
    if not pyproject.exists():
        return ReleaseConfig()
    doc = load_pyproject(pyproject)
    table = doc.get("tool", {}).get(CONFIG_TABLE, {})
    return ReleaseConfig.model_validate(table.unwrap() if hasattr(table, "unwrap") else table)
