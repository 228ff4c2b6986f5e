"""Data models for wheel-cascade.

These Pydantic models represent the core data structures used throughout
the release pipeline. Everything loaded from the workspace is frozen: a
package's diff and its dependencies' changed flags are computed once per
run and never re-queried.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Diff(BaseModel):
    """Change set of a package since its last recorded state.

    Attributes:
        files_changed: Number of files touched, deletions included.
        insertions: Inserted lines across all changed files.
        deletions: Deleted lines across all changed files.
        changed_files: Paths (relative to the repo root) that exist on disk.
        deleted_files: Paths (relative to the repo root) that were removed.
    """

    model_config = ConfigDict(frozen=True)

    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0
    changed_files: list[str] = Field(default_factory=list)
    deleted_files: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.files_changed == 0


class Dependency(BaseModel):
    """A requirement declared by a workspace package.

    Attributes:
        name: Canonical (PEP 503) name of the required package.
        requirement: Requested version text as written in the manifest.
        is_member: True if the required package is a workspace member.
        changed: True if the member's diff is non-empty. Memoized at load.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    requirement: str = ""
    is_member: bool = False
    changed: bool = False


class Package(BaseModel):
    """Metadata for a single package in the workspace.

    Attributes:
        name: Canonical package name, unique within the workspace.
        version: Current version string from pyproject.toml.
        path: Relative path from workspace root to the package directory.
        diff: Cached change set, None when it was never computed.
        dependencies: Every declared requirement, members and externals.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    path: str
    diff: Diff | None = None
    dependencies: list[Dependency] = Field(default_factory=list)

    @property
    def manifest_path(self) -> str:
        return f"{self.path.rstrip('/')}/pyproject.toml" if self.path else "pyproject.toml"

    @property
    def is_changed(self) -> bool:
        return self.diff is not None and not self.diff.is_empty

    @property
    def has_changed_deps(self) -> bool:
        return any(dep.changed for dep in self.dependencies)

    @property
    def member_dependencies(self) -> list[Dependency]:
        return [dep for dep in self.dependencies if dep.is_member]


class VersionBump(BaseModel):
    """Records a version change for a package.

    Used to track what versions were bumped during a release so we can
    rewrite dependant manifests and print a summary.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str
    new: str


class ManifestState(str, Enum):
    """Where a manifest stands in the preview/backup/restore lifecycle.

    CLEAN: the canonical file is the original, no backup exists.
    STAGED: a preview was swapped in as canonical, the original is the backup.
    COMMITTED: the swap was accepted and the backup dropped.
    """

    CLEAN = "clean"
    STAGED = "staged"
    COMMITTED = "committed"
