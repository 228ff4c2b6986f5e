"""Workspace discovery.

Reads [tool.uv.workspace].members from the root pyproject.toml, loads
every member's manifest and computes each member's diff exactly once.
"""

from __future__ import annotations

import glob
from pathlib import Path

from .deps import collect_requirements
from .errors import WheelCascadeError
from .git import GitRepository
from .graph import DependencyGraph, build_graph
from .manifest import BACKUP_NAME, MANIFEST_NAME, Manifest, ManifestPair
from .models import Dependency, Diff, Package
from .shell import step
from .toml import (
    get_project_name,
    get_project_version,
    get_workspace_member_globs,
    load_pyproject,
)


class Workspace:
    """Members of a uv workspace, their diffs and their dependency graph.

    Attributes:
        root: Absolute path of the workspace root directory.
        repo: Repository holding the workspace.
        name: Canonical name of the root project, None if it has none.
        version: Workspace version, used for the release tag.
        packages: Map of package name → Package, in discovery order.
        graph: Member-to-member dependency graph.
    """

    def __init__(
        self,
        root: Path,
        repo: GitRepository,
        name: str | None,
        version: str,
        packages: dict[str, Package],
    ) -> None:
        self.root = root
        self.repo = repo
        self.name = name
        self.version = version
        self.packages = packages
        self.graph: DependencyGraph = build_graph(packages.values())

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_NAME

    def find_package(self, name: str) -> Package | None:
        return self.packages.get(name)

    def changed_packages(self) -> list[Package]:
        return [pkg for pkg in self.packages.values() if pkg.is_changed]

    def package_manifest(self, name: str) -> Path:
        return self.root / self.packages[name].manifest_path

    def load_manifest(self, name: str | None = None) -> ManifestPair:
        """Load the head/index pair of a member manifest, or of the workspace's.

        The head variant is the manifest at HEAD. A manifest that was never
        committed starts from its on-disk content.
        """
        if name is None:
            path, version = self.manifest_path, self.version
        else:
            path, version = self.package_manifest(name), self.packages[name].version
        index = Manifest.read(path)
        committed = self.repo.get_contents("HEAD", path)
        head = Manifest(committed.decode("utf-8")) if committed is not None else Manifest(
            index.content()
        )
        return ManifestPair(name, version, path, self.repo.rel_path(path), head, index)


def _member_dirs(root: Path, patterns: list[str]) -> list[Path]:
    dirs: list[Path] = []
    for pattern in patterns:
        for match in sorted(glob.glob(str(root / pattern))):
            path = Path(match)
            if (path / MANIFEST_NAME).exists() and path not in dirs:
                dirs.append(path)
    return dirs


def discover_manifests(root: Path) -> list[Path]:
    """Manifest paths of the workspace root and every member, without loading them.

    Member directories are matched on the manifest or on a leftover backup,
    so a member whose manifest was moved away by a crashed run is found too.
    """
    root = root.resolve()
    source = root / MANIFEST_NAME
    if not source.exists() and (root / BACKUP_NAME).exists():
        source = root / BACKUP_NAME
    patterns = get_workspace_member_globs(load_pyproject(source))
    paths = [root / MANIFEST_NAME]
    for pattern in patterns:
        for match in sorted(glob.glob(str(root / pattern))):
            path = Path(match)
            if (path / MANIFEST_NAME).exists() or (path / BACKUP_NAME).exists():
                paths.append(path / MANIFEST_NAME)
    return list(dict.fromkeys(paths))


def load_workspace(root: Path, repo: GitRepository) -> Workspace:
    """Discover all workspace members with their diffs and dependencies.

    Raises:
        WheelCascadeError: If no members are defined or found, or two
            members share a name.
    """
    step("Discovering workspace packages")

    root = root.resolve()
    root_doc = load_pyproject(root / MANIFEST_NAME)
    member_dirs = _member_dirs(root, get_workspace_member_globs(root_doc))
    if not member_dirs:
        raise WheelCascadeError("No packages found matching workspace members")

    # First pass: names, versions, requirements and diffs
    found: dict[str, tuple[str, str, list[tuple[str, str]], Diff]] = {}
    for d in member_dirs:
        doc = load_pyproject(d / MANIFEST_NAME)
        name = get_project_name(doc, d.name)
        if name in found:
            raise WheelCascadeError(
                f"Package {name} is defined in both {found[name][0]} and {d}"
            )
        rel = d.relative_to(root).as_posix()
        found[name] = (
            rel,
            get_project_version(doc),
            collect_requirements(doc),
            repo.diff(name, repo.rel_path(d)),
        )

    # Second pass: each dependency's changed flag comes from the cached diffs
    packages: dict[str, Package] = {}
    for name, (rel, version, requirements, diff) in found.items():
        dependencies = [
            Dependency(
                name=dep,
                requirement=spec,
                is_member=dep in found,
                changed=dep in found and not found[dep][3].is_empty,
            )
            for dep, spec in requirements
            if dep != name
        ]
        packages[name] = Package(
            name=name, version=version, path=rel, diff=diff, dependencies=dependencies
        )

    for pkg in packages.values():
        members = [dep.name for dep in pkg.member_dependencies]
        deps = f" → [{', '.join(members)}]" if members else ""
        mark = " *" if pkg.is_changed else ""
        print(f"  {pkg.name} {pkg.version} ({pkg.path}){deps}{mark}")

    root_project = root_doc.get("project", {}).get("name")
    return Workspace(
        root,
        repo,
        get_project_name(root_doc, root.name) if root_project else None,
        get_project_version(root_doc),
        packages,
    )
