"""Verification on the isolated workspace copy.

The release under preparation is reproduced in the cache clone (changed
files plus preview manifests) and tested there, so the operator's working
tree is never built or tested in a half-released state.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from .build import BuildSystem
from .git import GitRepository
from .manifest import ManifestPair
from .models import Package
from .shell import step
from .transaction import copy, remove


def materialize(
    repo: GitRepository,
    cache: GitRepository,
    packages: Iterable[Package],
    manifests: Iterable[tuple[ManifestPair, str]],
) -> None:
    """Reproduce the release in the cache clone.

    Args:
        repo: The operator's repository.
        cache: The isolated clone.
        packages: Packages whose working-tree changes are part of the release.
        manifests: (manifest, "head" | "index") previews to install as the
                   cache's canonical manifests.
    """
    for pkg in packages:
        if pkg.diff is None:
            continue
        for path in pkg.diff.changed_files:
            copy(repo.workdir / path, cache.workdir / path)
        for path in pkg.diff.deleted_files:
            target = cache.workdir / path
            if target.exists():
                remove(target)
    for manifest, kind in manifests:
        copy(manifest.preview(kind), cache.workdir / manifest.rel_path)


def verify(
    packages: Iterable[Package], build: BuildSystem, workspace_dir: Path
) -> str | None:
    """Run tests of each package in the cached workspace.

    Returns:
        Name of the first package whose tests failed, or None if all passed.
    """
    step("Testing on isolated workspace")
    for pkg in packages:
        if not build.run_tests(pkg, workspace_dir):
            print(f"  ✗ Tests failed for {pkg.name}")
            return pkg.name
        print(f"  ✓ {pkg.name}")
    return None
