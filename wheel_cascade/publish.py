"""Dependency-ordered, idempotent publishing of a package and its dependants."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from .build import BuildSystem, PublishStatus
from .errors import PublishFailure
from .graph import DependencyGraph
from .models import Package


def publish_deep(
    name: str,
    graph: DependencyGraph,
    packages: Mapping[str, Package],
    build: BuildSystem,
    workspace_dir: Path,
    published: set[str],
    closure: set[str] | None = None,
    dry_run: bool = False,
    versions: Mapping[str, str] | None = None,
) -> None:
    """Publish ``name``, then every package that depends on it.

    ``published`` is the idempotence set for the run: a name in it is never
    published again, and a name is added before its dependants are visited.
    A version the registry already holds counts as published.

    ``closure`` is the set of packages taking part in this release. A
    dependant with a dependency in the closure that is not yet published is
    skipped for now and reached again once that dependency is done.
    Dependants outside the closure are published as they are.

    ``versions`` maps names to the versions being released, for reporting.

    Raises:
        PublishFailure: On any failure other than an already published version.
    """
    if name in published:
        return
    package = packages[name]
    version = (versions or {}).get(name, package.version)

    result = build.publish(package, workspace_dir, dry_run)
    if result.status is PublishStatus.FAILED:
        raise PublishFailure(name, result.output.strip() or "publish failed")
    if result.status is PublishStatus.ALREADY_PUBLISHED:
        print(f"  {name} {version} already published")
    else:
        print(f"  ✓ Published {name} {version}")
    published.add(name)

    closure = closure if closure is not None else {name}
    for dependant in graph.dependants.get(name, []):
        waiting = [
            dep
            for dep in graph.dependencies.get(dependant, [])
            if dep in closure and dep not in published
        ]
        if waiting:
            continue
        publish_deep(
            dependant, graph, packages, build, workspace_dir, published, closure, dry_run,
            versions,
        )
