"""Dependency graph utilities.

Builds the two mirrored workspace graphs ("depends on" and "is depended on
by"), collects every transitive dependant of a package, and provides
topological sorting so dependencies are handled before their dependants.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import Package


class DependencyGraph:
    """Two directed graphs over workspace members, mirror images of each other.

    An edge A → B in ``dependencies`` (A depends on B) always comes with the
    edge B → A in ``dependants``. Adjacency lists keep declaration order.
    """

    def __init__(self) -> None:
        self.dependencies: dict[str, list[str]] = {}
        self.dependants: dict[str, list[str]] = {}

    def add(self, name: str) -> None:
        self.dependencies.setdefault(name, [])
        self.dependants.setdefault(name, [])

    def link(self, name: str, dependency: str) -> None:
        if dependency not in self.dependencies[name]:
            self.dependencies[name].append(dependency)
            self.dependants[dependency].append(name)

    def __contains__(self, name: object) -> bool:
        return name in self.dependencies

    def __len__(self) -> int:
        return len(self.dependencies)


def build_graph(packages: Iterable[Package]) -> DependencyGraph:
    """Create the dependency graphs for a set of workspace members.

    Only edges between members are recorded; dependencies on packages
    outside the workspace are omitted entirely.
    """
    members = list(packages)
    graph = DependencyGraph()
    for pkg in members:
        graph.add(pkg.name)
    for pkg in members:
        for dep in pkg.dependencies:
            if dep.name in graph and dep.name != pkg.name:
                graph.link(pkg.name, dep.name)
    return graph


def collect_dependants(graph: DependencyGraph, name: str) -> list[str]:
    """Collect every package that depends on ``name``, directly or transitively.

    Depth-first over the dependants graph. Packages reached through several
    paths (diamonds) appear once, and the visited set also stops the walk on
    a cycle, which the workspace is expected not to have but is not checked
    here. The root itself is never part of the result.

    Returns:
        Dependant names in discovery order.
    """
    visited: set[str] = {name}
    result: list[str] = []

    def visit(node: str) -> None:
        for dependant in graph.dependants.get(node, []):
            if dependant in visited:
                continue
            visited.add(dependant)
            result.append(dependant)
            visit(dependant)

    visit(name)
    return result


def order_for_display(packages: Iterable[Package]) -> list[Package]:
    """Sort packages for presentation: unchanged first, then changed.

    Alphabetical within each group. Purely cosmetic.
    """
    return sorted(packages, key=lambda pkg: (pkg.is_changed, pkg.name))


def topo_sort(packages: Mapping[str, Package]) -> list[str]:
    """Topologically sort packages by their internal dependencies.

    Uses Kahn's algorithm to produce an order where dependencies come
    before dependants. Packages with no dependencies are sorted
    alphabetically for deterministic output.

    Args:
        packages: Map of package name → Package.

    Returns:
        List of package names (dependencies first).

    Raises:
        RuntimeError: If a dependency cycle is detected.

    Example:
        If A depends on B, and B depends on C:
        topo_sort({A, B, C}) → [C, B, A]
    """
    # Count incoming edges (dependencies) for each package
    in_degree = {n: 0 for n in packages}
    # Track reverse dependencies (who depends on each package)
    reverse_deps: dict[str, list[str]] = {n: [] for n in packages}

    for name, pkg in packages.items():
        seen: set[str] = set()
        for dep in pkg.dependencies:
            # Only count dependencies that are within the packages we're sorting
            if dep.name in packages and dep.name != name and dep.name not in seen:
                seen.add(dep.name)
                in_degree[name] += 1
                reverse_deps[dep.name].append(name)

    queue = sorted(n for n, d in in_degree.items() if d == 0)
    order: list[str] = []

    while queue:
        node = queue.pop(0)
        order.append(node)
        for dependant in sorted(reverse_deps[node]):
            in_degree[dependant] -= 1
            if in_degree[dependant] == 0:
                queue.append(dependant)

    # If we didn't process all packages, there must be a cycle
    if len(order) != len(packages):
        remaining = set(packages) - set(order)
        raise RuntimeError(f"Dependency cycle detected involving: {remaining}")

    return order
