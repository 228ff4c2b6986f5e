"""Requirements declared by a manifest, and exact pins for overrides."""

from __future__ import annotations

import tomlkit
from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from .toml import get_all_dependency_strings, get_poetry_dependencies


def pin_dep(dep_str: str, version: str) -> str:
    """Turn a requirement into an exact ``==`` pin on ``version``.

    Used for [tool.uv].override-dependencies entries, so markers and the
    original specifier are dropped. Extras survive, in sorted order.

        pin_dep("pkg[z,a]>=1.0", "1.5.0") → "pkg[a,z]==1.5.0"
    """
    req = Requirement(dep_str)
    extras = ",".join(sorted(req.extras))
    return f"{req.name}[{extras}]=={version}" if extras else f"{req.name}=={version}"


def collect_requirements(doc: tomlkit.TOMLDocument) -> list[tuple[str, str]]:
    """List every requirement declared by a manifest.

    Combines PEP 508 strings (project dependencies, extras, dependency
    groups) with key-form Poetry dependencies. Each entry is
    (canonical name, requested version text); the first declaration of a
    name wins.
    """
    found: dict[str, str] = {}
    for dep_str in get_all_dependency_strings(doc):
        req = Requirement(dep_str)
        found.setdefault(canonicalize_name(req.name), str(req.specifier))
    for raw_name, version in get_poetry_dependencies(doc).items():
        found.setdefault(canonicalize_name(raw_name), version)
    return list(found.items())
