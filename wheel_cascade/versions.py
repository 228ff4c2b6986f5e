"""Version parsing, bumping and the dependant bump policy.

Handles conversion between version strings and semver objects, with
special handling for incomplete version strings (e.g., "1.0" → "1.0.0"),
and decides how far each dependant moves when a package is released.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum, IntEnum

import semver

from .models import Package, VersionBump


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3" → "1.2.3"

    Only the first 3 components are used (major.minor.patch).
    Prerelease/build metadata is not supported.
    """
    parts = version_str.split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]))


class Bump(IntEnum):
    """Kind of a semver bump, totally ordered."""

    CHORE = 0
    PATCH = 1
    MINOR = 2
    MAJOR = 3

    def __str__(self) -> str:
        return self.name.lower()


def bump_version(version_str: str, bump: Bump) -> str:
    """Apply a bump and return the new version as a string.

    Examples:
        bump_version("1.2.3", Bump.PATCH) → "1.2.4"
        bump_version("1.2.3", Bump.MINOR) → "1.3.0"
        bump_version("1.0", Bump.MAJOR) → "2.0.0"
        bump_version("1.2.3", Bump.CHORE) → "1.2.3"
    """
    version = parse_version(version_str)
    if bump is Bump.PATCH:
        version = version.bump_patch()
    elif bump is Bump.MINOR:
        version = version.bump_minor()
    elif bump is Bump.MAJOR:
        version = version.bump_major()
    else:
        # A chore keeps the version exactly as written
        return version_str
    return str(version)


def bump_patch(version_str: str) -> str:
    """Increment the patch version and return as a string."""
    return bump_version(version_str, Bump.PATCH)


class Update(str, Enum):
    """Update kind selected by the operator for the released package.

    docs and chore are recorded in the commit history but never change a
    version, so they never cascade to dependants.
    """

    DOCS = "docs"
    CHORE = "chore"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def bump(self) -> Bump | None:
        return _UPDATE_BUMPS.get(self)

    @property
    def commit_type(self) -> str:
        return _COMMIT_TYPES[self]

    @property
    def commit_description(self) -> str:
        return _COMMIT_DESCRIPTIONS[self]

    def apply(self, version_str: str) -> str:
        """Return the version after this update (unchanged for docs/chore)."""
        return bump_version(version_str, self.bump) if self.bump else version_str

    def transition(self, version_str: str) -> str:
        new = self.apply(version_str)
        if new == version_str:
            return f"v{version_str}"
        return f"v{version_str} -> v{new}"


_UPDATE_BUMPS = {
    Update.PATCH: Bump.PATCH,
    Update.MINOR: Bump.MINOR,
    Update.MAJOR: Bump.MAJOR,
}

_COMMIT_TYPES = {
    Update.DOCS: "docs",
    Update.CHORE: "chore",
    Update.PATCH: "fix",
    Update.MINOR: "feat",
    Update.MAJOR: "feat!",
}

_COMMIT_DESCRIPTIONS = {
    Update.DOCS: "documentation update",
    Update.CHORE: "maintenance",
    Update.PATCH: "patch release",
    Update.MINOR: "minor release",
    Update.MAJOR: "major release",
}


def dependant_bump(bump: Bump, changed: bool, in_commit: bool) -> Bump:
    """Effective bump of a dependant when its dependency moves by ``bump``.

    - unchanged dependant: always a patch, whatever the root bump was
    - changed and folded into the release commit: the root bump as is
    - changed but deferred: the root bump, at most minor

    A requested major therefore never lands on work that was not part of
    the reviewed commit.
    """
    if not changed:
        return Bump.PATCH
    if in_commit:
        return bump
    return min(bump, Bump.MINOR)


class BumpPlan:
    """Effective bump and new version of every package touched by a release.

    Each package is resolved exactly once, when the plan is built. Manifest
    rewrites look versions up here instead of recomputing them, so every
    referrer of a package records the same new version.
    """

    def __init__(
        self,
        package: Package,
        update: Update,
        commit_packages: Iterable[Package] = (),
        tree_packages: Iterable[Package] = (),
    ) -> None:
        self.package = package
        self.update = update
        self.commit_names = {pkg.name for pkg in commit_packages}
        self.bumps: dict[str, Bump] = {}
        self.versions: dict[str, VersionBump] = {}

        self.versions[package.name] = VersionBump(
            old=package.version, new=update.apply(package.version)
        )
        bump = update.bump
        if bump is None:
            return
        self.bumps[package.name] = bump
        for pkg in [*commit_packages, *tree_packages]:
            if pkg.name in self.bumps:
                continue
            effective = dependant_bump(bump, pkg.is_changed, pkg.name in self.commit_names)
            self.bumps[pkg.name] = effective
            self.versions[pkg.name] = VersionBump(
                old=pkg.version, new=bump_version(pkg.version, effective)
            )

    @property
    def has_bump(self) -> bool:
        return self.update.bump is not None

    def bump_for(self, name: str) -> Bump | None:
        return self.bumps.get(name)

    def new_version(self, name: str) -> str | None:
        bump = self.versions.get(name)
        return bump.new if bump else None

    def dependants(self) -> list[str]:
        """Names of the bumped dependants, root excluded."""
        return [name for name in self.bumps if name != self.package.name]
