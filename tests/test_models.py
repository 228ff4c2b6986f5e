"""Tests for wheel_cascade.models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from wheel_cascade.models import Dependency, Diff, ManifestState, Package, VersionBump


class TestDiff:
    def test_empty_by_default(self) -> None:
        assert Diff().is_empty

    def test_deletions_only_is_not_empty(self) -> None:
        diff = Diff(files_changed=1, deleted_files=["pkg/old.py"])
        assert not diff.is_empty

    def test_frozen(self) -> None:
        with pytest.raises(ValidationError):
            Diff().files_changed = 3  # type: ignore[misc]


class TestPackage:
    def test_manifest_path(self) -> None:
        pkg = Package(name="a", version="1.0.0", path="packages/a")
        assert pkg.manifest_path == "packages/a/pyproject.toml"

    def test_manifest_path_at_root(self) -> None:
        assert Package(name="a", version="1.0.0", path="").manifest_path == "pyproject.toml"

    def test_changed_requires_diff(self) -> None:
        assert not Package(name="a", version="1.0.0", path="a").is_changed
        changed = Package(name="a", version="1.0.0", path="a", diff=Diff(files_changed=2))
        assert changed.is_changed

    def test_dependency_flags(self) -> None:
        pkg = Package(
            name="b",
            version="1.0.0",
            path="b",
            dependencies=[
                Dependency(name="a", is_member=True, changed=True),
                Dependency(name="requests", requirement=">=2.0"),
            ],
        )
        assert pkg.has_changed_deps
        assert [d.name for d in pkg.member_dependencies] == ["a"]


def test_version_bump() -> None:
    bump = VersionBump(old="1.0.0", new="1.0.1")
    assert (bump.old, bump.new) == ("1.0.0", "1.0.1")


def test_manifest_states() -> None:
    assert {s.value for s in ManifestState} == {"clean", "staged", "committed"}
