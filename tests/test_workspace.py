"""Tests for wheel_cascade.workspace."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import PKG_B_PYPROJECT, requires_git

from wheel_cascade.errors import WheelCascadeError
from wheel_cascade.git import GitRepository
from wheel_cascade.workspace import discover_manifests, load_workspace

pytestmark = requires_git


class TestLoadWorkspace:
    def test_discovers_members(self, workspace_repo: Path) -> None:
        ws = load_workspace(workspace_repo, GitRepository.open(workspace_repo))

        assert list(ws.packages) == ["pkg-a", "pkg-b", "pkg-c"]
        assert ws.name == "acme"
        assert ws.version == "1.0.0"
        assert ws.packages["pkg-b"].path == "packages/b"
        assert ws.graph.dependants["pkg-a"] == ["pkg-b"]
        assert ws.graph.dependants["pkg-b"] == ["pkg-c"]
        assert ws.changed_packages() == []

    def test_changed_flags_come_from_diffs(self, workspace_repo: Path) -> None:
        (workspace_repo / "packages/a/pkg_a/__init__.py").write_text("VALUE = 2\n")

        ws = load_workspace(workspace_repo, GitRepository.open(workspace_repo))

        assert [p.name for p in ws.changed_packages()] == ["pkg-a"]
        b = ws.packages["pkg-b"]
        assert b.has_changed_deps
        assert b.dependencies[0].requirement == ">=1.0.0"
        external = ws.packages["pkg-a"].dependencies[0]
        assert external.name == "requests"
        assert not external.is_member

    def test_duplicate_names(self, workspace_repo: Path) -> None:
        dup = workspace_repo / "packages" / "b2"
        dup.mkdir()
        (dup / "pyproject.toml").write_text(PKG_B_PYPROJECT)
        with pytest.raises(WheelCascadeError, match="pkg-b is defined in both"):
            load_workspace(workspace_repo, GitRepository.open(workspace_repo))

    def test_load_manifest_pair(self, workspace_repo: Path) -> None:
        manifest = workspace_repo / "packages/b/pyproject.toml"
        manifest.write_text(PKG_B_PYPROJECT + '\n[tool.pytest.ini_options]\naddopts = "-q"\n')
        ws = load_workspace(workspace_repo, GitRepository.open(workspace_repo))

        pair = ws.load_manifest("pkg-b")

        assert pair.rel_path == "packages/b/pyproject.toml"
        assert pair.head.content() == PKG_B_PYPROJECT
        assert "addopts" in pair.index.content()

    def test_workspace_manifest_pair(self, workspace_repo: Path) -> None:
        ws = load_workspace(workspace_repo, GitRepository.open(workspace_repo))
        pair = ws.load_manifest()
        assert pair.name is None
        assert pair.rel_path == "pyproject.toml"
        assert pair.version == "1.0.0"


def test_discover_manifests_finds_backups(workspace_repo: Path) -> None:
    manifest = workspace_repo / "packages/c/pyproject.toml"
    manifest.rename(manifest.parent / "pyproject.backup.toml")

    paths = discover_manifests(workspace_repo)

    assert paths[0] == workspace_repo.resolve() / "pyproject.toml"
    assert workspace_repo.resolve() / "packages/c/pyproject.toml" in paths
    assert len(paths) == 4
