"""Tests for wheel_cascade.cli."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from wheel_cascade.build import UvBuildSystem
from wheel_cascade.cli import cli
from wheel_cascade.errors import RepositoryError
from wheel_cascade.pipeline import ReleaseOptions
from wheel_cascade.ui import ClickOperator


@pytest.fixture
def root(tmp_path: Path) -> Path:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "acme"\nversion = "1.0.0"\n\n'
        "[tool.wheel-cascade]\n"
        'publish-url = "https://test.pypi.org/legacy/"\n'
        'test-command = ["pytest", "-x", "{path}"]\n'
    )
    return tmp_path


def invoke(root: Path, *args: str):
    return CliRunner().invoke(cli, ["--directory", str(root), *args])


class TestRelease:
    @patch("wheel_cascade.cli.run_release")
    def test_passes_options(self, mock_run: MagicMock, root: Path) -> None:
        result = invoke(root, "--remote", "upstream", "release", "--skip-tests")

        assert result.exit_code == 0, result.output
        args = mock_run.call_args.args
        assert args[0] == root.resolve()
        assert args[1] == root.resolve().parent / f"{root.name}-cache"
        build = args[2]
        assert isinstance(build, UvBuildSystem)
        assert build.test_command == ["pytest", "-x", "{path}"]
        assert build.publish_url == "https://test.pypi.org/legacy/"
        assert isinstance(args[3], ClickOperator)
        assert args[4] == ReleaseOptions(skip_tests=True, remote="upstream")

    @patch("wheel_cascade.cli.run_release")
    def test_cache_dir_override(self, mock_run: MagicMock, root: Path, tmp_path: Path) -> None:
        cache = tmp_path / "elsewhere"
        result = invoke(root, "-c", str(cache), "release")
        assert result.exit_code == 0, result.output
        assert mock_run.call_args.args[1] == cache.resolve()

    @patch("wheel_cascade.cli.run_release")
    def test_release_test_is_fully_dry(self, mock_run: MagicMock, root: Path) -> None:
        result = invoke(root, "release-test")
        assert result.exit_code == 0, result.output
        assert mock_run.call_args.args[4] == ReleaseOptions(
            skip_tests=True, no_publish=True, dry_run=True
        )

    @patch("wheel_cascade.cli.run_release")
    def test_errors_exit_non_zero(self, mock_run: MagicMock, root: Path) -> None:
        mock_run.side_effect = RepositoryError("No commit found at HEAD")
        result = invoke(root, "release")
        assert result.exit_code == 1
        assert "No commit found at HEAD" in result.output


def test_missing_pyproject(tmp_path: Path) -> None:
    result = invoke(tmp_path, "release")
    assert result.exit_code == 1
    assert "No pyproject.toml found" in result.output


@patch("wheel_cascade.cli.update_paths")
def test_update_paths_options(mock_update: MagicMock, root: Path, tmp_path: Path) -> None:
    dep = tmp_path / "vendor"
    dep.mkdir()

    result = invoke(root, "update-paths", "--dry-run", "-f", "-d", str(dep))

    assert result.exit_code == 0, result.output
    mock_update.assert_called_once_with(
        root.resolve(), dry_run=True, force=True, dependencies=(dep,)
    )


class TestRecover:
    @patch("wheel_cascade.cli.recover")
    def test_nothing_to_recover(self, mock_recover: MagicMock, root: Path) -> None:
        mock_recover.return_value = []
        result = invoke(root, "recover")
        assert result.exit_code == 0
        assert "Nothing to recover" in result.output

    @patch("wheel_cascade.cli.recover")
    def test_restored(self, mock_recover: MagicMock, root: Path) -> None:
        mock_recover.return_value = [root / "pyproject.toml"]
        result = invoke(root, "recover")
        assert result.exit_code == 0
        assert "Nothing to recover" not in result.output
