"""Shared test fixtures."""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from pathlib import Path

import pytest
import tomlkit

from wheel_cascade.build import PublishResult, PublishStatus
from wheel_cascade.models import Dependency, Diff, Package
from wheel_cascade.shell import git
from wheel_cascade.versions import Update

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

WORKSPACE_PYPROJECT = """\
[project]
name = "acme"
version = "1.0.0"

[tool.uv]
override-dependencies = [
    "pkg-a==1.0.0",
]

[tool.uv.workspace]
members = ["packages/*"]
"""

PKG_A_PYPROJECT = """\
[project]
name = "pkg-a"
version = "1.0.0"
dependencies = ["requests>=2.0"]
"""

PKG_B_PYPROJECT = """\
[project]
name = "pkg-b"
version = "1.0.0"
dependencies = [
    "pkg-a>=1.0.0",
]
"""

PKG_C_PYPROJECT = """\
[project]
name = "pkg-c"
version = "1.0.0"
dependencies = [
    "pkg-b>=1.0.0",
]
"""


def make_package(
    name: str,
    version: str = "1.0.0",
    deps: Sequence[str] = (),
    changed: bool = False,
    changed_deps: Sequence[str] = (),
) -> Package:
    """Build a Package with member dependencies on ``deps``."""
    return Package(
        name=name,
        version=version,
        path=f"packages/{name}",
        diff=Diff(files_changed=1, changed_files=[f"packages/{name}/x.py"])
        if changed
        else Diff(),
        dependencies=[
            Dependency(name=d, is_member=True, changed=d in changed_deps) for d in deps
        ],
    )


def init_repo(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    git("init", "-q", cwd=path)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=path)


def commit_all(path: Path, message: str = "init") -> str:
    git("add", "-A", cwd=path)
    git("commit", "-q", "-m", message, cwd=path)
    return git("rev-parse", "HEAD", cwd=path)


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate git from the user's configuration and give it an identity."""
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for role in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{role}_NAME", "Release Bot")
        monkeypatch.setenv(f"GIT_{role}_EMAIL", "release@example.com")


@pytest.fixture
def workspace_repo(tmp_path: Path, git_env: None) -> Path:
    """A committed uv workspace: pkg-c → pkg-b → pkg-a, pushed to a bare origin."""
    root = tmp_path / "ws"
    files = {
        "pyproject.toml": WORKSPACE_PYPROJECT,
        "packages/a/pyproject.toml": PKG_A_PYPROJECT,
        "packages/a/pkg_a/__init__.py": "VALUE = 1\n",
        "packages/b/pyproject.toml": PKG_B_PYPROJECT,
        "packages/b/pkg_b/__init__.py": "from pkg_a import VALUE\n",
        "packages/c/pyproject.toml": PKG_C_PYPROJECT,
        "packages/c/pkg_c/__init__.py": "from pkg_b import VALUE\n",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    init_repo(root)
    commit_all(root)

    origin = tmp_path / "origin.git"
    git("init", "-q", "--bare", str(origin))
    git("remote", "add", "origin", str(origin), cwd=root)
    git("push", "-q", "origin", "main", cwd=root)
    return root


@pytest.fixture
def tmp_pyproject(tmp_path: Path) -> Path:
    """Create a temporary pyproject.toml file."""
    content = """\
[project]
name = "test-package"
version = "1.0.0"
dependencies = [
    "requests>=2.0",
    "internal-dep>=1.0",
]

[project.optional-dependencies]
dev = ["pytest>=8.0", "another-internal>=0.5"]

[dependency-groups]
test = ["pytest>=8.0", "group-internal>=0.1"]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


@pytest.fixture
def sample_toml_doc() -> tomlkit.TOMLDocument:
    """Create a sample TOML document."""
    content = """\
[project]
name = "My_Package"
version = "2.0.0"
dependencies = ["click>=8.0", "pydantic>=2.0"]

[project.optional-dependencies]
dev = ["pytest>=8.0"]

[dependency-groups]
test = ["hypothesis>=6.0", {include-group = "lint"}]

[tool.poetry.dependencies]
python = "^3.10"
legacy-lib = { version = "^1.2", optional = true }

[tool.uv.workspace]
members = ["packages/*", "libs/*"]

[tool.wheel-cascade]
cache-dir = "/tmp/cache"
remote = "upstream"
test-command = ["pytest", "-x", "{path}/tests"]
"""
    return tomlkit.parse(content)


class FakeBuildSystem:
    """Records test and publish calls; outcomes are configurable per package."""

    def __init__(
        self,
        tests_pass: bool = True,
        results: dict[str, PublishStatus] | None = None,
    ) -> None:
        self.tests_pass = tests_pass
        self.results = results or {}
        self.tested: list[str] = []
        self.published: list[str] = []
        self.dry_runs: list[bool] = []

    def run_tests(self, package: Package, workspace_dir: Path) -> bool:
        self.tested.append(package.name)
        return self.tests_pass

    def publish(self, package: Package, workspace_dir: Path, dry_run: bool) -> PublishResult:
        self.published.append(package.name)
        self.dry_runs.append(dry_run)
        status = self.results.get(package.name, PublishStatus.PUBLISHED)
        output = "error: file already exists" if status is PublishStatus.ALREADY_PUBLISHED else ""
        if status is PublishStatus.FAILED:
            output = "403 Forbidden"
        return PublishResult(status=status, output=output)


class ScriptedOperator:
    """Answers every prompt from a fixed script."""

    def __init__(
        self,
        package: str | None = None,
        update: Update | None = None,
        commit: Sequence[str] = (),
        tree: Sequence[str] = (),
        see_diff: bool = False,
        proceed: bool = True,
        header: str = "new api",
        body: str = "",
    ) -> None:
        self.package = package
        self.update = update
        self.commit = set(commit)
        self.tree = set(tree)
        self.see_diff = see_diff
        self.proceed = proceed
        self.header = header
        self.body = body
        self.prompts: list[str] = []
        self.diffs: list[str] = []

    def select_package(self, candidates: Sequence[Package]) -> Package | None:
        return next((p for p in candidates if p.name == self.package), None)

    def select_update(self, package: Package) -> Update | None:
        return self.update

    def select_subset(
        self, prompt: str, candidates: Sequence[Package], default: bool = True
    ) -> list[Package]:
        self.prompts.append(prompt)
        names = self.commit if prompt.startswith("Commit") else self.tree
        return [p for p in candidates if p.name in names]

    def confirm(self, prompt: str, default: bool = False) -> bool:
        self.prompts.append(prompt)
        return self.see_diff if "see git diff" in prompt else self.proceed

    def prompt_header(self, prompt: str) -> str:
        return self.header

    def prompt_text(self, prompt: str) -> str:
        return self.body

    def show_diff(self, package: Package, text: str) -> None:
        self.diffs.append(package.name)


@pytest.fixture
def fake_build() -> FakeBuildSystem:
    return FakeBuildSystem()
