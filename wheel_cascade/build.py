"""Build-system capability: run tests and publish packages with uv.

The orchestrator only sees a pass/fail for tests and a three-way outcome
for publishing. UvBuildSystem is the implementation used by the CLI; tests
substitute a fake.
"""

from __future__ import annotations

import shutil
from enum import Enum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from .models import Package
from .shell import run

ALREADY_PUBLISHED_MARKERS = ("already exists", "already uploaded")


class PublishStatus(str, Enum):
    PUBLISHED = "published"
    ALREADY_PUBLISHED = "already_published"
    FAILED = "failed"


class PublishResult(BaseModel):
    """Outcome of one publish call.

    Attributes:
        status: Whether the version landed, was already there, or failed.
        output: Captured build/upload output, kept for error reports.
    """

    status: PublishStatus
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not PublishStatus.FAILED


def classify_publish_output(returncode: int, output: str) -> PublishStatus:
    """Map an upload's exit code and output onto a PublishStatus.

    A rejected upload whose output says the version already exists counts
    as already published.
    """
    if returncode == 0:
        return PublishStatus.PUBLISHED
    lowered = output.lower()
    if any(marker in lowered for marker in ALREADY_PUBLISHED_MARKERS):
        return PublishStatus.ALREADY_PUBLISHED
    return PublishStatus.FAILED


class BuildSystem(Protocol):
    def run_tests(self, package: Package, workspace_dir: Path) -> bool: ...

    def publish(
        self, package: Package, workspace_dir: Path, dry_run: bool
    ) -> PublishResult: ...


class UvBuildSystem:
    """Runs tests with ``uv run`` and publishes with ``uv build``/``uv publish``.

    Args:
        test_command: Command run inside the package's environment. "{path}"
                      is replaced with the package directory.
        publish_url: Upload endpoint; None uses uv's default (PyPI).
    """

    def __init__(
        self, test_command: list[str] | None = None, publish_url: str | None = None
    ) -> None:
        self.test_command = test_command or ["pytest", "{path}"]
        self.publish_url = publish_url

    def run_tests(self, package: Package, workspace_dir: Path) -> bool:
        command = [arg.replace("{path}", package.path) for arg in self.test_command]
        print(f"  Testing {package.name}: {' '.join(command)}")
        result = run(
            "uv", "run", "--directory", str(workspace_dir), "--package", package.name,
            *command,
            check=False,
        )
        return result.returncode == 0

    def publish(self, package: Package, workspace_dir: Path, dry_run: bool) -> PublishResult:
        out_dir = (workspace_dir / "dist" / package.name).resolve()
        # Files left by an earlier build would be uploaded again
        shutil.rmtree(out_dir, ignore_errors=True)
        result = run(
            "uv", "build", "--directory", str(workspace_dir),
            "--package", package.name, "--out-dir", str(out_dir),
            capture=True, check=False,
        )
        if result.returncode != 0:
            return PublishResult(
                status=PublishStatus.FAILED, output=result.stdout + result.stderr
            )

        files = sorted(str(p) for p in out_dir.iterdir() if p.suffix in (".whl", ".gz"))
        args = ["uv", "publish"]
        if self.publish_url:
            args += ["--publish-url", self.publish_url]
        if dry_run:
            args.append("--dry-run")
        result = run(*args, *files, cwd=workspace_dir, capture=True, check=False)
        output = result.stdout + result.stderr
        return PublishResult(
            status=classify_publish_output(result.returncode, output), output=output
        )
