"""Subprocess wrappers for git and the uv toolchain, and the phase header.

Every git call in wheel-cascade goes through git() or git_bytes(); a failing
command surfaces as RepositoryError.
"""

from __future__ import annotations

import subprocess
from collections.abc import Mapping
from pathlib import Path

from .errors import RepositoryError


def git(
    *args: str,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        cwd: Repository directory to run in. Defaults to the current directory.
        env: Full environment for the git process (e.g., with GIT_INDEX_FILE).
        check: If True (default), raise RepositoryError on non-zero exit.
               Set to False for commands that may legitimately fail.

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=dict(env) if env is not None else None,
        capture_output=True,
        text=True,
    )
    if check and result.returncode != 0:
        raise RepositoryError(
            f"git {' '.join(args)} failed: {result.stderr.strip() or result.stdout.strip()}"
        )
    return result.stdout.strip()


def git_bytes(*args: str, cwd: Path | str | None = None) -> bytes | None:
    """Run a git command and return raw stdout, or None on non-zero exit.

    Used where content must survive byte-for-byte (e.g., `git show`).
    """
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True)
    if result.returncode != 0:
        return None
    return result.stdout


def run(
    *args: str,
    cwd: Path | str | None = None,
    capture: bool = False,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run an arbitrary shell command.

    Unlike git(), output streams directly to the terminal by default so users
    can see test and build progress. Pass capture=True when the caller needs
    to inspect the output (e.g., to classify a publish failure).

    Args:
        *args: Command and arguments (e.g., "uv", "build", "--package", "pkg").
        cwd: Directory to run in.
        capture: If True, capture stdout/stderr as text.
        check: If True (default), raise on non-zero exit.

    Returns:
        CompletedProcess with returncode for checking success.
    """
    return subprocess.run(args, cwd=cwd, capture_output=capture, text=True, check=check)


def step(msg: str) -> None:
    """Print a ruled header announcing a release phase."""
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")

