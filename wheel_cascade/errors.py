"""
Exception types used across wheel-cascade.

The orchestrator relies on these classes to decide how a run ends: a
UserAbort is a clean exit, everything else rolls back touched manifests
and surfaces to the operator with a non-zero status.
"""

from __future__ import annotations

from pathlib import Path


class WheelCascadeError(Exception):
    """Base class for all wheel-cascade specific errors."""


class UserAbort(WheelCascadeError):
    """Raised when the operator declines a prompt or selects nothing."""


class VerificationFailure(WheelCascadeError):
    """Raised when tests fail on the isolated workspace copy."""

    def __init__(self, package: str) -> None:
        super().__init__(f"Tests failed for {package}")
        self.package = package


class PublishFailure(WheelCascadeError):
    """Raised when a publish fails for any reason other than an existing version."""

    def __init__(self, package: str, cause: str) -> None:
        super().__init__(f"Failed to publish {package}: {cause}")
        self.package = package
        self.cause = cause


class RepositoryError(WheelCascadeError):
    """Raised when git operations fail (missing HEAD, conflicts, rejected push)."""


class FilesystemError(WheelCascadeError):
    """Raised when a copy, rename or remove fails."""

    def __init__(self, action: str, src: Path, dest: Path | None, cause: str) -> None:
        target = f" to {dest}" if dest is not None else ""
        super().__init__(f"Failed to {action} {src}{target}: {cause}")
        self.src = src
        self.dest = dest
