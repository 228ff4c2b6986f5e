"""Conventional-commit messages for release commits."""

from __future__ import annotations

from .versions import Update

HEADER_MIN = 3
HEADER_MAX = 22


def commit_scope(name: str) -> str:
    """Scope of a package's release commit: the first "-" becomes "/".

    Examples:
        commit_scope("acme-core") → "acme/core"
        commit_scope("acme-core-io") → "acme/core-io"
    """
    return name.replace("-", "/", 1)


def message(
    name: str,
    version: str,
    update: Update,
    header: str,
    body: str = "",
    is_dep: bool = False,
) -> str:
    """Build a release commit message.

    The root commit is scoped to the released package; the commit that
    carries dependant manifests is scoped to "*".

    Example:
        feat(acme/core): minor release of acme-core v1.2.0 -> v1.3.0 (new api)
    """
    scope = "*" if is_dep else commit_scope(name)
    subject = (
        f"{update.commit_type}({scope}): {update.commit_description} of "
        f"{name} {update.transition(version)} ({header})"
    )
    body = body.strip("\n")
    return f"{subject}\n\n{body}" if body else subject


def valid_header(header: str) -> bool:
    return HEADER_MIN <= len(header.strip()) <= HEADER_MAX
