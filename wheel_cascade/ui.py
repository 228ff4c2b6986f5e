"""Operator capability: every interactive decision of a release.

The orchestrator asks through the Operator protocol only. ClickOperator
prompts on the terminal; tests script the answers.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import click

from .messages import HEADER_MAX, HEADER_MIN, valid_header
from .models import Package
from .versions import Update, bump_version


class Operator(Protocol):
    def select_package(self, candidates: Sequence[Package]) -> Package | None: ...

    def select_update(self, package: Package) -> Update | None: ...

    def select_subset(
        self, prompt: str, candidates: Sequence[Package], default: bool = True
    ) -> list[Package]: ...

    def confirm(self, prompt: str, default: bool = False) -> bool: ...

    def prompt_header(self, prompt: str) -> str: ...

    def prompt_text(self, prompt: str) -> str: ...

    def show_diff(self, package: Package, text: str) -> None: ...


def diff_summary(package: Package) -> str:
    diff = package.diff
    if diff is None:
        return package.name
    return (
        f"{package.name} ("
        f"{click.style(f'{diff.files_changed} files changed', fg='bright_blue')}, "
        f"{click.style(f'{diff.insertions} insertions', fg='green')}, "
        f"{click.style(f'{diff.deletions} deletions', fg='red')})"
    )


def package_label(package: Package) -> str:
    """Changed packages in red with their changed dependencies, others in yellow."""
    if not package.is_changed:
        return click.style(package.name, fg="yellow")
    label = click.style(package.name, fg="red")
    changed = [dep.name for dep in package.dependencies if dep.changed]
    return f"{label} (changed: {', '.join(changed)})" if changed else label


def update_choices(version: str) -> list[str]:
    choices = []
    for update in Update:
        if update.bump is None:
            choices.append(f"{update.value} v{version}")
        else:
            new = bump_version(version, update.bump)
            choices.append(
                f"{update.value} v{version} -> v{click.style(new, fg='yellow')}"
            )
    return choices


def _parse_indexes(text: str, count: int) -> list[int] | None:
    indexes: list[int] = []
    for part in text.replace(",", " ").split():
        if not part.isdigit() or not 1 <= int(part) <= count:
            return None
        if int(part) - 1 not in indexes:
            indexes.append(int(part) - 1)
    return indexes


class ClickOperator:
    """Terminal prompts through click. An empty answer selects nothing."""

    def _select_one(self, prompt: str, items: Sequence[str]) -> int | None:
        click.echo(f"{prompt}:")
        for i, item in enumerate(items, 1):
            click.echo(f"  {i}) {item}")
        while True:
            answer = click.prompt("Selection", default="", show_default=False).strip()
            if not answer:
                return None
            indexes = _parse_indexes(answer, len(items))
            if indexes and len(indexes) == 1:
                return indexes[0]
            click.secho(f"Enter a number between 1 and {len(items)}", fg="red")

    def select_package(self, candidates: Sequence[Package]) -> Package | None:
        index = self._select_one(
            "Pick a package to commit", [diff_summary(pkg) for pkg in candidates]
        )
        return None if index is None else candidates[index]

    def select_update(self, package: Package) -> Update | None:
        index = self._select_one(
            f"Select update kind for {package.name}", update_choices(package.version)
        )
        click.echo()
        return None if index is None else list(Update)[index]

    def select_subset(
        self, prompt: str, candidates: Sequence[Package], default: bool = True
    ) -> list[Package]:
        if not candidates:
            return []
        click.echo(f"{prompt}:")
        for i, pkg in enumerate(candidates, 1):
            click.echo(f"  {i}) {package_label(pkg)}")
        default_answer = "all" if default else ""
        while True:
            answer = click.prompt(
                "Numbers separated by spaces, 'all' or empty for none",
                default=default_answer,
                show_default=bool(default_answer),
            ).strip()
            if answer == "all":
                return list(candidates)
            if not answer:
                return []
            indexes = _parse_indexes(answer, len(candidates))
            if indexes is not None:
                return [candidates[i] for i in indexes]
            click.secho(f"Enter numbers between 1 and {len(candidates)}", fg="red")

    def confirm(self, prompt: str, default: bool = False) -> bool:
        return click.confirm(prompt, default=default)

    def prompt_header(self, prompt: str) -> str:
        def validate(text: str) -> str:
            text = text.strip()
            if not valid_header(text):
                raise click.BadParameter(
                    f"{prompt} must be {HEADER_MIN} to {HEADER_MAX} characters long."
                )
            return text

        return click.prompt(prompt, value_proc=validate)

    def prompt_text(self, prompt: str) -> str:
        """Read lines until two consecutive empty lines."""
        click.echo(f"{prompt} (finish with two empty lines):")
        lines: list[str] = []
        last_empty = False
        while True:
            line = click.get_text_stream("stdin").readline()
            if not line:
                break
            line = line.rstrip("\r\n")
            if not line.strip():
                if last_empty:
                    break
                last_empty = True
            else:
                last_empty = False
            lines.append(line.rstrip())
        return "\n".join(lines).strip("\n")

    def show_diff(self, package: Package, text: str) -> None:
        click.echo_via_pager(f"{diff_summary(package)}\n\n{text}\n")
