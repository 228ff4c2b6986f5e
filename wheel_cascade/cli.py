"""CLI entry point for wheel-cascade."""

from __future__ import annotations

from pathlib import Path

import click

from wheel_cascade.build import UvBuildSystem
from wheel_cascade.errors import WheelCascadeError
from wheel_cascade.pipeline import ReleaseOptions, recover, run_release, update_paths
from wheel_cascade.toml import load_config
from wheel_cascade.ui import ClickOperator


@click.group()
@click.version_option(package_name="wheel-cascade")
@click.option(
    "--directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Workspace root directory.",
)
@click.option(
    "-c",
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Isolated workspace copy used for tests and publishing.",
)
@click.option("-r", "--remote", default=None, help="Git remote to push to.")
@click.pass_context
def cli(ctx: click.Context, directory: Path, cache_dir: Path | None, remote: str | None) -> None:
    """Release a package of a uv workspace together with its dependants."""
    root = directory.resolve()
    if not (root / "pyproject.toml").exists():
        raise click.ClickException(f"No pyproject.toml found in {root}.")
    config = load_config(root)
    if cache_dir is not None:
        config.cache_dir = str(cache_dir.resolve())
    if remote is not None:
        config.remote = remote
    ctx.obj = {"root": root, "config": config}


def _release(ctx: click.Context, skip_tests: bool, no_publish: bool, dry_run: bool) -> None:
    root: Path = ctx.obj["root"]
    config = ctx.obj["config"]
    build = UvBuildSystem(test_command=config.test_command, publish_url=config.publish_url)
    options = ReleaseOptions(
        skip_tests=skip_tests, no_publish=no_publish, dry_run=dry_run, remote=config.remote
    )
    try:
        run_release(root, config.resolve_cache_dir(root), build, ClickOperator(), options)
    except WheelCascadeError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.option("--skip-tests", is_flag=True, help="Skip package tests.")
@click.option("--no-publish", is_flag=True, help="Don't publish packages.")
@click.option("--dry-run", is_flag=True, help="Publish dry run, nothing pushed.")
@click.pass_context
def release(ctx: click.Context, skip_tests: bool, no_publish: bool, dry_run: bool) -> None:
    """Release a changed package."""
    _release(ctx, skip_tests, no_publish, dry_run)


@cli.command("release-test")
@click.pass_context
def release_test(ctx: click.Context) -> None:
    """Walk through a release without testing, publishing or pushing."""
    _release(ctx, skip_tests=True, no_publish=True, dry_run=True)


@cli.command("update-paths")
@click.option("--dry-run", is_flag=True, help="Save results to preview files only.")
@click.option(
    "-f", "--force-deps", is_flag=True, help="Rewrite versions already recorded."
)
@click.option(
    "-d",
    "--dep",
    "deps",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Root of another workspace (e.g. a git submodule) to link against.",
)
@click.pass_context
def update_paths_cmd(
    ctx: click.Context, dry_run: bool, force_deps: bool, deps: tuple[Path, ...]
) -> None:
    """Point workspace dependencies at their local paths."""
    try:
        update_paths(ctx.obj["root"], dry_run=dry_run, force=force_deps, dependencies=deps)
    except WheelCascadeError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("recover")
@click.pass_context
def recover_cmd(ctx: click.Context) -> None:
    """Restore manifests left behind by an interrupted release."""
    try:
        restored = recover(ctx.obj["root"])
    except WheelCascadeError as exc:
        raise click.ClickException(str(exc)) from exc
    if not restored:
        click.echo("Nothing to recover")
