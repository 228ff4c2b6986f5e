"""Release pipeline: select → preview → stage → verify → publish → commit → push.

This module orchestrates a wheel-cascade release:
1. Pick the changed package to release and the kind of update
2. Collect its transitive dependants and let the operator pick which of
   them join the release commit and which only get their manifests bumped
3. Write every manifest change as preview files, leaving the working tree alone
4. Stage the release commit and swap previews in, keeping backups
5. Test the result on an isolated clone of the workspace
6. Publish the package and its dependants, dependencies first
7. Commit, tag the workspace version and push

Any failure after step 3 restores every manifest that was swapped in. The
remote is only touched in the last step, which dry-run skips.
"""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Iterable
from enum import Enum
from pathlib import Path

import click
from pydantic import BaseModel

from .build import BuildSystem
from .deps import pin_dep
from .errors import UserAbort, VerificationFailure, WheelCascadeError
from .git import CommitBuilder, GitRepository, init_cache_repo
from .graph import collect_dependants, order_for_display, topo_sort
from .manifest import ManifestPair
from .messages import message
from .models import Package
from .publish import publish_deep
from .shell import step
from .transaction import ManifestTransaction, recover_manifests, remove, rename
from .ui import Operator
from .verify import materialize, verify
from .versions import Bump, BumpPlan, Update, bump_version
from .workspace import Workspace, discover_manifests, load_workspace


class ReleaseState(str, Enum):
    IDLE = "idle"
    SELECT_PACKAGE = "select_package"
    SELECT_UPDATE_KIND = "select_update_kind"
    COLLECT_DEPENDANTS = "collect_dependants"
    SELECT_COMMIT_SET = "select_commit_set"
    PREVIEW_MANIFESTS = "preview_manifests"
    STAGE_ROOT_COMMIT = "stage_root_commit"
    VERIFY = "verify"
    VERIFY_FAILED = "verify_failed"
    PUBLISH = "publish"
    STAGE_DEPENDANT_COMMITS = "stage_dependant_commits"
    FINALIZE = "finalize"
    DONE = "done"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


class ReleaseOptions(BaseModel):
    """Switches of one release run.

    Attributes:
        skip_tests: Do not run tests on the isolated copy.
        no_publish: Do not publish anything.
        dry_run: Build commits without moving refs, publish with --dry-run,
                 never push, and restore the working tree at the end.
        remote: Remote receiving the branch and the release tag.
    """

    skip_tests: bool = False
    no_publish: bool = False
    dry_run: bool = False
    remote: str = "origin"


class Release:
    """One interactive release of a workspace package.

    ``state`` always holds the step the run is in or ended in. Manifests are
    swapped in through ``transaction`` only, so a failure can restore them.
    """

    def __init__(
        self,
        workspace: Workspace,
        cache_dir: Path,
        build: BuildSystem,
        operator: Operator,
        options: ReleaseOptions | None = None,
    ) -> None:
        self.workspace = workspace
        self.repo = workspace.repo
        self.cache_dir = cache_dir
        self.build = build
        self.operator = operator
        self.options = options or ReleaseOptions()

        self.state = ReleaseState.IDLE
        self.transaction = ManifestTransaction()
        self.published: set[str] = set()
        self.commits: list[str] = []
        self.tag: str | None = None

        self.package: Package | None = None
        self.update: Update | None = None
        self.commit_packages: list[Package] = []
        self.tree_packages: list[Package] = []
        self.plan: BumpPlan | None = None
        self.manifests: dict[str | None, ManifestPair] = {}
        self.workspace_version: str = workspace.version
        self.branch = ""
        self.cache: GitRepository | None = None
        self.header = ""
        self.body = ""

    def run(self) -> ReleaseState:
        ws = self.workspace
        if not ws.changed_packages():
            print(f"No changed packages in {ws.name or ws.root.name} v{ws.version}")
            self.state = ReleaseState.ABORTED
            return self.state

        self.branch = self.repo.head_branch()
        self.cache = init_cache_repo(self.cache_dir, self.repo.workdir, self.branch)

        try:
            self._select()
        except UserAbort:
            print("Nothing selected, release cancelled")
            self.state = ReleaseState.ABORTED
            return self.state

        try:
            self._preview_manifests()
            builder = self._stage_root_commit()
            self._verify()
            self._publish()
            self._commit(builder, is_dep=False)
            self._stage_dependant_commits()
            if self.options.dry_run:
                self._restore()
                print("Dry run: working tree restored, nothing pushed")
            else:
                self._finalize()
        except VerificationFailure:
            self._restore_after_failure()
            self.state = ReleaseState.VERIFY_FAILED
            raise
        except Exception:
            self._restore_after_failure()
            self.state = ReleaseState.ROLLED_BACK
            raise

        self.state = ReleaseState.DONE
        self._print_summary()
        return self.state

    @property
    def cache_workspace_dir(self) -> Path:
        assert self.cache is not None
        return self.cache.workdir / self.repo.rel_path(self.workspace.root)

    def _select(self) -> None:
        ws = self.workspace
        op = self.operator

        self.state = ReleaseState.SELECT_PACKAGE
        package = op.select_package(ws.changed_packages())
        if package is None:
            raise UserAbort("No package selected")
        self.package = package

        self.state = ReleaseState.SELECT_UPDATE_KIND
        update = op.select_update(package)
        if update is None:
            raise UserAbort("No update kind selected")
        self.update = update

        self.state = ReleaseState.COLLECT_DEPENDANTS
        dependants = [ws.packages[n] for n in collect_dependants(ws.graph, package.name)]
        if dependants:
            print("Packages affected by update:")
            for pkg in order_for_display(dependants):
                color = "red" if pkg.is_changed else "yellow"
                print(f"  * {click.style(pkg.name, fg=color)}")
            print()

        self.state = ReleaseState.SELECT_COMMIT_SET
        self.commit_packages = op.select_subset(
            "Commit changes of dependencies",
            [pkg for pkg in dependants if pkg.is_changed],
            default=False,
        )
        if update.bump is not None:
            commit_names = {pkg.name for pkg in self.commit_packages}
            self.tree_packages = op.select_subset(
                "Select dependencies to update in tree",
                [pkg for pkg in dependants if pkg.name not in commit_names],
                # A major bump is opt-in for every dependant
                default=update.bump is not Bump.MAJOR,
            )

        if op.confirm("Do you want to see git diff?"):
            for pkg in [package, *self.commit_packages]:
                path = self.repo.rel_path(ws.root / pkg.path)
                op.show_diff(pkg, self.repo.diff_text(path))
            if not op.confirm("Do you want to continue?"):
                raise UserAbort("Release declined after reviewing the diff")

        self.header = op.prompt_header("Commit header")
        self.body = op.prompt_text("Commit message")

    def _preview_manifests(self) -> None:
        """Apply every version change to head/index previews.

        Nothing canonical is written here. Each package's new version comes
        from the plan, so all manifests agree on it.
        """
        self.state = ReleaseState.PREVIEW_MANIFESTS
        step("Preparing manifests")
        ws = self.workspace
        package, update = self.package, self.update
        assert package is not None and update is not None

        plan = BumpPlan(package, update, self.commit_packages, self.tree_packages)
        self.plan = plan

        root = ws.load_manifest(package.name)
        root.set_version(plan.new_version(package.name) or package.version)
        self.manifests[package.name] = root

        for name in topo_sort(ws.packages):
            if name == package.name or plan.bump_for(name) is None:
                continue
            manifest = ws.load_manifest(name)
            manifest.set_version(plan.new_version(name) or manifest.version)
            for other, bump in plan.versions.items():
                if other != name:
                    manifest.update_dependency(other, bump.old, bump.new)
            self.manifests[name] = manifest

        workspace = ws.load_manifest(None)
        for name, bump in plan.versions.items():
            workspace.bump_override(name, bump.old, bump.new)
        if update.bump is not None:
            self.workspace_version = bump_version(ws.version, update.bump)
            workspace.set_version(self.workspace_version)
        self.manifests[None] = workspace

        for name, manifest in self.manifests.items():
            manifest.save_preview()
            if name is not None and name in plan.versions:
                bump = plan.versions[name]
                print(f"  {name}: {bump.old} → {bump.new}")

        previews: list[tuple[ManifestPair, str]] = [(root, "index")]
        previews += [(self.manifests[p.name], "index") for p in self.commit_packages]
        previews += [
            (self.manifests[p.name], "head")
            for p in self.tree_packages
            if p.name in self.manifests
        ]
        previews.append((workspace, "index"))
        assert self.cache is not None
        materialize(self.repo, self.cache, [package, *self.commit_packages], previews)

    def _stage(self, builder: CommitBuilder, package: Package) -> None:
        if package.diff is None:
            return
        for path in package.diff.changed_files:
            builder.add_path(path)
        for path in package.diff.deleted_files:
            builder.remove_path(path)

    def _stage_root_commit(self) -> CommitBuilder:
        self.state = ReleaseState.STAGE_ROOT_COMMIT
        assert self.package is not None and self.plan is not None
        builder = CommitBuilder(self.repo, dry_run=self.options.dry_run)

        released = [self.package, *self.commit_packages]
        for pkg in released:
            self._stage(builder, pkg)
            manifest = self.manifests.get(pkg.name)
            if manifest is not None:
                builder.add_file_as(manifest.rel_path, manifest.index_preview_path)

        # Overrides of the packages in this commit only; tree-only dependants
        # are still at their old versions here
        workspace = self.workspace.load_manifest(None)
        for pkg in released:
            bump = self.plan.versions.get(pkg.name)
            if bump is not None:
                workspace.bump_override(pkg.name, bump.old, bump.new)
        workspace.set_version(self.workspace_version)
        builder.add_content(workspace.rel_path, workspace.head.content())

        for pkg in released:
            if pkg.name in self.manifests:
                self.transaction.swap(self.manifests[pkg.name].path)
        self.transaction.swap(self.manifests[None].path)
        return builder

    def _verify(self) -> None:
        self.state = ReleaseState.VERIFY
        assert self.plan is not None and self.package is not None
        if self.options.skip_tests or not self.plan.has_bump:
            return
        tested = [self.package, *(self.workspace.packages[n] for n in self.plan.dependants())]
        failed = verify(tested, self.build, self.cache_workspace_dir)
        if failed is not None:
            raise VerificationFailure(failed)

    def _publish(self) -> None:
        self.state = ReleaseState.PUBLISH
        assert self.plan is not None and self.package is not None
        if self.options.no_publish or not self.plan.has_bump:
            return
        step("Publishing")
        publish_deep(
            self.package.name,
            self.workspace.graph,
            self.workspace.packages,
            self.build,
            self.cache_workspace_dir,
            self.published,
            closure=set(self.plan.versions),
            dry_run=self.options.dry_run,
            versions={n: bump.new for n, bump in self.plan.versions.items()},
        )

    def _commit(self, builder: CommitBuilder, is_dep: bool) -> None:
        assert self.package is not None and self.update is not None
        commit = builder.commit(
            message(
                self.package.name,
                self.package.version,
                self.update,
                self.header,
                self.body,
                is_dep=is_dep,
            )
        )
        if commit is not None:
            label = "dependants" if is_dep else self.package.name
            print(f"  Committed {label}: {commit[:8]}")
            self.commits.append(commit)

    def _stage_dependant_commits(self) -> None:
        self.state = ReleaseState.STAGE_DEPENDANT_COMMITS
        builder = CommitBuilder(self.repo, dry_run=self.options.dry_run)
        for pkg in self.tree_packages:
            manifest = self.manifests.get(pkg.name)
            if manifest is None:
                continue
            builder.add_file_as(manifest.rel_path, manifest.head_preview_path)
            self.transaction.swap(manifest.path)
        workspace = self.manifests[None]
        builder.add_file_as(workspace.rel_path, workspace.head_preview_path)
        self._commit(builder, is_dep=True)

    def _finalize(self) -> None:
        self.state = ReleaseState.FINALIZE
        step("Finalizing")
        assert self.plan is not None
        self.transaction.commit()
        ManifestTransaction.discard_previews(m.path for m in self.manifests.values())

        refspecs = [f"refs/heads/{self.branch}"]
        if self.plan.has_bump:
            self.tag = f"refs/tags/v{self.workspace_version}"
            self.repo.set_ref(self.tag)
            refspecs.append(self.tag)
            print(f"  Tagged v{self.workspace_version}")
        self.repo.push(self.options.remote, refspecs)
        print(f"  Pushed {', '.join(refspecs)} to {self.options.remote}")

    def _restore(self) -> None:
        restored = self.transaction.rollback()
        for path in restored:
            print(f"  Restored {path}")
        ManifestTransaction.discard_previews(m.path for m in self.manifests.values())

    def _restore_after_failure(self) -> None:
        """Restore manifests while another error is in flight; that error wins."""
        try:
            self._restore()
        except WheelCascadeError as exc:
            print(f"ERROR: Failed to restore manifests: {exc}", file=sys.stderr)
            print("  Run `wheel-cascade recover` to restore them", file=sys.stderr)

    def _print_summary(self) -> None:
        if self.plan is None:
            return
        step("Release summary")
        for name, bump in self.plan.versions.items():
            print(f"  {name}: {bump.old} → {bump.new}")
        if self.published:
            print(f"  Published: {', '.join(sorted(self.published))}")


def recover(root: Path) -> list[Path]:
    """Restore manifests left swapped in by an interrupted run."""
    restored = recover_manifests(discover_manifests(root))
    for path in restored:
        print(f"  Restored {path}")
    return restored


def run_release(
    root: Path,
    cache_dir: Path,
    build: BuildSystem,
    operator: Operator,
    options: ReleaseOptions | None = None,
) -> Release:
    """Run an interactive release of the workspace at ``root``.

    Manifests left behind by an interrupted run are restored before the
    workspace is loaded.
    """
    recover(root)
    repo = GitRepository.open(root)
    workspace = load_workspace(root, repo)
    release = Release(workspace, cache_dir, build, operator, options)
    release.run()
    return release


_RECORDED_VERSION_RE = re.compile(r"\d+(\.\d+)*")


def _relative(target: Path, start: Path) -> str:
    return Path(os.path.relpath(target, start)).as_posix()


def update_paths(
    root: Path,
    dry_run: bool = False,
    force: bool = False,
    dependencies: Iterable[Path] = (),
) -> list[Path]:
    """Point dependencies between packages at their local directories.

    Member dependencies are linked inside the workspace. Each directory in
    ``dependencies`` is another uv workspace (e.g. a git submodule); a
    dependency on one of its packages is linked the same way and pinned in
    the root's override-dependencies.

    Args:
        root: Workspace root.
        dry_run: Only write previews, leave canonical manifests untouched.
        force: Record current versions even where an entry already has one.
        dependencies: Roots of other workspaces to link against.

    Returns:
        Manifests that were updated (or would be, in dry-run mode).
    """
    repo = GitRepository.open(root)
    ws = load_workspace(root, repo)
    step("Updating dependency paths")

    manifests: dict[str | None, ManifestPair] = {}
    changed: list[str | None] = []

    def manifest(name: str | None) -> ManifestPair:
        if name not in manifests:
            manifests[name] = ws.load_manifest(name)
        return manifests[name]

    def mark(name: str | None) -> None:
        if name not in changed:
            changed.append(name)

    for pkg in ws.packages.values():
        for dep in pkg.member_dependencies:
            target = ws.packages[dep.name]
            rel = _relative(ws.root / target.path, ws.root / pkg.path)
            if manifest(pkg.name).set_dependency_path(dep.name, rel, target.version, force):
                mark(pkg.name)

    for dep_root in dependencies:
        dep_root = dep_root.resolve()
        external = load_workspace(dep_root, GitRepository.open(dep_root))
        for pkg in ws.packages.values():
            for dep in pkg.dependencies:
                target = external.find_package(dep.name)
                if dep.is_member or target is None:
                    continue
                rel = _relative(dep_root / target.path, ws.root / pkg.path)
                if manifest(pkg.name).set_dependency_path(
                    dep.name, rel, target.version, force
                ):
                    mark(pkg.name)
                recorded = _RECORDED_VERSION_RE.search(dep.requirement)
                old = recorded.group(0) if recorded else target.version
                if manifest(None).set_or_insert_override(
                    dep.name, old, pin_dep(dep.name, target.version)
                ):
                    mark(None)

    updated: list[Path] = []
    for name in changed:
        pair = manifests[name]
        pair.save_preview()
        if dry_run:
            print(f"  Preview {pair.index_preview_path}")
            updated.append(pair.path)
            continue
        rename(pair.index_preview_path, pair.path)
        remove(pair.head_preview_path)
        print(f"  Updated {pair.path}")
        updated.append(pair.path)
    if not changed:
        print("  Nothing to update")
    return updated

