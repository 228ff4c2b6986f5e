"""Git repository access and commit building.

GitRepository covers what the release needs from version control: package
diffs (computed once and cached for the run), file contents at a ref,
refs, push and pull. CommitBuilder stages into its own index file seeded
from HEAD, so a release commit holds exactly what was staged for it and
nothing a previous builder or the user left in the real index.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from .errors import FilesystemError, RepositoryError
from .manifest import ARTIFACT_NAMES
from .models import Diff
from .shell import git, git_bytes


class GitRepository:
    """A git working tree driven through the git CLI."""

    def __init__(self, workdir: Path) -> None:
        self.workdir = workdir
        self._diffs: dict[str, Diff] = {}

    @classmethod
    def open(cls, path: Path) -> GitRepository:
        """Open the repository containing ``path``."""
        top = git("rev-parse", "--show-toplevel", cwd=path)
        return cls(Path(top).resolve())

    def git(self, *args: str, check: bool = True) -> str:
        return git("-c", "core.quotePath=false", *args, cwd=self.workdir, check=check)

    def rel_path(self, path: Path | str) -> str:
        """Path relative to the repository root, with forward slashes."""
        path = Path(path)
        if path.is_absolute():
            try:
                path = path.resolve().relative_to(self.workdir)
            except ValueError:
                pass
        return path.as_posix()

    def head_commit(self) -> str:
        """Return the HEAD commit id.

        Raises:
            RepositoryError: If the repository has no commit yet.
        """
        head = self.git("rev-parse", "--verify", "-q", "HEAD", check=False)
        if not head:
            raise RepositoryError(f"No commit found at HEAD in {self.workdir}")
        return head

    def head_branch(self) -> str:
        branch = self.git("symbolic-ref", "--short", "-q", "HEAD", check=False)
        if not branch:
            raise RepositoryError(f"No branch checked out in {self.workdir}")
        return branch

    def get_contents(self, ref: str, path: Path | str) -> bytes | None:
        """Contents of a file at ``ref``, or None if the file is not there."""
        return git_bytes("show", f"{ref}:{self.rel_path(path)}", cwd=self.workdir)

    def diff(self, name: str, path: str) -> Diff:
        """Working-tree changes of a package directory, untracked files included.

        The result is cached by package name and never recomputed during a
        run: the working tree is assumed static while a release is running.
        """
        if name in self._diffs:
            return self._diffs[name]

        pathspec = [path or ".", *(f":(exclude,glob)**/{a}" for a in ARTIFACT_NAMES)]
        numstat = self.git("diff", "--no-renames", "--numstat", "--", *pathspec)
        deleted = self.git(
            "diff", "--no-renames", "--name-only", "--diff-filter=D", "--", *pathspec
        ).splitlines()
        untracked = self.git(
            "ls-files", "--others", "--exclude-standard", "--", *pathspec
        ).splitlines()

        insertions = deletions = 0
        changed: list[str] = []
        for line in numstat.splitlines():
            added, removed, file_path = line.split("\t", 2)
            # Binary files report "-" for both counts
            insertions += int(added) if added.isdigit() else 0
            deletions += int(removed) if removed.isdigit() else 0
            if file_path not in deleted:
                changed.append(file_path)
        for file_path in untracked:
            insertions += (self.workdir / file_path).read_bytes().count(b"\n")
            changed.append(file_path)

        diff = Diff(
            files_changed=len(changed) + len(deleted),
            insertions=insertions,
            deletions=deletions,
            changed_files=changed,
            deleted_files=deleted,
        )
        self._diffs[name] = diff
        return diff

    def cached_diff(self, name: str) -> Diff | None:
        return self._diffs.get(name)

    def diff_text(self, path: str) -> str:
        """Human-readable patch of a package directory for review."""
        patch = self.git("diff", "--no-color", "--stat", "--patch", "--", path or ".")
        untracked = self.git(
            "ls-files", "--others", "--exclude-standard", "--", path or "."
        ).splitlines()
        if untracked:
            patch += "\n\nUntracked files:\n" + "\n".join(f"  {f}" for f in untracked)
        return patch

    def set_ref(self, name: str, target: str | None = None) -> str:
        """Point a reference (e.g. refs/tags/v1.2.0) at ``target`` or HEAD."""
        target = target or self.head_commit()
        self.git("update-ref", name, target)
        return target

    def push(self, remote: str, refspecs: list[str]) -> None:
        self.git("push", remote, *refspecs)

    def pull(self, remote: str, branch: str) -> None:
        """Fetch ``branch`` and merge it into HEAD.

        Fast-forwards when possible, otherwise does a three-way merge. A
        conflicting merge is aborted and reported.
        """
        self.git("fetch", "--tags", remote, branch)
        fetched = self.git("rev-parse", "FETCH_HEAD")
        head = self.head_commit()
        if self._is_ancestor(fetched, head):
            return
        if self._is_ancestor(head, fetched):
            self.git("merge", "--ff-only", "-q", fetched)
            return
        try:
            self.git("merge", "--no-edit", "-q", fetched)
        except RepositoryError as exc:
            self.git("merge", "--abort", check=False)
            raise RepositoryError(
                f"Merge conflict pulling {remote}/{branch} into {self.workdir}"
            ) from exc

    def _is_ancestor(self, ancestor: str, descendant: str) -> bool:
        try:
            self.git("merge-base", "--is-ancestor", ancestor, descendant)
        except RepositoryError:
            return False
        return True


def init_cache_repo(cache_dir: Path, source: Path, branch: str) -> GitRepository:
    """Prepare the isolated copy of the workspace used for tests and publishing.

    Clones the workspace on first use. An existing copy is reset, cleaned
    and brought up to date with the workspace's branch.
    """
    if not cache_dir.exists():
        print(f"  Cloning {source} into {cache_dir}")
        git("clone", "-q", "--branch", branch, str(source), str(cache_dir))
        return GitRepository(cache_dir.resolve())

    repo = GitRepository(cache_dir.resolve())
    repo.git("reset", "-q", "--hard", "HEAD")
    repo.git("clean", "-fdq")
    repo.git("checkout", "-q", branch)
    repo.pull("origin", branch)
    return repo


class CommitBuilder:
    """Builds one commit on top of the current HEAD.

    Staging goes to a private index initialized from the parent commit's
    tree. Builders are used one after another within a run, never side by
    side.
    """

    def __init__(self, repo: GitRepository, dry_run: bool = False) -> None:
        self.repo = repo
        self.dry_run = dry_run
        self.parent = repo.head_commit()
        self.staged: list[str] = []
        self._tmp = Path(tempfile.mkdtemp(prefix="wheel-cascade-"))
        self._env = {**os.environ, "GIT_INDEX_FILE": str(self._tmp / "index")}
        self._git("read-tree", self.parent)

    def _git(self, *args: str) -> str:
        return git(*args, cwd=self.repo.workdir, env=self._env)

    def add_path(self, path: Path | str) -> None:
        """Stage a file that exists in the working tree."""
        rel = self.repo.rel_path(path)
        if not (self.repo.workdir / rel).is_file():
            raise FilesystemError(
                "stage", self.repo.workdir / rel, None, "file does not exist"
            )
        self._git("update-index", "--add", "--", rel)
        self.staged.append(rel)

    def add_file_as(self, path: Path | str, source: Path) -> None:
        """Stage the content of ``source`` at ``path`` without touching the working tree."""
        rel = self.repo.rel_path(path)
        blob = self._git("hash-object", "-w", "--", str(source))
        self._git("update-index", "--add", "--cacheinfo", f"100644,{blob},{rel}")
        self.staged.append(rel)

    def add_content(self, path: Path | str, content: str) -> None:
        """Stage ``content`` at ``path`` without touching the working tree."""
        source = self._tmp / f"content-{len(self.staged)}"
        source.write_bytes(content.encode("utf-8"))
        self.add_file_as(path, source)

    def remove_path(self, path: Path | str) -> None:
        """Stage the deletion of a path."""
        rel = self.repo.rel_path(path)
        self._git("update-index", "--force-remove", "--", rel)
        self.staged.append(rel)

    def commit(self, message: str) -> str | None:
        """Create the commit and advance HEAD to it.

        In dry-run mode the commit object is created but HEAD stays put.

        Returns:
            The new commit id, or None when the staged tree equals the parent's.
        """
        try:
            tree = self._git("write-tree")
            if tree == self.repo.git("rev-parse", f"{self.parent}^{{tree}}"):
                print("  Nothing to commit")
                return None
            commit = self._git("commit-tree", tree, "-p", self.parent, "-m", message)
            if not self.dry_run:
                # Fails if HEAD moved since this builder started
                self.repo.git("update-ref", "HEAD", commit, self.parent)
                self.repo.git("reset", "-q", commit, "--", *sorted(set(self.staged)))
            return commit
        finally:
            shutil.rmtree(self._tmp, ignore_errors=True)
