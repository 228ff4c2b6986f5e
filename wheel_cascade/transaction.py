"""Preview → backup → restore lifecycle of manifests under mutation.

Swapping a preview in is two renames (canonical → backup, preview →
canonical), never a copy and delete, so an interrupted run leaves one of
two discoverable states: the original canonical file with no backup, or
the preview as canonical with the original kept as backup.

The orchestrator tracks each manifest's ManifestState in memory and treats
the files on disk only as a fallback for recovering from a crash.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterable
from pathlib import Path

from .errors import FilesystemError
from .manifest import backup_path, preview_path
from .models import ManifestState


def copy(src: Path, dest: Path) -> None:
    """Copy a whole file, creating the destination directory if needed."""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)
    except OSError as exc:
        raise FilesystemError("copy", src, dest, str(exc)) from exc


def rename(src: Path, dest: Path) -> None:
    """Rename a file, replacing the destination if it exists."""
    try:
        src.replace(dest)
    except OSError as exc:
        raise FilesystemError("rename", src, dest, str(exc)) from exc


def remove(path: Path) -> None:
    try:
        path.unlink()
    except OSError as exc:
        raise FilesystemError("remove", path, None, str(exc)) from exc


def move_index_manifest(manifest_path: Path, kind: str = "index") -> None:
    """Swap a preview in as the canonical manifest, keeping the original as backup."""
    rename(manifest_path, backup_path(manifest_path))
    rename(preview_path(manifest_path, kind), manifest_path)


def restore_manifest(manifest_path: Path) -> None:
    """Put the backed-up original back as the canonical manifest."""
    rename(backup_path(manifest_path), manifest_path)


class ManifestTransaction:
    """Per-manifest lifecycle state for one run.

    Every manifest swapped in through this object is restored by rollback()
    or made permanent by commit(). Swapping a manifest that is already
    STAGED only replaces the canonical file, so the backup always holds the
    pre-run original.
    """

    def __init__(self) -> None:
        self.states: dict[Path, ManifestState] = {}

    def state(self, manifest_path: Path) -> ManifestState:
        return self.states.get(manifest_path, ManifestState.CLEAN)

    @property
    def staged(self) -> list[Path]:
        return [p for p, s in self.states.items() if s is ManifestState.STAGED]

    def swap(self, manifest_path: Path, kind: str = "index") -> None:
        if self.state(manifest_path) is ManifestState.STAGED:
            preview = preview_path(manifest_path, kind)
            if preview.exists():
                rename(preview, manifest_path)
            return
        move_index_manifest(manifest_path, kind)
        self.states[manifest_path] = ManifestState.STAGED

    def rollback(self) -> list[Path]:
        """Restore every staged manifest. Returns the restored paths."""
        restored: list[Path] = []
        for manifest_path in self.staged:
            restore_manifest(manifest_path)
            self.states[manifest_path] = ManifestState.CLEAN
            restored.append(manifest_path)
        return restored

    def commit(self) -> None:
        """Accept every staged manifest and drop its backup."""
        for manifest_path in self.staged:
            remove(backup_path(manifest_path))
            self.states[manifest_path] = ManifestState.COMMITTED

    @staticmethod
    def discard_previews(manifest_paths: Iterable[Path]) -> None:
        for manifest_path in manifest_paths:
            for kind in ("head", "index"):
                preview = preview_path(manifest_path, kind)
                if preview.exists():
                    remove(preview)


def recover_manifests(manifest_paths: Iterable[Path]) -> list[Path]:
    """Undo swaps left behind by a crashed run.

    A backup next to a manifest means a preview was swapped in and never
    committed: the backup is renamed back. A manifest with neither the
    canonical file nor a backup cannot be recovered.

    Returns:
        The manifests that were restored.
    """
    restored: list[Path] = []
    for manifest_path in manifest_paths:
        backup = backup_path(manifest_path)
        if backup.exists():
            restore_manifest(manifest_path)
            restored.append(manifest_path)
        elif not manifest_path.exists():
            raise FilesystemError(
                "recover", manifest_path, backup, "neither manifest nor backup exists"
            )
    return restored
