"""LocalFS: a directory on disk seen as a :class:`~treesync.view.FilesystemView`."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import BinaryIO

from ._paths import _normalize_path
from .view import DirEntry, EntryStat, EntryType, FilesystemView

__all__ = ["LocalFS"]


def _entry_type(entry: os.DirEntry) -> EntryType:
    """Classify a scandir entry, following symlinks like :func:`os.stat`."""
    if entry.is_dir():
        return EntryType.DIRECTORY
    if entry.is_file():
        return EntryType.FILE
    if entry.is_symlink():
        # Dangling link: neither target type resolved.
        return EntryType.LINK
    return EntryType.OTHER


class LocalFS(FilesystemView):
    """A view of the local directory *root*.

    Every path is resolved below *root*; ``..`` segments are rejected.
    Symlinks are followed for reading; a dangling one stats as
    :attr:`EntryType.LINK`.  Writing replaces a symlink instead of
    writing through it.  The directory does not have to exist yet:
    it is created by the first write.
    """

    def __init__(self, root: str | os.PathLike[str]):
        self._root = Path(root)

    def __repr__(self) -> str:
        return f"LocalFS({str(self._root)!r})"

    @property
    def root(self) -> Path:
        """The directory this view is scoped to."""
        return self._root

    def _resolve(self, path: str) -> Path:
        rel = _normalize_path(path)
        return self._root / rel if rel else self._root

    # --- Read operations ---

    def stat(self, path: str) -> EntryStat:
        target = self._resolve(path)
        try:
            st = os.stat(target)
        except FileNotFoundError:
            # A dangling symlink still occupies the name.
            st = os.lstat(target)
        entry_type = EntryType.from_mode(st.st_mode)
        return EntryStat(
            type=entry_type,
            size=st.st_size if entry_type == EntryType.FILE else 0,
            mtime=st.st_mtime,
            mode=st.st_mode,
        )

    def readdir(self, path: str) -> list[DirEntry]:
        with os.scandir(self._resolve(path)) as it:
            return [DirEntry(entry.name, _entry_type(entry)) for entry in it]

    def open(self, path: str, mode: str = "rb") -> BinaryIO:
        if mode not in ("rb", "wb"):
            raise ValueError(f"Unsupported mode: {mode!r}")
        target = self._resolve(path)
        if mode == "wb" and target.is_symlink():
            # Replace the link itself, never write through it.
            target.unlink()
        return open(target, mode)

    # --- Write operations ---

    def mkdir(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def rm(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
            return
        try:
            target.unlink()
        except FileNotFoundError:
            pass

    def utime(self, path: str, mtime: float) -> None:
        os.utime(self._resolve(path), (mtime, mtime))
