"""The filesystem capability every tree backend implements.

:func:`~treesync.diff` and :func:`~treesync.sync` only ever talk to a
:class:`FilesystemView`.  Concrete views: :class:`~treesync.LocalFS`
(a directory on disk) and :class:`~treesync.GitTreeFS` (a branch of a
bare git repository).
"""

from __future__ import annotations

import stat as _stat
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, NamedTuple


class EntryType(str, Enum):
    """Type of a tree entry.

    Members: ``FILE``, ``DIRECTORY``, ``LINK``, ``OTHER``.
    """
    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"
    OTHER = "other"

    def __str__(self) -> str:          # noqa: D105
        return self.value

    @classmethod
    def from_mode(cls, mode: int) -> EntryType:
        """Convert a POSIX or git mode to an :class:`EntryType`."""
        if _stat.S_ISREG(mode):
            return cls.FILE
        if _stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if _stat.S_ISLNK(mode):
            return cls.LINK
        return cls.OTHER


@dataclass(frozen=True, slots=True)
class EntryStat:
    """Metadata of one entry, produced fresh on every query.

    Attributes:
        type: :class:`EntryType` of the entry.
        size: Size in bytes (0 for directories).
        mtime: Modification time as POSIX epoch seconds, or ``None`` if
            the backend cannot report it reliably.
        mode: Raw mode bits as reported by the backend.
    """
    type: EntryType
    size: int = 0
    mtime: float | None = None
    mode: int = 0

    @property
    def is_file(self) -> bool:
        return self.type == EntryType.FILE

    @property
    def is_dir(self) -> bool:
        return self.type == EntryType.DIRECTORY


class DirEntry(NamedTuple):
    """A directory entry returned by :meth:`FilesystemView.readdir`."""

    name: str
    type: EntryType


class FilesystemView(ABC):
    """Minimal filesystem capability consumed by the sync engine.

    Paths are slash-separated and rooted at ``/`` relative to the view.
    """

    @abstractmethod
    def stat(self, path: str) -> EntryStat:
        """Return metadata for *path*.

        Raises:
            FileNotFoundError: If nothing exists at *path*.
        """

    @abstractmethod
    def readdir(self, path: str) -> list[DirEntry]:
        """List the entries of the directory at *path* (any order)."""

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create *path* and missing parents; existing directories are fine."""

    @abstractmethod
    def open(self, path: str, mode: str = "rb") -> BinaryIO:
        """Open *path* as a binary file object, ``"rb"`` or ``"wb"``."""

    @abstractmethod
    def rm(self, path: str) -> None:
        """Remove *path* recursively; a missing path is not an error."""

    def utime(self, path: str, mtime: float) -> None:
        """Set the modification time of *path* (best effort).

        Raises:
            NotImplementedError: If the backend does not record times.
        """
        raise NotImplementedError(f"{type(self).__name__} does not record modification times")

    def flush(self) -> None:
        """Make pending mutations durable and visible."""
