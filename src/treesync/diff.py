"""Tree comparison: the changes that make one tree identical to another.

``diff(from_fs, to_fs)`` describes how the *destination* (``to_fs``) must
be mutated to match the *source* (``from_fs``).  Traversal is depth-first
over an explicit stack of directory frames, so depth is bounded by
memory rather than by the interpreter's recursion limit.  Listings are
sorted by name, which makes the emitted order identical for every
backend.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import BinaryIO

from ._paths import join_path
from ._types import Change, ChangeOp
from .exceptions import TypeMismatchError
from .view import DirEntry, EntryStat, EntryType, FilesystemView

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 65536


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _stat_or_none(fs: FilesystemView, path: str) -> EntryStat | None:
    """Stat *path*, returning ``None`` when nothing exists there.

    A path below a regular file raises ``NotADirectoryError`` on most
    backends; that is absence too.
    """
    try:
        return fs.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return None


def _sorted_entries(fs: FilesystemView, path: str) -> list[DirEntry]:
    return sorted(fs.readdir(path), key=lambda e: e.name)


def _read_chunk(f: BinaryIO, size: int) -> bytes:
    """Read *size* bytes from *f*, short only at end of file."""
    chunk = f.read(size)
    if not chunk or len(chunk) == size:
        return chunk
    parts = [chunk]
    remaining = size - len(chunk)
    while remaining:
        more = f.read(remaining)
        if not more:
            break
        parts.append(more)
        remaining -= len(more)
    return b"".join(parts)


def compare_contents(
    from_fs: FilesystemView,
    to_fs: FilesystemView,
    path: str,
    *,
    chunk_size: int = _CHUNK_SIZE,
) -> bool:
    """Return True if the files at *path* on both views hold identical bytes.

    Both files are streamed in *chunk_size* pieces; the comparison stops
    at the first differing chunk or as soon as one file ends early.
    """
    with from_fs.open(path, "rb") as a, to_fs.open(path, "rb") as b:
        while True:
            chunk_a = _read_chunk(a, chunk_size)
            chunk_b = _read_chunk(b, chunk_size)
            if chunk_a != chunk_b:
                return False
            if not chunk_a:
                return True


def _files_equal(
    from_fs: FilesystemView,
    to_fs: FilesystemView,
    path: str,
    from_stat: EntryStat,
    to_stat: EntryStat,
) -> bool:
    """Decide whether two files hold the same content.

    Different sizes are always a change.  Equal mtimes reported by both
    sides mean no change.  Anything else (differing mtimes, or a side
    that cannot report one) is settled by comparing the bytes.
    """
    if from_stat.size != to_stat.size:
        return False
    if from_stat.mtime is not None and to_stat.mtime is not None:
        if from_stat.mtime == to_stat.mtime:
            return True
    logger.debug("Comparing contents of %s", path)
    return compare_contents(from_fs, to_fs, path)


def _walk_files(
    fs: FilesystemView, root: str, rel: str, entry_type: EntryType,
) -> Iterator[str]:
    """Yield every file at or below *rel* (relative to *root*), depth-first."""
    if entry_type == EntryType.FILE:
        yield rel
        return
    if entry_type != EntryType.DIRECTORY:
        raise TypeMismatchError(join_path(root, rel))

    stack = [(rel, iter(_sorted_entries(fs, join_path(root, rel))))]
    while stack:
        dir_rel, entries = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue
        sub = join_path(dir_rel, entry.name)
        if entry.type == EntryType.FILE:
            yield sub
        elif entry.type == EntryType.DIRECTORY:
            stack.append((sub, iter(_sorted_entries(fs, join_path(root, sub)))))
        else:
            raise TypeMismatchError(join_path(root, sub))


def iter_files(fs: FilesystemView, path: str = "/") -> Iterator[str]:
    """Yield the path of every file at or below *path*, depth-first.

    Directories themselves are not yielded.  If *path* is a file it is
    the only item.

    Raises:
        FileNotFoundError: If *path* does not exist.
        TypeMismatchError: If an entry is neither a file nor a directory.
    """
    path = join_path(path)
    st = fs.stat(path)
    return _walk_files(fs, "/", path, st.type)


# ---------------------------------------------------------------------------
# Comparator
# ---------------------------------------------------------------------------

@dataclass
class _Frame:
    """A directory present on both sides whose entries are being visited."""
    rel: str
    pending: Iterator[DirEntry]
    to_names: set[str]
    removed: list[str]


def _added(fs: FilesystemView, root: str, rel: str, entry_type: EntryType) -> Iterator[Change]:
    for file_rel in _walk_files(fs, root, rel, entry_type):
        yield Change(ChangeOp.ADD, file_rel)


def _replace(rel: str) -> tuple[Change, Change]:
    return Change(ChangeOp.REMOVE, rel), Change(ChangeOp.ADD, rel)


def _open_frame(from_fs: FilesystemView, to_fs: FilesystemView, full: str, rel: str) -> _Frame:
    from_entries = _sorted_entries(from_fs, full)
    to_entries = _sorted_entries(to_fs, full)
    from_names = {e.name for e in from_entries}
    to_names = {e.name for e in to_entries}
    removed = [e.name for e in to_entries if e.name not in from_names]
    return _Frame(rel, iter(from_entries), to_names, removed)


def _visit(
    from_fs: FilesystemView, to_fs: FilesystemView, root: str, rel: str,
) -> tuple[Iterable[Change], _Frame | None]:
    """Classify the entry at *rel* on both sides.

    Returns the changes to emit and, when both sides hold a directory,
    the frame to descend into.
    """
    full = join_path(root, rel)
    from_stat = _stat_or_none(from_fs, full)
    to_stat = _stat_or_none(to_fs, full)

    if from_stat is None:
        if to_stat is None:
            return (), None
        return (Change(ChangeOp.REMOVE, rel),), None

    if to_stat is None:
        return _added(from_fs, root, rel, from_stat.type), None

    if from_stat.is_file:
        if to_stat.is_file:
            if _files_equal(from_fs, to_fs, full, from_stat, to_stat):
                return (), None
            return (Change(ChangeOp.CHANGE, rel),), None
        if to_stat.is_dir:
            return _replace(rel), None
        raise TypeMismatchError(full)

    if from_stat.is_dir:
        if to_stat.is_dir:
            return (), _open_frame(from_fs, to_fs, full, rel)
        if to_stat.is_file:
            return _replace(rel), None
        raise TypeMismatchError(full)

    raise TypeMismatchError(full)


def diff(
    from_fs: FilesystemView, to_fs: FilesystemView, path: str = "/",
) -> Iterator[Change]:
    """Yield the changes that make *to_fs* match *from_fs* below *path*.

    Change paths are relative to *path* and start with ``/``.  For every
    directory, changes for source entries come first (in name order),
    followed by removals of entries only the destination has.

    * A path only the destination has yields a single ``remove``, even
      for a whole directory.
    * A path only the source has yields one ``add`` per file beneath it.
    * A file on one side and a directory on the other yields ``remove``
      then ``add`` at that path, without descending.
    * Files present on both sides yield ``change`` only when their
      content differs.

    Raises:
        TypeMismatchError: If an entry is neither a file nor a directory.
    """
    root = join_path(path)
    changes, frame = _visit(from_fs, to_fs, root, "/")
    yield from changes
    stack = [frame] if frame is not None else []

    while stack:
        frame = stack[-1]
        entry = next(frame.pending, None)
        if entry is None:
            stack.pop()
            for name in frame.removed:
                yield Change(ChangeOp.REMOVE, join_path(frame.rel, name))
            continue

        rel = join_path(frame.rel, entry.name)
        if entry.name not in frame.to_names:
            yield from _added(from_fs, root, rel, entry.type)
            continue

        changes, child = _visit(from_fs, to_fs, root, rel)
        yield from changes
        if child is not None:
            stack.append(child)
