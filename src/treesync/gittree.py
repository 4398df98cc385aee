"""GitTreeFS: a branch of a bare git repository as a mutable file tree.

Reads resolve against a *working tree* (a root tree OID).  Each write or
removal stores new objects and rebuilds only the ancestor chain from the
changed entry to the root; sibling subtrees are shared by hash.
:meth:`GitTreeFS.flush` records the working tree as one commit on the
branch.

Git keeps no per-file modification times, so :meth:`GitTreeFS.stat`
reports ``mtime=None`` and comparisons against a git tree always fall
back to content.  Git trees cannot hold empty directories either:
:meth:`GitTreeFS.mkdir` only checks that nothing blocks the path, and
directories emptied by a removal are pruned.
"""

from __future__ import annotations

import os
import stat as _stat
import time
from pathlib import Path
from typing import BinaryIO

from dulwich.client import get_transport_and_path
from dulwich.objects import Blob, Commit, Tag, Tree
from dulwich.repo import Repo

from ._fileobj import BlobReader, StagedWriter
from ._paths import _normalize_path
from .exceptions import StaleSnapshotError
from .view import DirEntry, EntryStat, EntryType, FilesystemView

__all__ = ["GitTreeFS"]

GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755


# ---------------------------------------------------------------------------
# Object helpers
# ---------------------------------------------------------------------------

def _open_repo(path: str | os.PathLike[str], *, create: bool, branch: str | None = None) -> Repo:
    """Open the bare repository at *path*, creating it when allowed."""
    path = Path(path)
    if path.exists():
        return Repo(str(path))
    if not create:
        raise FileNotFoundError(f"Repository not found: {path}")
    repo = Repo.init_bare(str(path), mkdir=True)
    if branch is not None:
        repo.refs.set_symbolic_ref(b"HEAD", f"refs/heads/{branch}".encode())
    return repo


def _empty_tree(repo: Repo) -> bytes:
    tree = Tree()
    repo.object_store.add_object(tree)
    return tree.id


def _peel_to_commit(repo: Repo, sha: bytes) -> Commit:
    """Follow annotated tags from *sha* until a commit is reached."""
    obj = repo.object_store[sha]
    for _ in range(50):  # safety limit
        if not isinstance(obj, Tag):
            break
        obj = repo.object_store[obj.object[1]]
    if not isinstance(obj, Commit):
        raise ValueError(f"{sha.decode()} does not point to a commit")
    return obj


def _lookup_sha(refs, repo: Repo, rev: str | None) -> bytes:
    """Find the object *rev* names in *refs* (a mapping of ref name -> sha).

    ``None`` means ``HEAD``.  Short names try ``refs/heads/`` then
    ``refs/tags/``; a full 40-char hex SHA is accepted as is.
    """
    if rev is None:
        candidates = [b"HEAD"]
    else:
        raw = rev.encode()
        candidates = [raw, b"refs/heads/" + raw, b"refs/tags/" + raw]
    for name in candidates:
        try:
            sha = refs[name]
        except KeyError:
            continue
        if sha:
            return sha
    if rev is not None and len(rev) == 40 and rev.encode() in repo.object_store:
        return rev.encode()
    raise KeyError(rev or "HEAD")


def _lookup(repo: Repo, tree_oid: bytes, path: str) -> tuple[int, bytes] | None:
    """Return (filemode, oid) of the entry at normalized *path*, or None if missing."""
    if not path:
        return (GIT_FILEMODE_TREE, tree_oid)
    segments = path.split("/")
    tree = repo.object_store[tree_oid]
    for i, seg in enumerate(segments):
        try:
            mode, sha = tree[seg.encode()]
        except KeyError:
            return None
        if i == len(segments) - 1:
            return (mode, sha)
        if not _stat.S_ISDIR(mode):
            return None
        tree = repo.object_store[sha]
    return None


def _set_entry(
    repo: Repo,
    tree_oid: bytes | None,
    segments: list[str],
    value: tuple[int, bytes] | None,
    full_path: str,
) -> bytes | None:
    """Rebuild *tree_oid* with *value* placed at *segments* (``None`` removes).

    Returns the new tree OID, or ``None`` when the resulting tree is
    empty so the caller can prune it.
    """
    entries: dict[bytes, tuple[int, bytes]] = {}
    if tree_oid is not None:
        for entry in repo.object_store[tree_oid].iteritems():
            entries[entry.path] = (entry.mode, entry.sha)

    name = segments[0].encode()
    if len(segments) == 1:
        if value is None:
            entries.pop(name, None)
        else:
            entries[name] = value
    else:
        existing = entries.get(name)
        if existing is not None and not _stat.S_ISDIR(existing[0]):
            raise NotADirectoryError(full_path)
        sub_oid = _set_entry(
            repo, existing[1] if existing else None, segments[1:], value, full_path,
        )
        if sub_oid is None:
            entries.pop(name, None)
        else:
            entries[name] = (GIT_FILEMODE_TREE, sub_oid)

    if not entries:
        return None
    tree = Tree()
    for entry_name, (mode, sha) in sorted(entries.items()):
        tree.add(entry_name, mode, sha)
    repo.object_store.add_object(tree)
    return tree.id


# ---------------------------------------------------------------------------
# GitTreeFS
# ---------------------------------------------------------------------------

class GitTreeFS(FilesystemView):
    """A file tree stored in a bare git repository.

    Writable when opened on a branch with :meth:`open_branch`; read-only when
    opened on a tag or commit (:meth:`snapshot`) or materialized from a
    remote (:meth:`from_url`).  *root* scopes every path below a
    sub-directory of the repository tree.
    """

    def __init__(
        self,
        repo: Repo,
        commit_oid: bytes | None,
        ref_name: bytes | None = None,
        *,
        root: str = "/",
        author: str = "treesync",
        email: str = "treesync@localhost",
        message: str | None = None,
    ):
        self._repo = repo
        self._ref_name = ref_name
        self._base_commit = commit_oid
        if commit_oid is not None:
            self._base_tree = repo.object_store[commit_oid].tree
        else:
            self._base_tree = _empty_tree(repo)
        self._tree_oid = self._base_tree
        self._prefix = _normalize_path(root)
        self._identity = f"{author} <{email}>".encode()
        self._message = message
        self._ops: list[str] = []

    def __repr__(self) -> str:
        parts = []
        if self._ref_name:
            parts.append(f"ref_name={self._ref_name.decode()!r}")
        if self._base_commit is not None:
            parts.append(f"commit={self._base_commit.decode()[:7]}")
        if self._prefix:
            parts.append(f"root={'/' + self._prefix!r}")
        if not self.writable:
            parts.append("readonly")
        return f"GitTreeFS({', '.join(parts)})"

    # --- Constructors ---

    @classmethod
    def open_branch(
        cls,
        path: str | os.PathLike[str],
        branch: str = "main",
        *,
        root: str = "/",
        create: bool = True,
        author: str = "treesync",
        email: str = "treesync@localhost",
        message: str | None = None,
    ) -> GitTreeFS:
        """Open a writable view of *branch* in the bare repository at *path*.

        Args:
            path: Path to the bare repository.
            branch: Branch to read and commit to.  It is created by the
                first :meth:`flush` if it does not exist.
            root: Sub-directory of the tree the view is scoped to.
            create: Create the repository when it doesn't exist.  If
                False, raise FileNotFoundError when missing.
            author: Author name for commits.
            email: Author email for commits.
            message: Commit message used by :meth:`flush`
                (auto-generated if ``None``).
        """
        repo = _open_repo(path, create=create, branch=branch)
        ref_name = f"refs/heads/{branch}".encode()
        try:
            commit_oid = repo.refs[ref_name]
        except KeyError:
            commit_oid = None
        return cls(
            repo, commit_oid, ref_name,
            root=root, author=author, email=email, message=message,
        )

    @classmethod
    def snapshot(
        cls, path: str | os.PathLike[str], rev: str | None = None, *, root: str = "/",
    ) -> GitTreeFS:
        """Open a read-only view of *rev* (branch, tag, or commit SHA; default HEAD)."""
        repo = _open_repo(path, create=False)
        sha = _lookup_sha(repo.refs, repo, rev)
        commit = _peel_to_commit(repo, sha)
        return cls(repo, commit.id, None, root=root)

    @classmethod
    def from_url(
        cls,
        path: str | os.PathLike[str],
        url: str,
        ref: str | None = None,
        *,
        root: str = "/",
    ) -> GitTreeFS:
        """Fetch *url* into the bare repository at *path* and view *ref* read-only.

        *url* is anything dulwich can fetch from (``https://``, ``ssh://``,
        ``git://``, ``file://`` or a local path).  Objects are stored in
        the repository at *path* (created if missing); its refs are left
        untouched.

        Raises:
            KeyError: If *ref* (default ``HEAD``) is not advertised by the
                remote.
        """
        repo = _open_repo(path, create=True)
        client, remote_path = get_transport_and_path(url)
        result = client.fetch(remote_path, repo)
        refs = {
            name: sha
            for name, sha in result.refs.items()
            if not name.endswith(b"^{}")
        }
        sha = _lookup_sha(refs, repo, ref)
        commit = _peel_to_commit(repo, sha)
        return cls(repo, commit.id, None, root=root)

    # --- Properties ---

    @property
    def writable(self) -> bool:
        """Whether writes (and :meth:`flush`) are allowed."""
        return self._ref_name is not None

    @property
    def ref_name(self) -> str | None:
        """The full branch ref (``refs/heads/...``), or ``None`` if read-only."""
        return self._ref_name.decode() if self._ref_name else None

    @property
    def commit_hash(self) -> str | None:
        """The 40-char hex SHA of the last flushed commit (``None`` before one exists)."""
        return self._base_commit.decode() if self._base_commit is not None else None

    @property
    def tree_hash(self) -> str:
        """The 40-char hex SHA of the working root tree, including unflushed changes."""
        return self._tree_oid.decode()

    @property
    def dirty(self) -> bool:
        """True if the working tree differs from the last flushed commit."""
        return self._tree_oid != self._base_tree

    # --- Internal helpers ---

    def _full(self, path: str) -> str:
        rel = _normalize_path(path)
        return "/".join(p for p in (self._prefix, rel) if p)

    def _readonly_error(self, verb: str) -> PermissionError:
        return PermissionError(f"Cannot {verb} read-only git tree view")

    def _entry(self, path: str) -> tuple[int, bytes] | None:
        return _lookup(self._repo, self._tree_oid, self._full(path))

    def _replace_entry(self, full: str, value: tuple[int, bytes] | None) -> None:
        if not full:
            # Root: only removal can address it.
            self._tree_oid = _empty_tree(self._repo)
            return
        new_oid = _set_entry(self._repo, self._tree_oid, full.split("/"), value, full)
        self._tree_oid = new_oid if new_oid is not None else _empty_tree(self._repo)

    def _write_blob(self, path: str, chunks: list[bytes]) -> None:
        """Store *chunks* at *path*, keeping the executable bit of a replaced file."""
        if not self.writable:
            raise self._readonly_error("write to")
        full = self._full(path)
        if not full:
            raise IsADirectoryError("/")
        existing = _lookup(self._repo, self._tree_oid, full)
        if existing is not None and _stat.S_ISDIR(existing[0]):
            raise IsADirectoryError("/" + full)
        mode = GIT_FILEMODE_BLOB
        if existing is not None and existing[0] == GIT_FILEMODE_BLOB_EXECUTABLE:
            mode = GIT_FILEMODE_BLOB_EXECUTABLE
        blob = Blob()
        blob.chunked = chunks
        self._repo.object_store.add_object(blob)
        self._replace_entry(full, (mode, blob.id))
        self._ops.append(f"Write {full}")

    # --- Read operations ---

    def stat(self, path: str) -> EntryStat:
        entry = self._entry(path)
        if entry is None:
            raise FileNotFoundError(path)
        mode, oid = entry
        entry_type = EntryType.from_mode(mode)
        if entry_type in (EntryType.FILE, EntryType.LINK):
            size = self._repo.object_store[oid].raw_length()
        else:
            size = 0
        return EntryStat(type=entry_type, size=size, mtime=None, mode=mode)

    def readdir(self, path: str) -> list[DirEntry]:
        entry = self._entry(path)
        if entry is None:
            raise FileNotFoundError(path)
        mode, oid = entry
        if not _stat.S_ISDIR(mode):
            raise NotADirectoryError(path)
        return [
            DirEntry(e.path.decode(), EntryType.from_mode(e.mode))
            for e in self._repo.object_store[oid].iteritems()
        ]

    def open(self, path: str, mode: str = "rb") -> BinaryIO:
        """Open a file-like object for reading or writing.

        ``"rb"`` returns a readable file over the blob.  ``"wb"`` returns a
        writable file that stages its content into the working tree on
        close (committed by :meth:`flush`).

        Raises:
            PermissionError: If *mode* is ``"wb"`` and the view is read-only.
        """
        if mode == "rb":
            entry = self._entry(path)
            if entry is None:
                raise FileNotFoundError(path)
            if _stat.S_ISDIR(entry[0]):
                raise IsADirectoryError(path)
            return BlobReader(self._repo.object_store[entry[1]].chunked)
        elif mode == "wb":
            if not self.writable:
                raise self._readonly_error("write to")
            return StagedWriter(self, path)
        else:
            raise ValueError(f"Unsupported mode: {mode!r}")

    # --- Write operations ---

    def mkdir(self, path: str) -> None:
        """Check that *path* can hold a directory.

        Directories exist in git only through the files they contain, so
        nothing is stored.

        Raises:
            FileExistsError: If a file occupies *path* or one of its parents.
        """
        if not self.writable:
            raise self._readonly_error("write to")
        full = self._full(path)
        if not full:
            return
        segments = full.split("/")
        for i in range(len(segments)):
            partial = "/".join(segments[: i + 1])
            entry = _lookup(self._repo, self._tree_oid, partial)
            if entry is None:
                return
            if not _stat.S_ISDIR(entry[0]):
                raise FileExistsError("/" + partial)

    def rm(self, path: str) -> None:
        if not self.writable:
            raise self._readonly_error("remove from")
        full = self._full(path)
        if _lookup(self._repo, self._tree_oid, full) is None:
            return
        self._replace_entry(full, None)
        self._ops.append(f"Remove {full or '/'}")

    def flush(self) -> None:
        """Commit the working tree onto the branch.

        Does nothing for read-only views or when nothing changed.

        Raises:
            StaleSnapshotError: If the branch has advanced since this view
                was opened (or last flushed).
        """
        if not self.writable or not self.dirty:
            return

        if self._message is not None:
            message = self._message
        elif len(self._ops) == 1:
            message = self._ops[0]
        else:
            message = f"Sync: {len(self._ops)} changes"

        commit = Commit()
        commit.tree = self._tree_oid
        commit.parents = [self._base_commit] if self._base_commit is not None else []
        commit.author = commit.committer = self._identity
        commit.author_time = commit.commit_time = int(time.time())
        commit.author_timezone = commit.commit_timezone = 0
        commit.encoding = b"UTF-8"
        commit.message = message.encode() + b"\n"
        self._repo.object_store.add_object(commit)

        if self._base_commit is None:
            moved = self._repo.refs.add_if_new(self._ref_name, commit.id)
        else:
            moved = self._repo.refs.set_if_equals(
                self._ref_name, self._base_commit, commit.id,
            )
        if not moved:
            raise StaleSnapshotError(
                f"Branch {self.ref_name!r} has advanced since this view was opened"
            )

        self._base_commit = commit.id
        self._base_tree = self._tree_oid
        self._ops = []
