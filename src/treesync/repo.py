"""SyncStore: pairwise syncs between local directories, branches and remotes."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

from ._types import Change, SyncOptions
from .gittree import GitTreeFS, _open_repo
from .local import LocalFS
from .sync import sync


class SyncStore:
    """A bare git repository used as one side of a sync.

    Every method returns the lazy :func:`~treesync.sync` iterator; nothing
    happens until it is consumed.  Keyword arguments (``root``,
    ``no_delete``, ``ignore``) become :class:`SyncOptions` fields.

    Example::

        store = SyncStore.open("site.git")
        for change in store.local_to_store("./public", "site"):
            print(change)
    """

    def __init__(self, path: str | os.PathLike[str], *, author: str, email: str):
        self._path = Path(path)
        self._author = author
        self._email = email

    def __repr__(self) -> str:
        return f"SyncStore({str(self._path)!r})"

    @classmethod
    def open(
        cls,
        path: str | os.PathLike[str],
        *,
        create: bool = True,
        branch: str = "main",
        author: str = "treesync",
        email: str = "treesync@localhost",
    ) -> SyncStore:
        """Open or create a bare git repository.

        Args:
            path: Path to the bare repository.
            create: If True (default), create the repo when it doesn't exist.
                    If False, raise FileNotFoundError when missing.
            branch: Branch HEAD points to when creating (default "main").
            author: Default author name for commits.
            email: Default author email for commits.
        """
        _open_repo(path, create=create, branch=branch)
        return cls(path, author=author, email=email)

    @property
    def path(self) -> Path:
        return self._path

    def branch(self, name: str = "main", *, root: str = "/", message: str | None = None) -> GitTreeFS:
        """Return a writable view of branch *name*."""
        return GitTreeFS.open_branch(
            self._path, name, root=root, create=False,
            author=self._author, email=self._email, message=message,
        )

    def local_to_store(
        self, local_path: str | os.PathLike[str], branch: str = "main", *,
        dest_root: str = "/", message: str | None = None,
        options: SyncOptions | None = None, **overrides,
    ) -> Iterator[Change]:
        """Make *branch* (below *dest_root*) identical to *local_path*."""
        from_fs = LocalFS(local_path)
        to_fs = self.branch(branch, root=dest_root, message=message)
        return sync(from_fs, to_fs, options, **overrides)

    def store_to_store(
        self, from_branch: str, to_branch: str, *,
        from_root: str = "/", to_root: str = "/", message: str | None = None,
        options: SyncOptions | None = None, **overrides,
    ) -> Iterator[Change]:
        """Make *to_branch* identical to *from_branch* (branch, tag or commit)."""
        from_fs = GitTreeFS.snapshot(self._path, from_branch, root=from_root)
        to_fs = self.branch(to_branch, root=to_root, message=message)
        return sync(from_fs, to_fs, options, **overrides)

    def store_to_local(
        self, branch: str, local_path: str | os.PathLike[str], *,
        from_root: str = "/", options: SyncOptions | None = None, **overrides,
    ) -> Iterator[Change]:
        """Make *local_path* identical to *branch* (branch, tag or commit)."""
        from_fs = GitTreeFS.snapshot(self._path, branch, root=from_root)
        to_fs = LocalFS(local_path)
        return sync(from_fs, to_fs, options, **overrides)

    def url_to_store(
        self, url: str, branch: str = "main", *,
        ref: str | None = None, from_root: str = "/", dest_root: str = "/",
        message: str | None = None, options: SyncOptions | None = None, **overrides,
    ) -> Iterator[Change]:
        """Fetch *url* and make *branch* identical to its *ref* (default HEAD)."""
        from_fs = GitTreeFS.from_url(self._path, url, ref, root=from_root)
        to_fs = self.branch(branch, root=dest_root, message=message or f"Sync from {url}")
        return sync(from_fs, to_fs, options, **overrides)

    def url_to_local(
        self, url: str, local_path: str | os.PathLike[str], *,
        ref: str | None = None, from_root: str = "/",
        options: SyncOptions | None = None, **overrides,
    ) -> Iterator[Change]:
        """Fetch *url* into this store and make *local_path* identical to *ref*."""
        from_fs = GitTreeFS.from_url(self._path, url, ref, root=from_root)
        to_fs = LocalFS(local_path)
        return sync(from_fs, to_fs, options, **overrides)
