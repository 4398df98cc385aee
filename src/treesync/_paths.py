"""Path helpers shared by the comparator, the executor and the views.

All paths handed to a :class:`~treesync.view.FilesystemView` are
slash-separated and rooted at ``/``.  Internally views work with the
normalized form: no leading or trailing slash, ``""`` for the root.
"""

from __future__ import annotations

import os


def _normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a path: strip leading/trailing slashes, reject bad segments.

    Returns ``""`` for the root.
    """
    path = os.fspath(path)
    if os.name == "nt":
        path = path.replace("\\", "/")
    path = path.strip("/")
    if not path:
        return ""
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


def join_path(base: str, *parts: str) -> str:
    """Join slash paths into a normalized absolute path (``/a/b``)."""
    segments = [_normalize_path(p) for p in (base, *parts)]
    return "/" + "/".join(s for s in segments if s)


def parent_path(path: str) -> str:
    """Return the absolute parent of *path* (``/`` for top-level entries)."""
    norm = _normalize_path(path)
    head, _, _ = norm.rpartition("/")
    return "/" + head
