"""Exclude-filter support for sync operations.

Combines ``--exclude`` patterns and ``--exclude-from`` files into a
single predicate that can be passed as ``SyncOptions.ignore``.

Pattern syntax follows gitignore rules (implemented by
``dulwich.ignore.IgnoreFilter``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from dulwich.ignore import IgnoreFilter

from ._types import Change


class ExcludeFilter:
    """Combines --exclude patterns and --exclude-from files.

    Instances are callable with a :class:`~treesync.Change` and return
    True when the change's path, or any directory above it, is excluded.
    """

    def __init__(
        self,
        *,
        patterns: Sequence[str] | None = None,
        exclude_from: str | None = None,
    ) -> None:
        base_lines: list[bytes] = []
        for p in patterns or ():
            base_lines.append(p.encode("utf-8"))
        if exclude_from is not None:
            path = Path(exclude_from)
            for raw in path.read_bytes().splitlines():
                line = raw.strip()
                if line and not line.startswith(b"#"):
                    base_lines.append(line)
        self._base: IgnoreFilter | None = (
            IgnoreFilter(base_lines) if base_lines else None
        )

    @property
    def active(self) -> bool:
        """True if any filtering is configured."""
        return self._base is not None

    def is_excluded(self, rel_path: str, *, is_dir: bool = False) -> bool:
        """Check a single path (no leading slash) against the patterns."""
        if self._base is None:
            return False
        check = rel_path + "/" if is_dir else rel_path
        return self._base.is_ignored(check) is True

    def __call__(self, change: Change) -> bool:
        if self._base is None:
            return False
        rel = change.path.strip("/")
        if not rel:
            return False
        parts = rel.split("/")
        for depth in range(1, len(parts)):
            if self.is_excluded("/".join(parts[:depth]), is_dir=True):
                return True
        # The leaf may be either kind (a removal can name a directory).
        return self.is_excluded(rel) or self.is_excluded(rel, is_dir=True)
