"""Data structures for diff/sync operations."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class ChangeOp(str, Enum):
    """Kind of change: ``ADD``, ``REMOVE``, or ``CHANGE``."""
    ADD = "add"
    REMOVE = "remove"
    CHANGE = "change"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass(frozen=True, slots=True)
class Change:
    """One divergence between two trees.

    Attributes:
        op: :class:`ChangeOp` to apply to the destination.
        path: Path relative to the comparison root, always starting
            with ``/``.
    """
    op: ChangeOp
    path: str

    def __str__(self) -> str:
        return f"{self.op} {self.path}"

    def to_dict(self) -> dict[str, str]:
        """Return the ``{"op": ..., "path": ...}`` record form."""
        return {"op": str(self.op), "path": self.path}


@dataclass
class SyncOptions:
    """Options scoped to a single :func:`~treesync.sync` call.

    Attributes:
        root: Path on both views where comparison starts.
        no_delete: Never remove anything from the destination.  Skipped
            removals are not emitted.
        ignore: Predicate called with each :class:`Change`; returning
            true skips the change without applying or emitting it.
    """
    root: str = "/"
    no_delete: bool = False
    ignore: Callable[[Change], bool] | None = None

    def __post_init__(self):
        if self.ignore is not None and not callable(self.ignore):
            raise TypeError(f"ignore must be callable, got {type(self.ignore).__name__}")

    def is_ignored(self, change: Change) -> bool:
        if self.ignore is None:
            return False
        return bool(self.ignore(change))


class ApplyStatus(str, Enum):
    """Outcome of applying one change to the destination."""
    APPLIED = "applied"
    METADATA_DEGRADED = "metadata_degraded"
    SKIPPED = "skipped"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """A change together with how it was applied.

    Attributes:
        change: The :class:`Change` emitted by the comparator.
        status: :class:`ApplyStatus` value.
        bytes_copied: Bytes streamed to the destination (0 for removals).
        detail: Why metadata was degraded or the change skipped.
    """
    change: Change
    status: ApplyStatus = ApplyStatus.APPLIED
    bytes_copied: int = 0
    detail: str | None = None

    @property
    def degraded(self) -> bool:
        return self.status == ApplyStatus.METADATA_DEGRADED
