"""Apply the output of :func:`~treesync.diff` to a destination tree.

Changes are pulled from the comparator one at a time and each one is
fully applied (including its byte transfer) before the next is
requested.  There is no retry and no rollback: the first failing change
ends the sync with its exception, and everything applied before it
stays applied.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from collections.abc import Iterator
from contextlib import closing

from ._paths import join_path, parent_path
from ._types import ApplyResult, ApplyStatus, Change, ChangeOp, SyncOptions
from .diff import _CHUNK_SIZE, diff, iter_files
from .exceptions import TypeMismatchError, UnknownOperationError
from .view import FilesystemView

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _resolve_options(options: SyncOptions | None, overrides: dict) -> SyncOptions:
    if options is None:
        return SyncOptions(**overrides)
    if overrides:
        return dataclasses.replace(options, **overrides)
    return options


def _copy_file(
    from_fs: FilesystemView, to_fs: FilesystemView, path: str, chunk_size: int,
) -> int:
    """Stream one file from *from_fs* to *to_fs*; return the bytes copied."""
    to_fs.mkdir(parent_path(path))
    total = 0
    with from_fs.open(path, "rb") as src, to_fs.open(path, "wb") as dst:
        while True:
            chunk = src.read(chunk_size)
            if not chunk:
                break
            dst.write(chunk)
            total += len(chunk)
    return total


def _propagate_mtime(from_fs: FilesystemView, to_fs: FilesystemView, path: str) -> str | None:
    """Copy the source mtime of *path* to the destination.

    Returns ``None`` on success (or when the source has no mtime to
    give), otherwise the reason the destination kept its own time.
    """
    try:
        mtime = from_fs.stat(path).mtime
        if mtime is None:
            return None
        to_fs.utime(path, mtime)
    except (NotImplementedError, OSError) as exc:
        logger.debug("Modification time not propagated for %s: %s", path, exc)
        return str(exc) or type(exc).__name__
    return None


def _apply_copy(
    from_fs: FilesystemView,
    to_fs: FilesystemView,
    change: Change,
    full: str,
    chunk_size: int,
) -> ApplyResult:
    """Apply an ``add`` or ``change``: copy the file, or every file of a directory."""
    src_stat = from_fs.stat(full)
    if src_stat.is_dir:
        to_fs.mkdir(full)
        paths = list(iter_files(from_fs, full))
    elif src_stat.is_file:
        paths = [full]
    else:
        raise TypeMismatchError(full)

    copied = 0
    degraded: str | None = None
    for path in paths:
        copied += _copy_file(from_fs, to_fs, path, chunk_size)
        reason = _propagate_mtime(from_fs, to_fs, path)
        if reason is not None and degraded is None:
            degraded = reason

    if degraded is not None:
        return ApplyResult(change, ApplyStatus.METADATA_DEGRADED, copied, degraded)
    return ApplyResult(change, ApplyStatus.APPLIED, copied)


def _flush(to_fs: FilesystemView, after_error: bool) -> None:
    """Flush *to_fs*; after a failed change, a flush error is only logged."""
    if not after_error:
        to_fs.flush()
        return
    try:
        to_fs.flush()
    except Exception:
        logger.warning("Flush of %r failed after an earlier error", to_fs, exc_info=True)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def apply_changes(
    from_fs: FilesystemView,
    to_fs: FilesystemView,
    options: SyncOptions | None = None,
    *,
    chunk_size: int = _CHUNK_SIZE,
    **overrides,
) -> Iterator[ApplyResult]:
    """Make *to_fs* match *from_fs*, yielding an :class:`ApplyResult` per change.

    Keyword *overrides* (``root``, ``no_delete``, ``ignore``) replace the
    matching :class:`SyncOptions` fields.

    Changes rejected by ``options.ignore`` are neither applied nor
    yielded.  Removals suppressed by ``no_delete`` are yielded with
    :attr:`ApplyStatus.SKIPPED`; so is an ``add`` that would replace the
    entry whose removal was suppressed or ignored.

    ``to_fs.flush()`` is called exactly once, after the last change or
    when iteration stops early.  When a change has already failed, a
    flush failure is logged and the original exception propagates.

    Raises:
        UnknownOperationError: If a change carries an unknown op.
        TypeMismatchError: If an entry is neither a file nor a directory.
        OSError: Any read, write or removal failure of the views.
    """
    options = _resolve_options(options, overrides)
    counts: Counter[str] = Counter()
    blocked: str | None = None
    failed = False
    try:
        for change in diff(from_fs, to_fs, options.root):
            if options.is_ignored(change):
                logger.debug("Ignored %s", change)
                counts["ignored"] += 1
                # An ignored removal leaves the entry in place, like no_delete.
                blocked = change.path if change.op == ChangeOp.REMOVE else None
                continue

            pending_block, blocked = blocked, None
            full = join_path(options.root, change.path)

            if change.op == ChangeOp.REMOVE:
                if options.no_delete:
                    blocked = change.path
                    counts["skipped"] += 1
                    yield ApplyResult(change, ApplyStatus.SKIPPED, detail="no_delete")
                    continue
                to_fs.rm(full)
                result = ApplyResult(change)
            elif change.op in (ChangeOp.ADD, ChangeOp.CHANGE):
                if change.path == pending_block:
                    logger.warning(
                        "Not replacing %s: the existing entry would have to be removed", full,
                    )
                    counts["skipped"] += 1
                    yield ApplyResult(
                        change, ApplyStatus.SKIPPED,
                        detail="replacement requires removal",
                    )
                    continue
                result = _apply_copy(from_fs, to_fs, change, full, chunk_size)
            else:
                raise UnknownOperationError(change.op, change.path)

            counts[str(change.op)] += 1
            if result.degraded:
                counts["degraded"] += 1
            logger.debug("Applied %s (%s)", change, result.status)
            yield result
    except Exception:
        failed = True
        raise
    finally:
        _flush(to_fs, after_error=failed)
        logger.info(
            "Synced %r -> %r: %d added, %d changed, %d removed, %d skipped, %d ignored",
            from_fs, to_fs,
            counts["add"], counts["change"], counts["remove"],
            counts["skipped"], counts["ignored"],
        )


def sync(
    from_fs: FilesystemView,
    to_fs: FilesystemView,
    options: SyncOptions | None = None,
    *,
    chunk_size: int = _CHUNK_SIZE,
    **overrides,
) -> Iterator[Change]:
    """Make *to_fs* match *from_fs*, yielding each change once it is applied.

    Changes filtered by ``ignore`` or suppressed by ``no_delete`` are not
    yielded.  See :func:`apply_changes` for the details and for per-change
    outcomes (including degraded metadata).

    Example::

        for change in sync(LocalFS("site"), GitTreeFS.open_branch("site.git")):
            print(change)
    """
    results = apply_changes(from_fs, to_fs, options, chunk_size=chunk_size, **overrides)
    with closing(results):
        for result in results:
            if result.status != ApplyStatus.SKIPPED:
                yield result.change
