from ._types import ApplyResult, ApplyStatus, Change, ChangeOp, SyncOptions
from ._exclude import ExcludeFilter
from .diff import compare_contents, diff, iter_files
from .exceptions import StaleSnapshotError, TypeMismatchError, UnknownOperationError
from .gittree import GitTreeFS
from .local import LocalFS
from .repo import SyncStore
from .sync import apply_changes, sync
from .view import DirEntry, EntryStat, EntryType, FilesystemView

__all__ = [
    "diff", "sync", "apply_changes", "compare_contents", "iter_files",
    "Change", "ChangeOp", "SyncOptions", "ApplyResult", "ApplyStatus",
    "FilesystemView", "EntryStat", "EntryType", "DirEntry",
    "LocalFS", "GitTreeFS", "SyncStore", "ExcludeFilter",
    "TypeMismatchError", "UnknownOperationError", "StaleSnapshotError",
]
