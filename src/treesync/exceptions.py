"""Exceptions for treesync."""


class TypeMismatchError(Exception):
    """Raised when an entry is neither a regular file nor a directory.

    Symlinks that cannot be followed, submodules and other exotic entry
    types cannot be compared or copied; the enclosing ``diff`` or
    ``sync`` call is aborted.
    """

    def __init__(self, path: str):
        super().__init__(f"Can only diff files and directories. At {path}")
        self.path = path


class UnknownOperationError(ValueError):
    """Raised when a change record carries an op outside add/remove/change."""

    def __init__(self, op, path: str):
        super().__init__(f"Unknown operation {op!r} at {path}")
        self.op = op
        self.path = path


class StaleSnapshotError(Exception):
    """Raised when a git tree view is flushed after its branch has advanced.

    Re-open the view with :meth:`~treesync.GitTreeFS.open_branch` and sync again.
    """
