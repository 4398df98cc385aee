"""treesync CLI: compare and sync trees on disk and in bare git repos."""

from ._helpers import main  # noqa: F401

# Import command modules to register Click commands with the main group.
from . import _sync  # noqa: F401
