"""File-like objects over git blobs.

Blob content is handled as dulwich's list of chunks (``Blob.chunked``)
so neither reading nor staging joins it into one buffer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .gittree import GitTreeFS


class BlobReader:
    """Read-only file-like object over a blob's chunks."""

    def __init__(self, chunks: list[bytes]):
        self._chunks = chunks
        self._index = 0
        self._offset = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError("I/O operation on closed file.")
        parts = []
        while self._index < len(self._chunks) and size != 0:
            chunk = self._chunks[self._index]
            end = len(chunk) if size < 0 else min(len(chunk), self._offset + size)
            parts.append(chunk[self._offset:end])
            if size > 0:
                size -= end - self._offset
            if end == len(chunk):
                self._index += 1
                self._offset = 0
            else:
                self._offset = end
        return b"".join(parts)

    def close(self) -> None:
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class StagedWriter:
    """Writable file-like object that stages a blob into its view on close.

    Nothing is staged if the ``with`` block exits with an exception.
    """

    def __init__(self, view: GitTreeFS, path: str):
        self._view = view
        self._path = path
        self._chunks: list[bytes] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return False

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("I/O operation on closed file.")
        self._chunks.append(bytes(data))
        return len(data)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._view._write_blob(self._path, self._chunks)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        else:
            self._closed = True
        return False
