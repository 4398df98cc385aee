"""Shared fixtures for treesync tests."""

import io

import pytest
from click.testing import CliRunner

from treesync._paths import join_path, parent_path
from treesync.view import DirEntry, EntryStat, EntryType, FilesystemView


# ---------------------------------------------------------------------------
# In-memory view
# ---------------------------------------------------------------------------

class _CountingReader(io.BytesIO):
    def __init__(self, fs, data):
        super().__init__(data)
        self._fs = fs

    def read(self, size=-1):
        chunk = super().read(size)
        self._fs.bytes_read += len(chunk)
        return chunk


class _MemoryWriter(io.BytesIO):
    """Stores its content into the owning MemoryFS on close."""

    def __init__(self, fs, path):
        super().__init__()
        self._fs = fs
        self._path = path

    def write(self, data):
        self._fs.writes.append((self._path, len(data)))
        return super().write(data)

    def close(self):
        if not self.closed:
            self._fs._store(self._path, self.getvalue())
        super().close()


class MemoryFS(FilesystemView):
    """A FilesystemView over dicts, for exercising the engine in isolation.

    Files map path -> bytes.  ``report_mtime=False`` makes ``stat``
    return ``mtime=None``; ``utime_supported=False`` makes ``utime`` raise
    NotImplementedError.  Paths in ``fail_write`` raise OSError on open.
    ``readdir`` lists in reverse name order so sorting is exercised.
    """

    def __init__(self, files=None, *, report_mtime=True, utime_supported=True):
        self.files: dict[str, bytes] = {}
        self.mtimes: dict[str, float] = {}
        self.dirs: set[str] = {"/"}
        self.others: set[str] = set()
        self.report_mtime = report_mtime
        self.utime_supported = utime_supported
        self.fail_write: set[str] = set()
        self.flushes = 0
        self.bytes_read = 0
        self.writes: list[tuple[str, int]] = []
        self.removed: list[str] = []
        self._clock = 5000.0
        for path, data in (files or {}).items():
            self.put(path, data)

    def __repr__(self):
        return f"MemoryFS({len(self.files)} files)"

    # --- test helpers ---

    def put(self, path, data, mtime=1000.0):
        path = join_path(path)
        if isinstance(data, str):
            data = data.encode()
        self._make_parents(path)
        self.files[path] = data
        self.mtimes[path] = mtime

    def add_dir(self, path):
        path = join_path(path)
        self._make_parents(path)
        self.dirs.add(path)

    def add_other(self, path):
        path = join_path(path)
        self._make_parents(path)
        self.others.add(path)

    def read(self, path):
        return self.files[join_path(path)]

    def snapshot(self):
        """Return {path: bytes} for every file."""
        return dict(self.files)

    def _make_parents(self, path):
        p = parent_path(path)
        while p != "/":
            self.dirs.add(p)
            p = parent_path(p)

    def _store(self, path, data):
        self._clock += 1
        self.files[path] = data
        self.mtimes[path] = self._clock

    def _all_paths(self):
        return self.files.keys() | self.dirs | self.others

    # --- FilesystemView ---

    def stat(self, path):
        path = join_path(path)
        if path in self.files:
            mtime = self.mtimes[path] if self.report_mtime else None
            return EntryStat(EntryType.FILE, len(self.files[path]), mtime, 0o100644)
        if path in self.dirs:
            return EntryStat(EntryType.DIRECTORY, 0, None, 0o040000)
        if path in self.others:
            return EntryStat(EntryType.OTHER, 0, None, 0o010644)
        raise FileNotFoundError(path)

    def readdir(self, path):
        path = join_path(path)
        if path in self.files:
            raise NotADirectoryError(path)
        if path not in self.dirs:
            raise FileNotFoundError(path)
        entries = []
        for p in self._all_paths():
            head, _, name = p.rpartition("/")
            if name and (head or "/") == path:
                entries.append(DirEntry(name, self.stat(p).type))
        return sorted(entries, key=lambda e: e.name, reverse=True)

    def mkdir(self, path):
        path = join_path(path)
        if path in self.files:
            raise FileExistsError(path)
        self._make_parents(path)
        self.dirs.add(path)

    def open(self, path, mode="rb"):
        path = join_path(path)
        if mode == "rb":
            if path in self.dirs:
                raise IsADirectoryError(path)
            if path not in self.files:
                raise FileNotFoundError(path)
            return _CountingReader(self, self.files[path])
        if mode == "wb":
            if path in self.fail_write:
                raise OSError(f"write refused: {path}")
            if path in self.dirs:
                raise IsADirectoryError(path)
            if parent_path(path) not in self.dirs:
                raise FileNotFoundError(parent_path(path))
            return _MemoryWriter(self, path)
        raise ValueError(f"Unsupported mode: {mode!r}")

    def rm(self, path):
        path = join_path(path)
        self.removed.append(path)
        prefix = path.rstrip("/") + "/"
        for p in list(self._all_paths()):
            if p == path or p.startswith(prefix):
                self.files.pop(p, None)
                self.mtimes.pop(p, None)
                self.dirs.discard(p)
                self.others.discard(p)
        self.dirs.add("/")

    def utime(self, path, mtime):
        if not self.utime_supported:
            raise NotImplementedError("MemoryFS without times")
        self.mtimes[join_path(path)] = mtime

    def flush(self):
        self.flushes += 1


@pytest.fixture
def memfs():
    """Factory: memfs({"/a.txt": "hi"}, report_mtime=False)."""
    return MemoryFS


# ---------------------------------------------------------------------------
# Repository and CLI fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def repo_path(tmp_path):
    """Return a path to a not-yet-created repo."""
    return str(tmp_path / "test.git")


@pytest.fixture
def local_dir(tmp_path):
    """A local directory with a.txt, b.txt and sub/c.txt."""
    d = tmp_path / "local"
    d.mkdir()
    (d / "a.txt").write_text("alpha")
    (d / "b.txt").write_text("beta")
    (d / "sub").mkdir()
    (d / "sub" / "c.txt").write_text("gamma")
    return d
