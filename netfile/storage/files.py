# storage/files.py
"""Filesystem store rooted at one directory, with per-filename locks."""
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List

from netfile.common.errors import StorageError

log = logging.getLogger(__name__)


def atomic_write(path: Path, data: bytes) -> None:
    """Write *data* to a temp file beside *path*, then rename it into place.

    Readers see either the old file or the complete new one, never a
    truncated mix.
    """
    path = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class FileStore:
    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        # canonical key -> [lock, holders + waiters]; dropped when unused
        self._locks: Dict[str, List] = {}
        self._locks_guard = threading.Lock()

    def resolve(self, name: str) -> Path:
        """Map a request filename to a path inside the root, or refuse it."""
        if not name or "\x00" in name or "\n" in name:
            raise StorageError(f"invalid filename {name!r}")
        # both separators count: a client on another OS may send either
        parts = PurePosixPath(name.replace("\\", "/")).parts
        if name.startswith(("/", "\\")) or os.path.isabs(name):
            raise StorageError(f"absolute paths are not allowed: {name!r}")
        if ".." in parts:
            raise StorageError(f"path escapes the storage root: {name!r}")
        target = self.root.joinpath(*parts).resolve()
        if target == self.root or not target.is_relative_to(self.root):
            raise StorageError(f"path escapes the storage root: {name!r}")
        return target

    def key(self, name: str) -> str:
        """Canonical name shared by every alias of a file ('f', './f', 'sub//f')."""
        return self.resolve(name).relative_to(self.root).as_posix()

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        key = self.key(name)
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def read(self, name: str) -> bytes:
        path = self.resolve(name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise StorageError(f"file not found: {name}") from None
        except IsADirectoryError:
            raise StorageError(f"not a regular file: {name}") from None
        except OSError as e:
            raise StorageError(f"file could not be read: {name}: {e.strerror}") from e

    def write(self, name: str, data: bytes) -> None:
        path = self.resolve(name)
        try:
            atomic_write(path, data)
        except OSError as e:
            raise StorageError(f"file could not be written: {name}: {e.strerror}") from e
        log.debug("wrote %d bytes to %s", len(data), path)
