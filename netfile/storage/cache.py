# storage/cache.py
"""Bounded LRU cache of file contents in front of a FileStore.

The filesystem stays the system of record: reads fill the cache, writes go
straight to disk and then drop the cached copy.
"""
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import List

from netfile.storage.files import FileStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    filename: str
    content: bytes
    size: int


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class FileCache:
    def __init__(self, store: FileStore, capacity: int):
        if capacity < 0:
            raise ValueError(f"cache capacity must be >= 0, got {capacity}")
        self.store = store
        self.capacity = capacity
        self.stats = CacheStats()
        # oldest use first; a re-inserted key goes to the end like a fresh use
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def __contains__(self, filename: str) -> bool:
        with self._lock:
            return filename in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[str]:
        """Cached canonical filenames, least recently used first."""
        with self._lock:
            return list(self._entries)

    def _get(self, filename: str):
        with self._lock:
            entry = self._entries.get(filename)
            if entry is None:
                self.stats.misses += 1
                return None
            self._entries.move_to_end(filename)
            self.stats.hits += 1
            return entry

    def _put(self, filename: str, content: bytes) -> None:
        if self.capacity == 0:
            return
        with self._lock:
            self._entries[filename] = CacheEntry(filename, content, len(content))
            self._entries.move_to_end(filename)
            while len(self._entries) > self.capacity:
                victim, _ = self._entries.popitem(last=False)
                self.stats.evictions += 1
                log.debug("evicted %s from cache", victim)

    def lookup(self, filename: str) -> bytes:
        """Return the content of *filename*, from cache or disk."""
        key = self.store.key(filename)
        entry = self._get(key)
        if entry is not None:
            return entry.content
        # held across read + insert so a concurrent store_file() cannot slip
        # between them and leave the older content cached
        with self.store.lock(key):
            content = self.store.read(key)
            self._put(key, content)
        return content

    def store_file(self, filename: str, content: bytes) -> None:
        """Write through to disk, then drop any cached copy."""
        key = self.store.key(filename)
        with self.store.lock(key):
            self.store.write(key, content)
            self.invalidate(key)

    def invalidate(self, filename: str) -> None:
        key = self.store.key(filename)
        with self._lock:
            self._entries.pop(key, None)
