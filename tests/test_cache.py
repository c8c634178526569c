import threading

import pytest

from netfile.common.errors import StorageError
from netfile.storage.cache import FileCache


def seed(store, *names):
    for n in names:
        store.write(n, f"content of {n}".encode())


def test_lookup_reads_through(store):
    seed(store, "a")
    cache = FileCache(store, 2)
    assert cache.lookup("a") == b"content of a"
    assert "a" in cache
    assert cache.stats.misses == 1


def test_hit_is_served_from_memory(store):
    seed(store, "a")
    cache = FileCache(store, 2)
    cache.lookup("a")
    # changed behind the cache's back: a hit must not touch the disk
    (store.root / "a").write_bytes(b"changed")
    assert cache.lookup("a") == b"content of a"
    assert cache.stats.hits == 1


@pytest.mark.parametrize("capacity", [1, 3, 5])
def test_capacity_plus_one_evicts_first(store, capacity):
    keys = [f"k{i}" for i in range(1, capacity + 2)]
    seed(store, *keys)
    cache = FileCache(store, capacity)
    for k in keys:
        cache.lookup(k)
    assert "k1" not in cache
    assert cache.keys() == keys[1:]
    assert cache.stats.evictions == 1


def test_recent_use_protects_entry(store):
    seed(store, "k1", "k2", "k3", "k4", "k5")
    cache = FileCache(store, 3)
    for k in ("k1", "k2", "k3", "k4"):
        cache.lookup(k)
    assert cache.keys() == ["k2", "k3", "k4"]
    cache.lookup("k2")
    cache.lookup("k5")
    assert "k2" in cache
    assert "k3" not in cache
    assert cache.keys() == ["k4", "k2", "k5"]


def test_zero_capacity_disables_cache(store):
    seed(store, "a")
    cache = FileCache(store, 0)
    assert cache.lookup("a") == b"content of a"
    assert len(cache) == 0
    (store.root / "a").write_bytes(b"changed")
    assert cache.lookup("a") == b"changed"


def test_negative_capacity(store):
    with pytest.raises(ValueError):
        FileCache(store, -1)


def test_store_file_invalidates(store):
    cache = FileCache(store, 4)
    cache.store_file("f", b"v1")
    assert cache.lookup("f") == b"v1"
    cache.store_file("f", b"v2")
    assert "f" not in cache
    assert cache.lookup("f") == b"v2"
    assert (store.root / "f").read_bytes() == b"v2"


def test_alias_write_invalidates_cached_name(store):
    cache = FileCache(store, 4)
    cache.store_file("f", b"v1")
    assert cache.lookup("f") == b"v1"
    cache.store_file("./f", b"v2")
    assert cache.lookup("f") == b"v2"


def test_cache_keys_are_canonical(store):
    (store.root / "sub").mkdir()
    seed(store, "sub/f")
    cache = FileCache(store, 4)
    assert cache.lookup("./sub/f") == b"content of sub/f"
    assert cache.lookup("sub//f") == b"content of sub/f"
    assert cache.keys() == ["sub/f"]
    assert cache.stats.hits == 1


def test_missing_file_is_not_cached(store):
    cache = FileCache(store, 4)
    with pytest.raises(StorageError):
        cache.lookup("nope")
    assert len(cache) == 0


def test_traversal_never_reaches_disk(store, tmp_path):
    (tmp_path / "secret").write_bytes(b"top secret")
    cache = FileCache(store, 4)
    with pytest.raises(StorageError):
        cache.lookup("../secret")
    assert len(cache) == 0


def test_concurrent_puts_and_gets_end_consistent(store):
    cache = FileCache(store, 2)
    cache.store_file("f", b"v0")
    errors = []

    def writer():
        for i in range(1, 51):
            cache.store_file("f", f"v{i}".encode())

    def reader():
        try:
            for _ in range(200):
                assert cache.lookup("f").startswith(b"v")
        except AssertionError as e:
            errors.append(e)

    threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert not errors
    assert cache.lookup("f") == b"v50"
