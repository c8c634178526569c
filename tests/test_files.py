import os
import threading

import pytest

from netfile.common.errors import StorageError
from netfile.storage.files import FileStore, atomic_write


@pytest.mark.parametrize("name", [
    "../secret",
    "..",
    "a/../../secret",
    "/etc/passwd",
    "\\windows\\system32",
    "..\\secret",
    "",
    ".",
    "a\x00b",
])
def test_rejects_names_outside_root(store, name):
    with pytest.raises(StorageError):
        store.resolve(name)


def test_accepts_plain_and_nested_names(store):
    assert store.resolve("a.txt") == store.root / "a.txt"
    assert store.resolve("sub/b.txt") == store.root / "sub" / "b.txt"


def test_symlink_out_of_root_rejected(store, tmp_path):
    outside = tmp_path / "outside.txt"
    outside.write_bytes(b"secret")
    os.symlink(outside, store.root / "link.txt")
    with pytest.raises(StorageError):
        store.read("link.txt")


def test_read_write(store):
    store.write("a.bin", b"\x00\x01\x02")
    assert store.read("a.bin") == b"\x00\x01\x02"
    assert (store.root / "a.bin").read_bytes() == b"\x00\x01\x02"


def test_read_missing(store):
    with pytest.raises(StorageError, match="not found"):
        store.read("missing.txt")


def test_read_directory(store):
    (store.root / "d").mkdir()
    with pytest.raises(StorageError):
        store.read("d")


def test_write_into_missing_directory(store):
    with pytest.raises(StorageError):
        store.write("nodir/a.txt", b"x")
    assert not (store.root / "nodir").exists()


def test_atomic_write_leaves_no_temp_files(tmp_path):
    target = tmp_path / "f.txt"
    atomic_write(target, b"one")
    atomic_write(target, b"two")
    assert target.read_bytes() == b"two"
    assert os.listdir(tmp_path) == ["f.txt"]


def test_failed_write_keeps_old_content(tmp_path, monkeypatch):
    target = tmp_path / "f.txt"
    atomic_write(target, b"old")

    def boom(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(OSError):
        atomic_write(target, b"new")
    assert target.read_bytes() == b"old"
    assert os.listdir(tmp_path) == ["f.txt"]


@pytest.mark.parametrize("alias, key", [
    ("f", "f"),
    ("./f", "f"),
    ("sub//f", "sub/f"),
    ("sub\\f", "sub/f"),
    ("./sub/./f", "sub/f"),
])
def test_aliases_share_one_key(store, alias, key):
    assert store.key(alias) == key


def test_locks_are_dropped_when_unused(store):
    with store.lock("a"):
        with store.lock("b"):
            assert set(store._locks) == {"a", "b"}
    for i in range(100):
        with store.lock(f"f{i}"):
            pass
    assert store._locks == {}


def test_aliases_share_one_lock(store):
    entered = threading.Event()

    def other():
        with store.lock("./f"):
            entered.set()

    with store.lock("f"):
        t = threading.Thread(target=other, daemon=True)
        t.start()
        assert not entered.wait(0.2)
    t.join(5)
    assert entered.is_set()
    assert store._locks == {}
