import socket
import struct
import threading
from contextlib import contextmanager

import pytest

from netfile.client import FileClient
from netfile.common.config import Settings
from netfile.crypto.blocks import payload_codec
from netfile.crypto.keys import generate_keypair
from netfile.server import FileServer
from netfile.storage.cache import FileCache
from netfile.storage.files import FileStore


class ChunkedConn:
    """In-memory socket that moves at most *chunk* bytes per call.

    Every *interrupt_every*-th call raises InterruptedError, like a system
    call cut short by a signal.
    """

    def __init__(self, data: bytes = b"", chunk: int = 1, interrupt_every: int = 0):
        self.inbox = bytearray(data)
        self.sent = bytearray()
        self.chunk = chunk
        self.interrupt_every = interrupt_every
        self.calls = 0

    def _tick(self):
        self.calls += 1
        if self.interrupt_every and self.calls % self.interrupt_every == 0:
            raise InterruptedError

    def send(self, data) -> int:
        self._tick()
        n = min(self.chunk, len(data))
        self.sent += bytes(data[:n])
        return n

    def recv(self, n: int) -> bytes:
        self._tick()
        out = bytes(self.inbox[:min(n, self.chunk)])
        del self.inbox[:len(out)]
        return out


def frames(*payloads: bytes) -> bytes:
    return b"".join(struct.pack("!I", len(p)) + p for p in payloads)


@pytest.fixture(scope="session")
def keypair():
    return generate_keypair(2048)


@pytest.fixture
def codec(keypair):
    return payload_codec(keypair, True)


@pytest.fixture
def store(tmp_path):
    root = tmp_path / "srv"
    root.mkdir()
    return FileStore(root)


@pytest.fixture
def make_server(store, keypair):
    def _make(cache_size: int = 10, **settings):
        s = Settings(root=store.root, cache_size=cache_size, **settings)
        return FileServer(s, keypair, FileCache(store, cache_size))
    return _make


@pytest.fixture
def server(make_server):
    return make_server()


@pytest.fixture
def connect_to(codec):
    """Open a socketpair session against a server's handle_client loop."""
    threads = []
    socks = []

    @contextmanager
    def _connect(srv, client_codec=None):
        a, b = socket.socketpair()
        socks.append(a)
        t = threading.Thread(target=srv.handle_client, args=(b, "socketpair"), daemon=True)
        t.start()
        threads.append(t)
        try:
            yield FileClient(a, client_codec or codec)
        finally:
            a.close()
            t.join(5)

    yield _connect
    for s in socks:
        s.close()
    for t in threads:
        t.join(5)
