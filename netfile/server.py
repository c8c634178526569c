# netfile/server.py
"""TCP file server (no TLS). Stores PUT uploads and serves GETs through an LRU cache."""
import argparse
import logging
import socket
import sys
import threading
from typing import Optional
from rich.markup import escape

from netfile.common.config import IntegrityPolicy, Settings
from netfile.common.errors import (
    CryptoError, IntegrityMismatch, NetfileError, ProtocolViolation, StorageError, TransportError,
)
from netfile.common.framing import recv_frame
from netfile.common.log import console, setup_logging
from netfile.common.protocol import (
    ErrorResponse, GetRequest, OkResponse, PutRequest, Request, Response, read_request, write_response,
)
from netfile.common.utils import digest
from netfile.crypto.blocks import payload_codec
from netfile.crypto.keys import KeyPair, load_keypair
from netfile.storage.cache import FileCache
from netfile.storage.files import FileStore

log = logging.getLogger(__name__)

ACCEPT_POLL_S = 0.5


class FileServer:
    def __init__(self, settings: Settings, keys: Optional[KeyPair], cache: FileCache):
        self.settings = settings
        self.codec = payload_codec(keys, settings.encrypt)
        self.cache = cache
        self._stopped = threading.Event()

    # --- request handlers --------------------------------------------------

    def handle_put(self, req: PutRequest) -> OkResponse:
        actual = digest(req.ciphertext)
        if actual != req.digest:
            if self.settings.server_integrity == IntegrityPolicy.REJECT:
                raise IntegrityMismatch(req.digest, actual)
            log.warning("PUT %s: digest mismatch (sent %s, got %s); storing anyway",
                        req.filename, req.digest, actual)
        # refuse bad names before spending time on decryption
        self.cache.store.resolve(req.filename)
        content = self.codec.decrypt(req.ciphertext, req.plaintext_size)
        self.cache.store_file(req.filename, content)
        log.info("PUT %s (%d bytes)", req.filename, len(content))
        return OkResponse(filename=req.filename, size=len(content), digest=actual)

    def handle_get(self, req: GetRequest) -> OkResponse:
        content = self.cache.lookup(req.filename)
        body = self.codec.encrypt(content)
        log.info("GET %s (%d bytes)", req.filename, len(content))
        return OkResponse(filename=req.filename, size=len(content), digest=digest(body), payload=body)

    def handle_request(self, req: Request) -> Response:
        try:
            if isinstance(req, PutRequest):
                return self.handle_put(req)
            return self.handle_get(req)
        except (StorageError, CryptoError, IntegrityMismatch) as e:
            log.warning("%s %s failed: %s", req.kind, req.filename, e)
            return ErrorResponse(message=str(e))

    # --- connection loop ---------------------------------------------------

    def handle_client(self, conn, addr):
        """Serve requests on *conn* until the peer closes or the session fails."""
        log.info("client connected %s", addr)
        try:
            while True:
                try:
                    header = recv_frame(conn, self.settings.max_frame)
                    if header is None:
                        break
                    req = read_request(conn, header, self.settings.max_frame)
                except ProtocolViolation as e:
                    # the stream may be out of step now, so answer and hang up
                    log.warning("protocol violation from %s: %s", addr, e)
                    write_response(conn, ErrorResponse(message=str(e)))
                    break
                write_response(conn, self.handle_request(req))
        except TransportError as e:
            log.warning("connection to %s failed: %s", addr, e)
        except Exception:
            log.exception("unexpected error while serving %s", addr)
        finally:
            conn.close()
            log.info("client disconnected %s", addr)

    def bind(self, host: str, port: int) -> socket.socket:
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, port))
            s.listen(1024)
        except OSError as e:
            s.close()
            raise TransportError(f"cannot listen on {host}:{port}: {e}") from e
        return s

    def serve_forever(self, sock: socket.socket):
        """Accept connections until shutdown(); one thread per connection."""
        sock.settimeout(ACCEPT_POLL_S)
        try:
            while not self._stopped.is_set():
                try:
                    conn, addr = sock.accept()
                except (socket.timeout, InterruptedError):
                    continue
                except OSError as e:
                    if self._stopped.is_set():
                        break
                    log.error("accept failed: %s", e)
                    continue
                t = threading.Thread(target=self.handle_client, args=(conn, addr), daemon=True)
                t.start()
        finally:
            sock.close()

    def shutdown(self):
        self._stopped.set()


def _non_negative(s: str) -> int:
    v = int(s)
    if v < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {v}")
    return v


def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog="netfile-server", description="Initiate a network file server.")
    p.add_argument("-p", dest="port", type=int, help="port on which to listen for connections (default 9000)")
    p.add_argument("-l", dest="cache_size", type=_non_negative, help="number of entries in cache, 0 disables (default 10)")
    p.add_argument("-r", dest="root", help="directory files are stored in (default: working directory)")
    args = p.parse_args(argv)

    settings = Settings.from_env(port=args.port, cache_size=args.cache_size, root=args.root)
    setup_logging(settings.log_level)
    try:
        keys = load_keypair(settings.public_key, settings.private_key) if settings.encrypt else None
        server = FileServer(settings, keys, FileCache(FileStore(settings.root), settings.cache_size))
        sock = server.bind(settings.host, settings.port)
    except NetfileError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        return 1
    console.print(f"[bold cyan]netfile server listening on {settings.host}:{settings.port}"
                  f" (cache {settings.cache_size}, root {server.cache.store.root})[/]")
    try:
        server.serve_forever(sock)
    except KeyboardInterrupt:
        console.print("[cyan]shutting down[/]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
