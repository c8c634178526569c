# netfile/client.py
"""Console client: one PUT or GET per invocation over a single TCP connection."""
import argparse
import logging
import socket
import sys
from contextlib import closing
from pathlib import Path
from typing import Optional
from pydantic import ValidationError
from rich.markup import escape

from netfile.common.config import DEFAULT_MAX_FRAME, Settings
from netfile.common.errors import (
    IntegrityMismatch, MalformedHeader, NetfileError, ProtocolViolation, RemoteError, StorageError,
    TransportError,
)
from netfile.common.framing import send_frame
from netfile.common.log import console, setup_logging
from netfile.common.protocol import (
    ERROR, GetRequest, OkResponse, PutRequest, TransferState, encode_request_header,
    read_response, read_response_body, read_response_header,
)
from netfile.common.utils import digest, verify_digest
from netfile.crypto.blocks import payload_codec
from netfile.crypto.keys import load_keypair
from netfile.storage.files import atomic_write

log = logging.getLogger(__name__)


def connect(host: str, port: int, timeout: Optional[float] = None) -> socket.socket:
    try:
        return socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise TransportError(f"cannot connect to {host}:{port}: {e}") from e


class FileClient:
    """Drives PUT and GET exchanges on an open connection.

    Requests and responses strictly alternate. Every failure is final for
    the exchange and leaves ``state`` at FAILED; the caller should drop the
    connection since it may no longer be in step with the server.
    """

    def __init__(self, conn, codec, max_frame: int = DEFAULT_MAX_FRAME):
        self.conn = conn
        self.codec = codec
        self.max_frame = max_frame
        self.state = TransferState.IDLE

    def _enter(self, state: TransferState):
        log.debug("%s -> %s", self.state.value, state.value)
        self.state = state

    def _start(self):
        if self.state not in (TransferState.IDLE, TransferState.DONE):
            raise ProtocolViolation(f"cannot start a request in state {self.state.value}")
        self.state = TransferState.IDLE

    def put(self, path, remote_name: Optional[str] = None) -> OkResponse:
        """Upload *path* and return the server's acknowledgement."""
        self._start()
        path = Path(path)
        try:
            try:
                data = path.read_bytes()
            except OSError as e:
                raise StorageError(f"cannot read {path}: {e.strerror}") from e
            body = self.codec.encrypt(data)
            try:
                req = PutRequest(filename=remote_name or path.name, plaintext_size=len(data),
                                 ciphertext_size=len(body), digest=digest(body), ciphertext=body)
            except ValidationError as e:
                raise MalformedHeader(str(e)) from e

            send_frame(self.conn, encode_request_header(req))
            self._enter(TransferState.HEADER_SENT)
            send_frame(self.conn, req.digest.encode("ascii"))
            send_frame(self.conn, req.ciphertext)
            self._enter(TransferState.BODY_SENT)

            self._enter(TransferState.AWAITING_RESPONSE)
            resp = read_response(self.conn, self.max_frame)
            if resp.kind == ERROR:
                raise RemoteError(resp.message)
            if resp.filename != req.filename:
                raise ProtocolViolation(f"server acknowledged {resp.filename!r}, expected {req.filename!r}")
            # the server reports the digest of what it received
            if resp.digest != req.digest:
                raise IntegrityMismatch(req.digest, resp.digest)
        except NetfileError:
            self._enter(TransferState.FAILED)
            raise
        self._enter(TransferState.DONE)
        return resp

    def get(self, name: str, save_as=None) -> bytes:
        """Download *name*, verify and decode it, and save it to *save_as*."""
        self._start()
        save_as = Path(save_as) if save_as else Path(Path(name).name)
        try:
            try:
                req = GetRequest(filename=name)
            except ValidationError as e:
                raise MalformedHeader(str(e)) from e

            send_frame(self.conn, encode_request_header(req))
            self._enter(TransferState.HEADER_SENT)

            self._enter(TransferState.AWAITING_HEADER_RESPONSE)
            values = read_response_header(self.conn, self.max_frame)
            if values["kind"] == ERROR:
                raise RemoteError(values["message"])
            if values["filename"] != name:
                raise ProtocolViolation(f"server sent {values['filename']!r}, expected {name!r}")

            self._enter(TransferState.AWAITING_BODY)
            resp = read_response_body(self.conn, values, self.max_frame)
            # downloads are never saved unverified
            if not verify_digest(resp.digest, resp.payload):
                raise IntegrityMismatch(resp.digest, digest(resp.payload))
            content = self.codec.decrypt(resp.payload, resp.size)
            try:
                atomic_write(save_as, content)
            except OSError as e:
                raise StorageError(f"cannot save {save_as}: {e.strerror}") from e
        except NetfileError:
            self._enter(TransferState.FAILED)
            raise
        self._enter(TransferState.DONE)
        return content


def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog="netfile-client", description="Perform a PUT or a GET from a network file server.")
    p.add_argument("-s", dest="server", help="server info (IP or hostname)")
    p.add_argument("-p", dest="port", type=int, help="port on which to contact server")
    op = p.add_mutually_exclusive_group(required=True)
    op.add_argument("-P", dest="put", metavar="PATH", help="PUT file indicated by parameter")
    op.add_argument("-G", dest="get", metavar="NAME", help="GET file indicated by parameter")
    p.add_argument("-S", dest="save_as", help="for GETs, name to use when saving file locally")
    args = p.parse_args(argv)

    settings = Settings.from_env(server_host=args.server, port=args.port)
    setup_logging(settings.log_level)
    try:
        keys = load_keypair(settings.public_key, settings.private_key) if settings.encrypt else None
        codec = payload_codec(keys, settings.encrypt)
        with closing(connect(settings.server_host, settings.port)) as conn:
            client = FileClient(conn, codec, settings.max_frame)
            if args.put:
                resp = client.put(args.put)
                console.print(f"[green]PUT {escape(resp.filename)} ({resp.size} bytes) OK[/]")
            else:
                content = client.get(args.get, args.save_as)
                console.print(f"[green]GET {escape(args.get)} ({len(content)} bytes) saved[/]")
    except NetfileError as e:
        console.print(f"[red]{type(e).__name__}: {escape(str(e))}[/]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
