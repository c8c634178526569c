# common/framing.py
"""Length-prefixed framing over a byte stream.

Frame layout:
    [4 bytes - payload length, big-endian]
    [N bytes - payload]

Neither direction assumes a message fits in one system call: both loop
until the requested byte count is satisfied, retrying interrupted calls.
"""
import struct
from typing import Optional

from netfile.common.config import DEFAULT_MAX_FRAME
from netfile.common.errors import ProtocolViolation, TransportError

PREFIX = struct.Struct("!I")
RECV_CHUNK = 65536


def _send_all(conn, data) -> None:
    view = memoryview(data)
    while view:
        try:
            sent = conn.send(view)
        except InterruptedError:
            continue
        except OSError as e:
            raise TransportError(f"write error: {e}") from e
        view = view[sent:]


def _recv_exact(conn, n: int) -> bytes:
    """Read up to *n* bytes, stopping early only at end-of-stream."""
    buf = bytearray()
    while len(buf) < n:
        try:
            chunk = conn.recv(min(n - len(buf), RECV_CHUNK))
        except InterruptedError:
            continue
        except OSError as e:
            raise TransportError(f"read error: {e}") from e
        if not chunk:
            break
        buf.extend(chunk)
    return bytes(buf)


def send_frame(conn, payload: bytes) -> None:
    if len(payload) > 0xFFFFFFFF:
        raise ProtocolViolation(f"payload of {len(payload)} bytes does not fit a frame")
    _send_all(conn, PREFIX.pack(len(payload)))
    if payload:
        _send_all(conn, payload)


def recv_frame(conn, max_size: int = DEFAULT_MAX_FRAME) -> Optional[bytes]:
    """Return the next frame's payload, or None if the peer closed cleanly.

    A clean close is end-of-stream before any byte of the length prefix;
    end-of-stream anywhere later is a TransportError.
    """
    prefix = _recv_exact(conn, PREFIX.size)
    if not prefix:
        return None
    if len(prefix) < PREFIX.size:
        raise TransportError("connection closed inside a frame length prefix")
    (length,) = PREFIX.unpack(prefix)
    if length > max_size:
        raise ProtocolViolation(f"frame of {length} bytes exceeds limit of {max_size}")
    payload = _recv_exact(conn, length)
    if len(payload) != length:
        raise TransportError(f"connection closed after {len(payload)} of {length} payload bytes")
    return payload
