# common/protocol.py
"""PUT/GET wire messages.

Every message is a header frame, optionally followed by a digest frame and a
body frame. Headers are newline-separated ASCII/UTF-8 fields:

    PUT\\n<filename>\\n<ciphertext_size>\\n<plaintext_size>\\n   + digest + body
    GET\\n<filename>
    OK\\n<filename>\\n<plaintext_size>\\n                         + digest + body
    ERROR\\n<message>
"""
import enum
from typing import Annotated, List, Literal, Optional, Union
from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError

from netfile.common.config import DEFAULT_MAX_FRAME
from netfile.common.errors import MalformedHeader, ProtocolViolation, TransportError
from netfile.common.framing import recv_frame, send_frame
from netfile.common.utils import is_digest

PUT = "PUT"
GET = "GET"
OK = "OK"
ERROR = "ERROR"

MAX_SIZE = 0xFFFFFFFF


class TransferState(str, enum.Enum):
    IDLE = "idle"
    HEADER_SENT = "header_sent"
    BODY_SENT = "body_sent"
    AWAITING_RESPONSE = "awaiting_response"
    AWAITING_HEADER_RESPONSE = "awaiting_header_response"
    AWAITING_BODY = "awaiting_body"
    DONE = "done"
    FAILED = "failed"


def _check_filename(v: str) -> str:
    if not v:
        raise ValueError("filename is empty")
    if "\n" in v or "\x00" in v:
        raise ValueError("filename contains a newline or NUL")
    return v


Filename = Annotated[str, AfterValidator(_check_filename)]


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True)


class PutRequest(_Message):
    kind: Literal["PUT"] = PUT
    filename: Filename
    plaintext_size: int
    ciphertext_size: int
    digest: str
    ciphertext: bytes = b""


class GetRequest(_Message):
    kind: Literal["GET"] = GET
    filename: Filename


class OkResponse(_Message):
    kind: Literal["OK"] = OK
    filename: Filename
    size: int
    digest: str
    payload: bytes = b""


class ErrorResponse(_Message):
    kind: Literal["ERROR"] = ERROR
    message: str


Request = Union[PutRequest, GetRequest]
Response = Union[OkResponse, ErrorResponse]


# --- header encoding -------------------------------------------------------

def encode_request_header(req: Request) -> bytes:
    if isinstance(req, PutRequest):
        return f"{PUT}\n{req.filename}\n{req.ciphertext_size}\n{req.plaintext_size}\n".encode()
    return f"{GET}\n{req.filename}".encode()


def encode_response_header(resp: Response) -> bytes:
    if isinstance(resp, OkResponse):
        return f"{OK}\n{resp.filename}\n{resp.size}\n".encode()
    return f"{ERROR}\n{resp.message}".encode()


# --- header parsing --------------------------------------------------------

def _fields(raw: bytes) -> List[str]:
    try:
        return raw.decode("utf-8").split("\n")
    except UnicodeDecodeError as e:
        raise MalformedHeader(f"header is not valid UTF-8: {e}") from e


def _field(fields: List[str], i: int, what: str) -> str:
    if i >= len(fields) or fields[i] == "":
        raise MalformedHeader(f"header is missing {what}")
    return fields[i]


def _size(fields: List[str], i: int, what: str) -> int:
    s = _field(fields, i, what)
    if not s.isdigit() or not s.isascii():
        raise MalformedHeader(f"invalid {what} {s!r}")
    v = int(s)
    if v > MAX_SIZE:
        raise MalformedHeader(f"{what} {v} does not fit in 32 bits")
    return v


def _no_extra(fields: List[str], n: int) -> None:
    # one trailing newline is allowed, nothing after it
    if fields[n:] not in ([], [""]):
        raise MalformedHeader(f"unexpected extra header fields {fields[n:]!r}")


def _digest(raw: Optional[bytes]) -> str:
    if raw is None:
        raise TransportError("connection closed before the digest frame")
    try:
        s = raw.decode("ascii")
    except UnicodeDecodeError:
        s = ""
    if not is_digest(s):
        raise MalformedHeader(f"malformed digest frame {raw[:64]!r}")
    return s


def parse_request_header(raw: bytes) -> dict:
    """Split a request header into its typed fields (no body yet)."""
    fields = _fields(raw)
    verb = _field(fields, 0, "request type")
    if verb not in (PUT, GET):
        raise MalformedHeader(f"request must begin with {PUT} or {GET}, got {verb!r}")
    out = {"kind": verb, "filename": _field(fields, 1, "filename")}
    if verb == PUT:
        out["ciphertext_size"] = _size(fields, 2, "ciphertext size")
        out["plaintext_size"] = _size(fields, 3, "plaintext size")
        _no_extra(fields, 4)
    else:
        _no_extra(fields, 2)
    return out


def parse_response_header(raw: bytes) -> dict:
    fields = _fields(raw)
    if fields[0] != OK:
        text = raw.decode("utf-8", errors="replace")
        if fields[0] == ERROR:
            text = text[len(ERROR) + 1:]
        return {"kind": ERROR, "message": text.strip() or "unspecified server error"}
    return {
        "kind": OK,
        "filename": _field(fields, 1, "filename"),
        "size": _size(fields, 2, "file size"),
    }


def _build(model, values: dict):
    try:
        return model(**values)
    except ValidationError as e:
        raise MalformedHeader(str(e)) from e


# --- frame-level I/O -------------------------------------------------------

def read_request(conn, header: bytes, max_size: int = DEFAULT_MAX_FRAME) -> Request:
    """Parse *header* and, for PUT, pull the digest and body frames after it."""
    values = parse_request_header(header)
    if values["kind"] == GET:
        return _build(GetRequest, values)
    values["digest"] = _digest(recv_frame(conn, max_size))
    body = recv_frame(conn, max_size)
    if body is None:
        raise TransportError("connection closed before the PUT body")
    if len(body) != values["ciphertext_size"]:
        raise ProtocolViolation(
            f"PUT body is {len(body)} bytes, header declared {values['ciphertext_size']}"
        )
    values["ciphertext"] = body
    return _build(PutRequest, values)


def write_response(conn, resp: Response) -> None:
    send_frame(conn, encode_response_header(resp))
    if isinstance(resp, OkResponse):
        send_frame(conn, resp.digest.encode("ascii"))
        send_frame(conn, resp.payload)


def read_response_header(conn, max_size: int = DEFAULT_MAX_FRAME) -> dict:
    header = recv_frame(conn, max_size)
    if header is None:
        raise TransportError("server closed the connection without responding")
    return parse_response_header(header)


def read_response_body(conn, values: dict, max_size: int = DEFAULT_MAX_FRAME) -> OkResponse:
    """Read the digest and payload frames that follow an OK header."""
    values = dict(values, digest=_digest(recv_frame(conn, max_size)))
    payload = recv_frame(conn, max_size)
    if payload is None:
        raise TransportError("connection closed before the response body")
    values["payload"] = payload
    return _build(OkResponse, values)


def read_response(conn, max_size: int = DEFAULT_MAX_FRAME) -> Response:
    values = read_response_header(conn, max_size)
    if values["kind"] == ERROR:
        return ErrorResponse(**values)
    return read_response_body(conn, values, max_size)
