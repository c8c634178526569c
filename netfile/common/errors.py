# common/errors.py
"""Error taxonomy shared by client and server."""


class NetfileError(Exception):
    """Base class for every error raised by netfile."""


class TransportError(NetfileError):
    """Connect/accept/read/write failure. Fatal to the session."""


class ProtocolViolation(NetfileError):
    """The peer sent something the protocol does not allow."""


class MalformedHeader(ProtocolViolation):
    pass


class IntegrityMismatch(NetfileError):
    def __init__(self, expected: str, actual: str):
        super().__init__(f"digest mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class CryptoError(NetfileError):
    """A block failed to encrypt or decrypt."""


class StorageError(NetfileError):
    """File missing, unreadable, unwritable, or outside the storage root."""


class RemoteError(NetfileError):
    """The server answered with an Error response."""
