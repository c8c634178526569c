# crypto/blocks.py
"""Block-wise RSA-OAEP payload codec.

The plaintext is cut into ceil(N/B) blocks of B bytes (the last one may be
shorter) and each block is encrypted on its own into exactly k bytes, k being
the modulus length. Blocks are concatenated without delimiters, so the
decoder rebuilds the boundaries from the declared plaintext size alone.
"""
from typing import List
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from netfile.common.errors import CryptoError
from netfile.crypto.keys import KeyPair

_HASH = hashes.SHA256


def _oaep():
    return padding.OAEP(mgf=padding.MGF1(algorithm=_HASH()), algorithm=_HASH(), label=None)


def block_count(plaintext_size: int, block: int) -> int:
    if plaintext_size < 0:
        raise CryptoError(f"negative plaintext size {plaintext_size}")
    return -(-plaintext_size // block)


def block_lengths(plaintext_size: int, block: int) -> List[int]:
    """Plaintext length of every block, in order."""
    if plaintext_size < 0:
        raise CryptoError(f"negative plaintext size {plaintext_size}")
    full, rest = divmod(plaintext_size, block)
    return [block] * full + ([rest] if rest else [])


class RsaBlockCodec:
    def __init__(self, keys: KeyPair):
        self.keys = keys
        self.cipher_block = keys.modulus_bytes
        self.block_size = self.cipher_block - 2 * _HASH.digest_size - 2
        if self.block_size <= 0:
            raise CryptoError(f"{keys.public_key.key_size}-bit key is too small for OAEP")

    def ciphertext_size(self, plaintext_size: int) -> int:
        return block_count(plaintext_size, self.block_size) * self.cipher_block

    def encrypt(self, plaintext: bytes) -> bytes:
        out = bytearray()
        pos = 0
        for n in block_lengths(len(plaintext), self.block_size):
            try:
                out += self.keys.public_key.encrypt(plaintext[pos:pos + n], _oaep())
            except ValueError as e:
                raise CryptoError(f"block at offset {pos} failed to encrypt: {e}") from e
            pos += n
        return bytes(out)

    def decrypt(self, ciphertext: bytes, plaintext_size: int) -> bytes:
        # size check first: the declared plaintext size is untrusted
        count = block_count(plaintext_size, self.block_size)
        if len(ciphertext) != count * self.cipher_block:
            raise CryptoError(
                f"{len(ciphertext)} ciphertext bytes cannot hold {plaintext_size} plaintext bytes "
                f"({count} blocks of {self.cipher_block})"
            )
        lengths = block_lengths(plaintext_size, self.block_size)
        out = bytearray()
        for i, n in enumerate(lengths):
            chunk = ciphertext[i * self.cipher_block:(i + 1) * self.cipher_block]
            try:
                pt = self.keys.private_key.decrypt(chunk, _oaep())
            except ValueError as e:
                raise CryptoError(f"block {i} failed to decrypt: {e}") from e
            if len(pt) != n:
                raise CryptoError(f"block {i} decrypted to {len(pt)} bytes, expected {n}")
            out += pt
        return bytes(out)


class PlainCodec:
    """Pass-through codec for deployments with payload encryption turned off."""

    def ciphertext_size(self, plaintext_size: int) -> int:
        return plaintext_size

    def encrypt(self, plaintext: bytes) -> bytes:
        return plaintext

    def decrypt(self, ciphertext: bytes, plaintext_size: int) -> bytes:
        if len(ciphertext) != plaintext_size:
            raise CryptoError(f"body is {len(ciphertext)} bytes, header declared {plaintext_size}")
        return ciphertext


def payload_codec(keys: KeyPair, encrypt: bool = True):
    return RsaBlockCodec(keys) if encrypt else PlainCodec()
