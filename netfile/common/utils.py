# common/utils.py
"""Integrity codec: content digests over transmitted bodies."""
import hashlib
import re

DIGEST_LEN = 32
_DIGEST_RE = re.compile(r"^[0-9a-f]{32}$")


def digest(b: bytes) -> str:
    return hashlib.md5(b, usedforsecurity=False).hexdigest()


def verify_digest(expected_hex: str, actual: bytes) -> bool:
    # case-sensitive: an uppercase digest never matches
    return digest(actual) == expected_hex


def is_digest(s: str) -> bool:
    return bool(_DIGEST_RE.match(s))
