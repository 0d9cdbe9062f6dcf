from __future__ import annotations
import base64
from typing import Union

from cryptography.hazmat.primitives import constant_time, hashes, hmac

Secret = Union[str, bytes]


def _key_bytes(secret: Secret) -> bytes:
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return bytes(secret)


def hmac_sha256_hex(secret: Secret, message: bytes) -> str:
    """Lowercase hex HMAC-SHA256 of message under secret."""
    h = hmac.HMAC(_key_bytes(secret), hashes.SHA256())
    h.update(message)
    return h.finalize().hex()


def hex_digest_equals(expected: str, candidate: object) -> bool:
    """Constant-time comparison of two digest strings. Never raises."""
    if not isinstance(candidate, str) or not candidate:
        return False
    return constant_time.bytes_eq(expected.encode("utf-8"), candidate.encode("utf-8", "surrogatepass"))


def b64_encode(data: bytes) -> str:
    """Standard alphabet, padded."""
    return base64.b64encode(data).decode("ascii")


def b64_decode(s: str) -> bytes:
    """Strict standard-alphabet decode; raises ValueError on bad input."""
    return base64.b64decode(s.strip(), validate=True)
