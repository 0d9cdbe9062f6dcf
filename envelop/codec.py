from __future__ import annotations

import gzip
import zlib
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from envelop.crypto.crypto import Secret, b64_decode, b64_encode
from envelop.envelope import (
    DecompressionFailed,
    Envelope,
    InvalidEncoding,
    MalformedEnvelope,
    SignatureInvalid,
    UnsupportedCompression,
)
from envelop.log import get_logger, log_envelope

logger = get_logger(__name__)

GZIP_LEVEL = 6


class Compression(str, Enum):
    """Wire compression kinds."""

    NONE = "none"
    GZIP = "gzip"

    @classmethod
    def from_string(cls, value: Union[str, "Compression", None]) -> "Compression":
        """Convert string to Compression, raise UnsupportedCompression if unknown."""
        if value is None:
            return cls.NONE
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedCompression(f"Unknown compression: {value}") from None


def encode(envelope: Envelope, compression: Union[str, Compression] = Compression.NONE) -> str:
    """
    Encode an envelope into wire text.

    none: the canonical JSON text itself
    gzip: base64(gzip(canonical JSON, level 6)), so the wire stays printable
    """
    kind = Compression.from_string(compression)
    text = envelope.to_canonical_text()

    if kind is Compression.NONE:
        wire = text
    else:
        # mtime=0 keeps the gzip header, and so the wire text, deterministic
        wire = b64_encode(gzip.compress(text.encode("utf-8"), compresslevel=GZIP_LEVEL, mtime=0))

    log_envelope(logger, "debug", f"Encoded envelope ({kind.value}, {len(wire)} chars)", envelope=envelope)
    return wire


def decode(
    wire: Union[str, bytes],
    compression: Union[str, Compression] = Compression.NONE,
    verify_with_secret: Optional[Secret] = None,
    signature_required: bool = False,
    now: Optional[datetime] = None,
) -> Envelope:
    """
    Decode wire text into an Envelope, optionally enforcing the signature.

    Args:
        wire: text (or UTF-8 bytes) produced by `encode`
        compression: must match what encode used
        verify_with_secret: when given, the signature is checked with it
        signature_required: with a secret, a missing or wrong signature raises
            SignatureInvalid; otherwise the check result is only logged
        now: clock used when the wire omits 'created'

    Raises:
        UnsupportedCompression, InvalidEncoding, DecompressionFailed,
        MalformedEnvelope, SignatureInvalid
    """
    kind = Compression.from_string(compression)

    if kind is Compression.GZIP:
        text = _gunzip(_unbase64(wire))
    elif isinstance(wire, (bytes, bytearray)):
        text = _utf8(bytes(wire))
    else:
        text = wire

    msg = Envelope.from_canonical_text(text, now=now)

    if verify_with_secret is not None:
        ok = msg.check_signature(verify_with_secret)
        if not ok:
            if signature_required:
                log_envelope(logger, "warning", "Rejected envelope: signature missing or invalid", envelope=msg)
                raise SignatureInvalid("Signature missing or invalid")
            log_envelope(logger, "debug", "Signature did not verify; accepted for inspection", envelope=msg)
    elif signature_required:
        logger.warning("signature_required set without verify_with_secret; signature not checked")

    log_envelope(logger, "debug", f"Decoded envelope ({kind.value})", envelope=msg)
    return msg


def _unbase64(wire: Union[str, bytes]) -> bytes:
    try:
        if isinstance(wire, (bytes, bytearray)):
            wire = bytes(wire).decode("ascii")
        return b64_decode(wire)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidEncoding(f"base64 invalid: {e}") from e


def _gunzip(raw: bytes) -> str:
    if not raw:
        raise DecompressionFailed("gunzip failed: empty payload")
    try:
        out = gzip.decompress(raw)
    except (OSError, EOFError, zlib.error) as e:
        raise DecompressionFailed(f"gunzip failed: {e}") from e
    return _utf8(out)


def _utf8(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedEnvelope(f"Envelope is not valid UTF-8: {e}") from e
