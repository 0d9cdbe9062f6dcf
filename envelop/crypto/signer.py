# Envelope signature implementation (HMAC-SHA256 over the signature payload)

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from envelop.crypto.crypto import Secret, hex_digest_equals, hmac_sha256_hex
from envelop.envelope import Envelope
from envelop.log import get_logger

logger = get_logger(__name__)


class Signer(ABC):
    """Abstract base class for envelope signers"""
    @abstractmethod
    def sign(self, envelope: Envelope) -> str:
        """Sign envelope and return signature"""
        ...

    @abstractmethod
    def verify(self, envelope: Envelope) -> bool:
        """Check the envelope's stored signature"""
        ...


class HMACSigner(Signer):
    """
    Shared-secret signer.

    The signature is the lowercase hex HMAC-SHA256 of
    `Envelope.signature_payload()`; content, ttl, reply and signature are
    not covered.
    """

    def __init__(self, secret: Secret):
        """
        Args:
            secret: shared secret, text (UTF-8 encoded) or raw bytes
        """
        self._secret = secret

    def sign(self, envelope: Envelope) -> str:
        """
        Compute the signature for envelope. The input is not modified;
        attach the result with `envelope.with_signature(sig)`.

        Returns:
            64-character lowercase hex digest
        """
        sig = hmac_sha256_hex(self._secret, envelope.signature_payload().encode("utf-8"))
        logger.debug("Signed envelope %s", envelope.id, extra={"envelope_id": envelope.id, "msg_type": envelope.type})
        return sig

    def sign_envelope(self, envelope: Envelope) -> Envelope:
        """Return a copy of envelope carrying a fresh signature"""
        return envelope.with_signature(self.sign(envelope))

    def verify(self, envelope: Envelope) -> bool:
        """Constant-time check; False for absent, empty or malformed signatures"""
        return envelope.check_signature(self._secret)

    def verify_signature(self, envelope: Envelope, signature: Optional[str]) -> bool:
        """Check a detached signature against envelope"""
        return hex_digest_equals(self.sign(envelope), signature)


def sign(envelope: Envelope, secret: Secret) -> str:
    """Lowercase hex HMAC-SHA256 over envelope's signature payload"""
    return HMACSigner(secret).sign(envelope)


def verify(envelope: Envelope, secret: Secret) -> bool:
    """True iff envelope's stored signature matches secret"""
    return HMACSigner(secret).verify(envelope)
