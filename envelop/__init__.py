"""
envelop: signable, optionally compressed message envelopes.

    from envelop import EnvelopeBuilder, encode, decode

    env = EnvelopeBuilder.start().type("chat.message").body("hi").sign("k1").build()
    wire = encode(env, "gzip")
    same = decode(wire, "gzip", verify_with_secret="k1", signature_required=True)
"""

from envelop.envelope import (
    AttachmentReadFailed,
    DecompressionFailed,
    Envelope,
    EnvelopeError,
    EnvelopeIncomplete,
    InvalidEncoding,
    MalformedEnvelope,
    SignatureInvalid,
    UnsupportedCompression,
)
from envelop.crypto.signer import HMACSigner, Signer, sign, verify
from envelop.codec import Compression, decode, encode
from envelop.identity import FixedIdentityProvider, IdentityProvider, SystemIdentityProvider
from envelop.builder import EnvelopeBuilder, create_envelope

__version__ = "1.0.0"
