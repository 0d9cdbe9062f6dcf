from __future__ import annotations
import copy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from envelop.crypto.crypto import Secret, b64_encode
from envelop.crypto.signer import HMACSigner
from envelop.envelope import (
    DEFAULT_CONTENT,
    DEFAULT_VERSION,
    AttachmentReadFailed,
    Body,
    Envelope,
    EnvelopeIncomplete,
)
from envelop.identity import IdentityProvider, SystemIdentityProvider
from envelop.log import get_logger
from envelop.utils import mime

logger = get_logger(__name__)

LINK_CONTENT = "application/x.file.link"


class EnvelopeBuilder:
    """
    Fluent builder for Envelope values.

    id and created are fixed when the builder starts. Every setter returns
    the builder; `build()` produces the immutable Envelope.

        env = (EnvelopeBuilder.start()
               .type("chat.message")
               .sender("a").receiver("b")
               .body("hi")
               .sign("k1")
               .build())
    """

    def __init__(self, provider: Optional[IdentityProvider] = None):
        provider = provider or SystemIdentityProvider()
        self._id = provider.new_id()
        self._created = provider.now()
        self._type = ""
        self._version = DEFAULT_VERSION
        self._trace: Optional[str] = None
        self._reference: Optional[str] = None
        self._sender: Optional[str] = None
        self._receiver: Optional[str] = None
        self._headers: Dict[str, str] = {}
        self._body: Body = None
        self._content: Optional[str] = DEFAULT_CONTENT
        self._ttl: Optional[int] = None
        self._reply: Optional[str] = None
        self._secret: Optional[Secret] = None

    @classmethod
    def start(cls, provider: Optional[IdentityProvider] = None) -> "EnvelopeBuilder":
        """Start a new envelope builder"""
        return cls(provider)

    def type(self, msg_type: str) -> "EnvelopeBuilder":
        self._type = msg_type
        return self

    def version(self, version: str) -> "EnvelopeBuilder":
        self._version = version
        return self

    def sender(self, sender_id: str) -> "EnvelopeBuilder":
        self._sender = sender_id
        return self

    def receiver(self, receiver_id: str) -> "EnvelopeBuilder":
        self._receiver = receiver_id
        return self

    def reference(self, ref: str) -> "EnvelopeBuilder":
        """Caller-assigned correlation id (e.g. client-side message id)"""
        self._reference = ref
        return self

    def trace(self, trace_id: str) -> "EnvelopeBuilder":
        self._trace = trace_id
        return self

    def reply(self, envelope_id: str) -> "EnvelopeBuilder":
        """Id of the envelope this one answers"""
        self._reply = envelope_id
        return self

    def header(self, key: str, value: str) -> "EnvelopeBuilder":
        self._headers[str(key)] = str(value)
        return self

    def headers(self, headers: Mapping[Any, Any]) -> "EnvelopeBuilder":
        for k, v in headers.items():
            self._headers[str(k)] = str(v)
        return self

    def content(self, content_type: Optional[str]) -> "EnvelopeBuilder":
        self._content = content_type
        return self

    def body(self, payload: Union[str, Dict[str, Any], list]) -> "EnvelopeBuilder":
        """Text body -> text/plain, structured body -> application/json"""
        if isinstance(payload, str):
            self._content = "text/plain"
        elif isinstance(payload, (dict, list)):
            self._content = "application/json"
        else:
            raise TypeError(f"body must be str, dict or list, got {type(payload).__name__}")
        self._body = copy.deepcopy(payload)
        return self

    def attach(self, path: Union[str, Path]) -> "EnvelopeBuilder":
        """
        Attach a local file. The body becomes the base64 of its bytes,
        content the detected MIME type, and header x-filename its name.

        Raises:
            AttachmentReadFailed: the file could not be read
        """
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as e:
            raise AttachmentReadFailed(f"Failed to read file: {p}") from e

        self._body = b64_encode(data)
        self._content = mime(p, data)
        self.header("x-filename", p.name)
        logger.debug("Attached %s (%d bytes, %s)", p.name, len(data), self._content)
        return self

    def link(self, url: str, meta: Optional[Mapping[str, Any]] = None) -> "EnvelopeBuilder":
        """Link to an external file (e.g. object storage); meta becomes x-* headers"""
        self._body = url
        self._content = LINK_CONTENT
        for k, v in (meta or {}).items():
            self.header(f"x-{str(k).lower()}", str(v))
        return self

    def ttl(self, seconds: int) -> "EnvelopeBuilder":
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 0:
            raise ValueError("ttl must be a non-negative integer")
        self._ttl = seconds
        return self

    def sign(self, secret: Secret) -> "EnvelopeBuilder":
        """Sign with HMAC-SHA256 when the envelope is built"""
        self._secret = secret
        return self

    def build(self) -> Envelope:
        """Finalize and return the Envelope"""
        if not self._type:
            raise EnvelopeIncomplete("envelope type is required")

        env = Envelope(
            id=self._id,
            type=self._type,
            version=self._version,
            created=self._created,
            trace=self._trace,
            reference=self._reference,
            sender=self._sender,
            receiver=self._receiver,
            headers=dict(self._headers),
            body=self._body,
            content=self._content,
            ttl=self._ttl,
            reply=self._reply,
        )
        if self._secret is not None:
            env = HMACSigner(self._secret).sign_envelope(env)
        return env


def create_envelope(msg_type: str, body: Body = None, *, sender: Optional[str] = None,
                    receiver: Optional[str] = None, secret: Optional[Secret] = None,
                    provider: Optional[IdentityProvider] = None) -> Envelope:
    """Helper to create a new envelope in one call"""
    b = EnvelopeBuilder.start(provider).type(msg_type)
    if body is not None:
        b.body(body)
    if sender is not None:
        b.sender(sender)
    if receiver is not None:
        b.receiver(receiver)
    if secret is not None:
        b.sign(secret)
    return b.build()
