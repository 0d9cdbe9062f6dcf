from __future__ import annotations
from dataclasses import dataclass, field, replace as _replace
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union
import json

from envelop.utils import canonical_json, format_timestamp, parse_timestamp

# Text(str) or Structured(ordered JSON tree). File attachments and links
# travel as text (base64 / URL) described by `content` and headers.
Body = Union[str, Dict[str, Any], List[Any], None]

DEFAULT_VERSION = "1.0"
DEFAULT_CONTENT = "application/json"
SIGNATURE_SEPARATOR = "|"

# Wire key order. id..body also feed the signature payload, in this order.
WIRE_FIELDS = (
    "id", "type", "version", "created", "trace", "reference", "sender",
    "receiver", "headers", "body", "content", "ttl", "reply", "signature",
)
_OPTIONAL_TEXT_FIELDS = ("trace", "reference", "sender", "receiver", "content", "reply", "signature")


class EnvelopeError(Exception):
    """Base class for every error raised by envelop."""
    pass
class UnsupportedCompression(EnvelopeError):
    """Unknown compression kind requested."""
    pass
class InvalidEncoding(EnvelopeError):
    """Wire payload is not valid base64."""
    pass
class DecompressionFailed(EnvelopeError):
    """gzip inflate failed."""
    pass
class MalformedEnvelope(EnvelopeError):
    """Wire payload is not a well-formed envelope object."""
    pass
class SignatureInvalid(EnvelopeError):
    """Signature required but missing or not matching."""
    pass
class AttachmentReadFailed(EnvelopeError):
    """A file attachment could not be read."""
    pass
class EnvelopeIncomplete(EnvelopeError, ValueError):
    """A required field (id, type) is empty at serialization time."""
    pass


class _FrozenDict(dict):
    """Read-only JSON object inside an envelope body"""

    def _readonly(self, *args, **kwargs):
        raise TypeError("envelope body is read-only")

    __setitem__ = __delitem__ = __ior__ = _readonly
    clear = pop = popitem = setdefault = update = _readonly

    def __reduce__(self):
        return (_FrozenDict, (dict(self),))


class _FrozenList(list):
    """Read-only JSON array inside an envelope body"""

    def _readonly(self, *args, **kwargs):
        raise TypeError("envelope body is read-only")

    __setitem__ = __delitem__ = __iadd__ = __imul__ = _readonly
    append = extend = insert = pop = remove = clear = sort = reverse = _readonly

    def __reduce__(self):
        return (_FrozenList, (list(self),))


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return _FrozenDict((k, _freeze(v)) for k, v in value.items())
    if isinstance(value, list):
        return _FrozenList(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_thaw(v) for v in value]
    return value


def _json(value: Any) -> str:
    """canonical_json that only yields text a peer can parse and UTF-8 encode"""
    try:
        text = canonical_json(value)
        text.encode("utf-8")
    except (TypeError, ValueError) as e:
        raise MalformedEnvelope(f"Value is not encodable as JSON: {e}") from e
    return text


@dataclass(frozen=True)
class Envelope:
    """
    Immutable message record:
    {
    "id":        "UUIDv4",
    "type":      "STRING (e.g. chat.message)",
    "version":   "STRING (default 1.0)",
    "created":   "RFC3339, numeric offset, no fractions",
    "trace":     "STRING | null",
    "reference": "STRING | null",
    "sender":    "STRING | null",
    "receiver":  "STRING | null",
    "headers":   { "STRING": "STRING" },
    "body":      "STRING | OBJECT | ARRAY | null",
    "content":   "MIME | null",
    "ttl":       "INT seconds | null",
    "reply":     "STRING | null",
    "signature": "HEX HMAC-SHA256 | null"
    }

    Headers are a read-only mapping and a structured body is copied into
    read-only containers, so a signed envelope cannot drift from its
    signature. Any change produces a new Envelope (see `replace` /
    `with_signature`).

    `headers_as_array` records that empty headers arrived as `[]`, which
    some producers emit and sign over; they are rendered back the same way.
    """
    id: str
    type: str
    created: datetime
    version: str = DEFAULT_VERSION
    trace: Optional[str] = None
    reference: Optional[str] = None
    sender: Optional[str] = None
    receiver: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Body = None
    content: Optional[str] = None
    ttl: Optional[int] = None
    reply: Optional[str] = None
    signature: Optional[str] = None
    headers_as_array: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.created, datetime):
            raise TypeError("'created' must be a datetime")
        if self.created.tzinfo is None or self.created.utcoffset() is None:
            raise ValueError("'created' must be timezone-aware")
        if self.ttl is not None and (isinstance(self.ttl, bool) or not isinstance(self.ttl, int) or self.ttl < 0):
            raise ValueError("'ttl' must be a non-negative integer")
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "created", self.created.replace(microsecond=0))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers or {})))
        object.__setattr__(self, "body", _freeze(self.body))
        object.__setattr__(self, "headers_as_array", bool(self.headers_as_array) and not self.headers)

    def __hash__(self) -> int:
        return hash((self.id, self.type, self.version, self.created, self.signature))

    # ----- derived values -----

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.ttl is None:
            return None
        return self.created + timedelta(seconds=self.ttl)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True iff now is strictly past created + ttl."""
        if self.ttl is None:
            return False
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now > self.created + timedelta(seconds=self.ttl)

    def signature_payload(self) -> str:
        """
        The HMAC input. Field order is fixed; absent optionals become ''.
        Values containing '|' can make two envelopes share a payload; the
        separator is not escaped because that would change the wire format.
        """
        return SIGNATURE_SEPARATOR.join([
            self.id,
            self.type,
            self.version,
            format_timestamp(self.created),
            self.trace or "",
            self.reference or "",
            self.sender or "",
            self.receiver or "",
            _json(self._headers_value()),
            _json(self.body),
        ])

    def check_signature(self, secret: Union[str, bytes]) -> bool:
        """Validate the stored signature against secret. Never raises on a bad stored value."""
        if not self.signature:
            return False
        from envelop.crypto.crypto import hex_digest_equals, hmac_sha256_hex
        calc = hmac_sha256_hex(secret, self.signature_payload().encode("utf-8"))
        return hex_digest_equals(calc, self.signature)

    # ----- new values -----

    def replace(self, **changes: Any) -> "Envelope":
        return _replace(self, **changes)

    def with_signature(self, signature: Optional[str]) -> "Envelope":
        return _replace(self, signature=signature)

    # ----- canonical form -----

    def _headers_value(self) -> Union[Dict[str, str], List[Any]]:
        if self.headers_as_array:
            return []
        return dict(self.headers)

    def to_dict(self) -> Dict[str, Any]:
        """Convert Envelope to an ordered dictionary with every wire key present"""
        return {
            "id": self.id,
            "type": self.type,
            "version": self.version,
            "created": format_timestamp(self.created),
            "trace": self.trace,
            "reference": self.reference,
            "sender": self.sender,
            "receiver": self.receiver,
            "headers": self._headers_value(),
            "body": _thaw(self.body),
            "content": self.content,
            "ttl": self.ttl,
            "reply": self.reply,
            "signature": self.signature,
        }

    def to_canonical_text(self) -> str:
        """Convert Envelope to canonical JSON text"""
        if not self.id:
            raise EnvelopeIncomplete("'id' is required")
        if not self.type:
            raise EnvelopeIncomplete("'type' is required")
        return _json(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any], now: Optional[datetime] = None) -> "Envelope":
        """
        Create Envelope from dictionary. Absent keys fall back to defaults
        (version -> 1.0, created -> now, headers -> {}, others -> None);
        present keys of the wrong type raise MalformedEnvelope, as do values
        that cannot be rendered back as UTF-8 JSON.
        """
        if not isinstance(data, dict):
            raise MalformedEnvelope(f"Envelope must be a JSON object, got {type(data).__name__}")
        # NaN, lone surrogates and the like cannot be re-rendered for the signature
        _json(data)

        created_raw = data.get("created")
        if created_raw is None:
            created = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        else:
            try:
                created = parse_timestamp(created_raw)
            except ValueError as e:
                raise MalformedEnvelope(f"Invalid 'created' field: {created_raw!r}") from e

        ttl = data.get("ttl")
        if ttl is not None:
            ttl = _coerce_ttl(ttl)

        headers = data.get("headers")
        headers_as_array = headers == []
        if not isinstance(headers, dict):
            headers = {}

        optional = {}
        for name in _OPTIONAL_TEXT_FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise MalformedEnvelope(f"'{name}' must be a string or null")
            optional[name] = value

        return cls(
            id=_text(data, "id", ""),
            type=_text(data, "type", ""),
            version=_text(data, "version", DEFAULT_VERSION),
            created=created,
            headers=headers,
            headers_as_array=headers_as_array,
            body=data.get("body"),
            ttl=ttl,
            **optional,
        )

    @classmethod
    def from_canonical_text(cls, text: str, now: Optional[datetime] = None) -> "Envelope":
        """Parse canonical JSON text into an Envelope"""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, RecursionError) as e:
            raise MalformedEnvelope(f"Invalid JSON for envelope: {e}") from e
        return cls.from_dict(data, now=now)


def _text(data: Dict[str, Any], name: str, default: str) -> str:
    value = data.get(name)
    if value is None:
        return default
    if not isinstance(value, str):
        raise MalformedEnvelope(f"'{name}' must be a string")
    return value


def _coerce_ttl(value: Any) -> int:
    if isinstance(value, bool):
        raise MalformedEnvelope("'ttl' must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise MalformedEnvelope(f"'ttl' must be an integer, got {value!r}")
    if value < 0:
        raise MalformedEnvelope("'ttl' must be non-negative")
    return value
