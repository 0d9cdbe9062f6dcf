from __future__ import annotations
import json
import uuid
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any

# ========================================
#           CANONICAL SERIALIZATION
# ========================================
"""
Helpers shared by the envelope, the signer and the codec. Anything that
feeds the signature payload must render byte-identically on every producer
and consumer, so the JSON and timestamp forms live here and nowhere else.
"""


def canonical_json(value: Any) -> str:
    """
    Render a JSON value the canonical way:
    - keys in insertion order (never sorted)
    - no whitespace between tokens
    - non-ASCII characters and '/' emitted literally
    - NaN and Infinity rejected with ValueError
    """
    return json.dumps(value, separators=(',', ':'), ensure_ascii=False, allow_nan=False)


def format_timestamp(dt: datetime) -> str:
    """
    Format an aware datetime as RFC 3339 with a numeric offset and no
    fractional seconds, e.g. 2024-01-15T10:30:00+00:00
    """
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError("timestamp must be timezone-aware")
    offset = dt.utcoffset()
    total = int(offset.total_seconds())
    sign = '+' if total >= 0 else '-'
    hours, minutes = divmod(abs(total) // 60, 60)
    local = dt.replace(microsecond=0, tzinfo=None).isoformat()
    return f"{local}{sign}{hours:02d}:{minutes:02d}"


def parse_timestamp(s: str) -> datetime:
    """
    Parse an RFC 3339 timestamp. A trailing 'Z' is read as UTC and a
    timestamp without an offset is assumed to be UTC.
    """
    if not isinstance(s, str):
        raise ValueError(f"timestamp must be a string, got {type(s).__name__}")
    text = s.strip()
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=0)


# ========================================
#           INPUT VALIDATION HELPERS
# ========================================

def is_uuid_v4(s: str) -> bool:
    """
    enforces that envelope ids are valid UUIDv4s in canonical string form
    """
    try:
        u = uuid.UUID(s)
        return u.version == 4 and str(u) == s
    except (TypeError, ValueError, AttributeError):
        return False


# ========================================
#           MIME DETECTION
# ========================================

_MIME_BY_EXT = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
    'svg': 'image/svg+xml',
    'pdf': 'application/pdf',
    'txt': 'text/plain',
    'csv': 'text/csv',
    'json': 'application/json',
    'zip': 'application/zip',
}

_DEFAULT_MIME = 'application/octet-stream'


def sniff_mime(data: bytes) -> str | None:
    """Guess a MIME type from well-known magic numbers, None if unknown."""
    if data.startswith(b'\x89PNG\r\n\x1a\n'):
        return 'image/png'
    if data.startswith(b'\xff\xd8\xff'):
        return 'image/jpeg'
    if data.startswith((b'GIF87a', b'GIF89a')):
        return 'image/gif'
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'image/webp'
    if data.startswith(b'%PDF-'):
        return 'application/pdf'
    if data.startswith((b'PK\x03\x04', b'PK\x05\x06')):
        return 'application/zip'
    return None


def mime_by_ext(path: str | PurePath) -> str:
    """Fallback MIME detection by file extension"""
    ext = PurePath(path).suffix.lstrip('.').lower()
    return _MIME_BY_EXT.get(ext, _DEFAULT_MIME)


def mime(path: str | PurePath, data: bytes) -> str:
    """Guess MIME type from file content, then from the extension."""
    return sniff_mime(data) or mime_by_ext(path)
