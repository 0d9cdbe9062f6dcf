import json
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from envelop.envelope import (
    WIRE_FIELDS,
    Envelope,
    EnvelopeIncomplete,
    MalformedEnvelope,
)

from conftest import FIXED_CREATED, FIXED_ID


def test_signature_payload_layout(chat_envelope):
    assert chat_envelope.signature_payload() == (
        f'{FIXED_ID}|chat.message|1.0|2024-01-15T10:30:00+00:00|||a|b|{{}}|"hi"'
    )


def test_signature_payload_keeps_unicode_slashes_and_offset(rich_envelope):
    assert rich_envelope.signature_payload() == (
        f'{FIXED_ID}|order.created|2.1|2024-01-15T12:30:00+02:00|trace-1|ref-9|svc/a|svc/b'
        '|{"x-k":"v"}|{"msg":"héllo/world","n":1}'
    )


def test_signature_payload_is_pure(rich_envelope):
    assert rich_envelope.signature_payload() == rich_envelope.signature_payload()


def test_null_body_renders_as_json_null():
    env = Envelope(id=FIXED_ID, type="ping", created=FIXED_CREATED)
    assert env.signature_payload().endswith("|{}|null")


def test_canonical_text_has_every_key_in_order(chat_envelope):
    text = chat_envelope.to_canonical_text()
    data = json.loads(text)
    assert tuple(data.keys()) == WIRE_FIELDS
    assert data["trace"] is None
    assert data["signature"] is None
    assert ", " not in text and ": " not in text


def test_canonical_text_emits_unicode_literally(rich_envelope):
    text = rich_envelope.to_canonical_text()
    assert "héllo/world" in text
    assert "\\u" not in text
    assert "\\/" not in text


def test_round_trip_all_fields(rich_envelope):
    signed = rich_envelope.with_signature("ab" * 32)
    again = Envelope.from_canonical_text(signed.to_canonical_text())
    assert again == signed
    assert again.content == "application/json"
    assert again.signature == "ab" * 32
    assert again.created.utcoffset() == timedelta(hours=2)


def test_decode_defaults_for_missing_fields():
    now = datetime(2025, 5, 1, 8, 0, 0, 123456, tzinfo=timezone.utc)
    env = Envelope.from_canonical_text('{"id":"x","type":"t"}', now=now)
    assert env.version == "1.0"
    assert env.created == now.replace(microsecond=0)
    assert env.headers == {}
    assert env.body is None
    assert env.trace is None and env.ttl is None and env.signature is None


def test_decode_accepts_list_headers_from_other_producers():
    env = Envelope.from_canonical_text(
        '{"id":"x","type":"t","created":"2024-01-15T10:30:00+00:00","headers":[]}'
    )
    assert env.headers == {}
    assert env.signature_payload().endswith("|[]|null")
    assert json.loads(env.to_canonical_text())["headers"] == []


def test_list_headers_become_object_once_set():
    env = Envelope.from_canonical_text(
        '{"id":"x","type":"t","created":"2024-01-15T10:30:00+00:00","headers":[]}'
    )
    assert env.replace(headers={"k": "v"}).to_dict()["headers"] == {"k": "v"}
    assert Envelope(id="x", type="t", created=FIXED_CREATED).to_dict()["headers"] == {}


def test_decode_accepts_zulu_timestamp():
    env = Envelope.from_canonical_text('{"id":"x","type":"t","created":"2024-01-15T10:30:00Z"}')
    assert env.created == FIXED_CREATED


@pytest.mark.parametrize("text", [
    "not json",
    "[1, 2, 3]",
    '"just a string"',
    '{"id":"x","type":"t","created":"yesterday"}',
    '{"id":"x","type":"t","sender":42}',
    '{"id":"x","type":"t","ttl":"soon"}',
    '{"id":"x","type":"t","ttl":-5}',
    '{"id":7,"type":"t"}',
    '{"id":"x","type":"t","body":"\\ud800"}',
    '{"id":"x","type":"t","headers":{"\\udfff":"v"}}',
    '{"id":"x","type":"t","body":NaN}',
    '{"id":"x","type":"t","body":[Infinity]}',
])
def test_decode_rejects_malformed(text):
    with pytest.raises(MalformedEnvelope):
        Envelope.from_canonical_text(text)


def test_decode_coerces_numeric_ttl():
    env = Envelope.from_canonical_text('{"id":"x","type":"t","ttl":"60"}')
    assert env.ttl == 60


def test_encode_requires_id_and_type():
    env = Envelope(id="", type="t", created=FIXED_CREATED)
    with pytest.raises(EnvelopeIncomplete):
        env.to_canonical_text()
    with pytest.raises(EnvelopeIncomplete):
        Envelope(id="x", type="", created=FIXED_CREATED).to_canonical_text()


def test_envelope_is_immutable(chat_envelope):
    with pytest.raises(FrozenInstanceError):
        chat_envelope.sender = "mallory"
    changed = chat_envelope.replace(sender="mallory")
    assert changed.sender == "mallory"
    assert chat_envelope.sender == "a"


def test_headers_are_copied():
    headers = {"k": "v"}
    env = Envelope(id="x", type="t", created=FIXED_CREATED, headers=headers)
    headers["k"] = "changed"
    assert env.headers == {"k": "v"}


def test_headers_are_read_only(signed_envelope):
    with pytest.raises(TypeError):
        signed_envelope.headers["x-evil"] = "1"
    assert dict(signed_envelope.headers) == {}
    assert signed_envelope.check_signature("k1") is True


def test_structured_body_is_copied_and_read_only():
    payload = {"n": 1, "tags": ["a"]}
    env = Envelope(id="x", type="t", created=FIXED_CREATED, body=payload)
    payload["n"] = 2
    payload["tags"].append("b")
    assert env.body == {"n": 1, "tags": ["a"]}

    with pytest.raises(TypeError):
        env.body["n"] = 3
    with pytest.raises(TypeError):
        env.body["tags"].append("c")
    assert env.body == {"n": 1, "tags": ["a"]}


def test_to_dict_returns_plain_copies(rich_envelope):
    data = rich_envelope.to_dict()
    data["headers"]["x-k"] = "changed"
    data["body"]["n"] = 99
    assert type(data["body"]) is dict
    assert rich_envelope.headers == {"x-k": "v"}
    assert rich_envelope.body == {"msg": "héllo/world", "n": 1}


def test_envelopes_are_hashable(chat_envelope, rich_envelope):
    assert hash(chat_envelope) == hash(chat_envelope.replace())
    assert len({chat_envelope, chat_envelope.replace(), rich_envelope}) == 2


@pytest.mark.parametrize("body", [{"x": float("nan")}, [float("inf")], "\udc80"])
def test_unencodable_body_is_an_envelope_error(body):
    env = Envelope(id="x", type="t", created=FIXED_CREATED, body=body)
    with pytest.raises(MalformedEnvelope):
        env.to_canonical_text()
    with pytest.raises(MalformedEnvelope):
        env.signature_payload()


def test_naive_created_rejected():
    with pytest.raises(ValueError):
        Envelope(id="x", type="t", created=datetime(2024, 1, 1))


def test_negative_ttl_rejected():
    with pytest.raises(ValueError):
        Envelope(id="x", type="t", created=FIXED_CREATED, ttl=-1)


def test_microseconds_dropped():
    env = Envelope(id="x", type="t", created=FIXED_CREATED.replace(microsecond=999))
    assert env.created == FIXED_CREATED


# ----- expiry -----

def test_never_expires_without_ttl(chat_envelope):
    assert chat_envelope.is_expired(FIXED_CREATED + timedelta(days=3650)) is False
    assert chat_envelope.expires_at is None


def test_expiry_boundary(chat_envelope):
    env = chat_envelope.replace(ttl=60)
    assert env.expires_at == FIXED_CREATED + timedelta(seconds=60)
    assert env.is_expired(FIXED_CREATED + timedelta(seconds=60)) is False
    assert env.is_expired(FIXED_CREATED + timedelta(seconds=61)) is True
    assert env.is_expired(FIXED_CREATED) is False


def test_expiry_counts_fractional_seconds(chat_envelope):
    env = chat_envelope.replace(ttl=60)
    assert env.is_expired(FIXED_CREATED + timedelta(seconds=60, milliseconds=500)) is True
    assert env.is_expired(FIXED_CREATED + timedelta(seconds=59, milliseconds=999)) is False


def test_expiry_with_naive_now_is_utc(chat_envelope):
    env = chat_envelope.replace(ttl=0)
    assert env.is_expired(datetime(2024, 1, 15, 10, 30, 1)) is True


def test_expiry_defaults_to_current_time(chat_envelope):
    assert chat_envelope.replace(ttl=1).is_expired() is True
