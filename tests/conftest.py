from datetime import datetime, timedelta, timezone

import pytest

from envelop.builder import EnvelopeBuilder
from envelop.identity import FixedIdentityProvider


FIXED_ID = "3f2b8c1e-9a4d-4e5f-8b6a-1c2d3e4f5a6b"
FIXED_CREATED = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


def chat_builder(provider=None):
    """chat.message from a to b with body 'hi'"""
    return (
        EnvelopeBuilder.start(provider or FixedIdentityProvider(FIXED_ID, FIXED_CREATED))
        .type("chat.message")
        .sender("a")
        .receiver("b")
        .body("hi")
    )


@pytest.fixture
def provider():
    return FixedIdentityProvider(FIXED_ID, FIXED_CREATED)


@pytest.fixture
def chat_envelope(provider):
    return chat_builder(provider).build()


@pytest.fixture
def signed_envelope(provider):
    return chat_builder(provider).sign("k1").build()


@pytest.fixture
def rich_envelope():
    """Every optional field set, non-UTC offset, unicode and '/' in the body"""
    created = datetime(2024, 1, 15, 12, 30, 0, tzinfo=timezone(timedelta(hours=2)))
    return (
        EnvelopeBuilder.start(FixedIdentityProvider(FIXED_ID, created))
        .type("order.created")
        .version("2.1")
        .trace("trace-1")
        .reference("ref-9")
        .sender("svc/a")
        .receiver("svc/b")
        .header("x-k", "v")
        .body({"msg": "héllo/world", "n": 1})
        .ttl(30)
        .reply("0b9c1c8e-7a1f-4d3b-9e2a-5f6a7b8c9d0e")
        .build()
    )
