from __future__ import annotations
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from envelop.utils import is_uuid_v4


class IdentityProvider(ABC):
    """Supplies envelope ids and creation times to the builder"""

    @abstractmethod
    def new_id(self) -> str:
        ...

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemIdentityProvider(IdentityProvider):
    """Random UUIDv4 ids and the current UTC time (whole seconds)"""

    def new_id(self) -> str:
        return generate_envelope_id()

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(microsecond=0)


class FixedIdentityProvider(IdentityProvider):
    """Always hands out the same id and time. Used for reproducible signatures."""

    def __init__(self, id: str, created: datetime):
        if created.tzinfo is None:
            raise ValueError("created must be timezone-aware")
        self.id = id
        self.created = created.replace(microsecond=0)

    def new_id(self) -> str:
        return self.id

    def now(self) -> datetime:
        return self.created


def generate_envelope_id() -> str:
    """Generate a new UUID v4 for envelope identification"""
    return str(uuid.uuid4())


def validate_envelope_id(envelope_id: str) -> bool:
    """Validate that an envelope ID is a proper UUID v4"""
    return is_uuid_v4(envelope_id)
