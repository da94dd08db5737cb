"""
GUID mixin for SQLAlchemy models.

Entities exposed to clients (push payloads, deep links) are referenced by
a prefixed GUID instead of their integer primary key. The GUID wraps a
UUIDv7 encoded with Crockford's Base32.

GUID Format: {prefix}_{base32_uuid}
Examples:
    - usr_01hgw2bbg0000000000000000 (User)
    - fdb_01hgw2bbg0000000000000001 (Feedback)
    - dev_01hgw2bbg0000000000000002 (DeviceToken)
"""

import uuid as uuid_module
from typing import ClassVar, Optional

import base32_crockford
from sqlalchemy import Column, TypeDecorator, LargeBinary
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from uuid_extensions import uuid7


GUID_ENCODED_LENGTH = 26


class UUIDType(TypeDecorator):
    """
    UUID column stored natively on PostgreSQL and as 16 raw bytes elsewhere.

    Values always come back as ``uuid.UUID``.
    """

    impl = LargeBinary
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(LargeBinary(16))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid_module.UUID):
            value = (
                uuid_module.UUID(bytes=value)
                if isinstance(value, bytes)
                else uuid_module.UUID(str(value))
            )
        return value if dialect.name == 'postgresql' else value.bytes

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid_module.UUID):
            return value
        if isinstance(value, bytes):
            return uuid_module.UUID(bytes=value)
        return uuid_module.UUID(str(value))


def encode_guid(prefix: str, value: uuid_module.UUID) -> str:
    """Encode a UUID as ``{prefix}_{base32}`` (lowercase, zero-padded)."""
    encoded = base32_crockford.encode(int.from_bytes(value.bytes, "big"))
    return f"{prefix}_{encoded.zfill(GUID_ENCODED_LENGTH).lower()}"


class GuidMixin:
    """
    Adds a ``uuid`` column (UUIDv7, generated on insert) and a ``guid``
    property to a model.

    Subclasses set ``GUID_PREFIX`` to their 3-character entity prefix.
    """

    GUID_PREFIX: ClassVar[str]

    uuid = Column(
        UUIDType(),
        nullable=False,
        unique=True,
        index=True,
        default=uuid7,
    )

    @property
    def guid(self) -> Optional[str]:
        """GUID string, or None before the row has been flushed."""
        if self.uuid is None:
            return None
        value = self.uuid
        if isinstance(value, bytes):
            value = uuid_module.UUID(bytes=value)
        return encode_guid(self.GUID_PREFIX, value)

    @classmethod
    def parse_guid(cls, guid: str) -> uuid_module.UUID:
        """
        Decode a GUID string back to its UUID.

        Raises:
            ValueError: If the prefix does not match or the encoding is invalid
        """
        if not guid:
            raise ValueError("GUID cannot be empty")

        prefix, _, encoded = guid.partition("_")
        if prefix.lower() != cls.GUID_PREFIX.lower():
            raise ValueError(
                f"Invalid prefix for {cls.__name__}. "
                f"Expected '{cls.GUID_PREFIX}', got '{prefix}'"
            )
        if len(encoded) != GUID_ENCODED_LENGTH:
            raise ValueError(
                f"Invalid GUID length. Expected {GUID_ENCODED_LENGTH} characters "
                f"after prefix, got {len(encoded)}"
            )

        try:
            uuid_int = base32_crockford.decode(encoded.upper())
            return uuid_module.UUID(bytes=uuid_int.to_bytes(16, "big"))
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Invalid GUID encoding: {e}")
