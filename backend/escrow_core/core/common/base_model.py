"""
Base model with common fields
"""

from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.types import TypeDecorator
import uuid
from escrow_core.infrastructure.database import Base


def utcnow() -> datetime:
    """Timezone-aware current time (UTC)"""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    DateTime that always round-trips as a UTC-aware value.

    PostgreSQL keeps the offset natively; SQLite drops it, so values are normalised
    to UTC on the way in and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime is not allowed; pass a timezone-aware value")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class BaseModel(Base):
    """
    Base model with common fields

    All models inherit from this base class and get:
    - id: UUID primary key
    - created_at: Timezone-aware timestamp (set client-side so ordering keeps microseconds)
    - updated_at: Timezone-aware timestamp (nullable)

    Note: LedgerEntry never sets updated_at - entries are write-once.
    """
    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False, index=True)
    updated_at = Column(UTCDateTime(), onupdate=utcnow, nullable=True)
