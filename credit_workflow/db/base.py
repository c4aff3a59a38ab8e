"""
Module: credit_workflow.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, portable column types, and the type
    annotation map for consistent column types.
Architecture position: DB.  This is the lowest-level import target in the
    persistence layer.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, repositories/, or domain/.

Invariants enforced:
    - UUID primary keys: Every model inherits a uuid4-generated primary key.
    - Timestamps are timezone-aware UTC on every backend (UTCDateTime), so
      SLA deadline comparisons never mix naive and aware datetimes.

Failure modes:
    - IntegrityError if a model attempts to INSERT a duplicate UUID.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID kept as its 36-character text form so SQLite and PostgreSQL agree."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp on every backend.

    SQLite drops tzinfo on read; PostgreSQL returns the session time zone.
    Both are normalized to UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base shared by every workflow table.

    Each model gets a uuid4 ``id``; ``Mapped[datetime]`` columns become
    ``UTCDateTime`` and ``Mapped[int]`` columns ``BigInteger``.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )
