"""
Module: job_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for row timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key,
      so job and change-order ids are opaque and never collide across tables.
    - Timestamps are timezone-aware UTC on every backend (UTCDateTime).

Failure modes:
    - IntegrityError if a model attempts to INSERT a duplicate UUID.

Audit relevance:
    TrackedBase.created_at / updated_at are row metadata.  updated_at is
    explicitly allowed to change even on terminal change orders (see
    db/immutability.py).
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from job_kernel.db.types import UTCDateTime


def utcnow() -> datetime:
    """Python-side default for timestamp columns."""
    return datetime.now(timezone.utc)


class UUIDString(TypeDecorator):
    """UUID held as its 36-character text form, so SQLite and PostgreSQL agree."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """
    Root of every job kernel model.

    Each model gets a uuid4 ``id``.  Annotated ``datetime`` columns become
    UTCDateTime and ``int`` columns become BigInteger.
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


class TrackedBase(Base):
    """
    Abstract base with row timestamps.

    Contract:
        created_at is set once on INSERT.  updated_at is refreshed on every
        UPDATE.  Both are populated Python-side so that the values are known
        right after flush without a round trip.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


# Models annotate ids with this name.
UUID = PyUUID
