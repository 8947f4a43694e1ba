"""
Module: job_kernel.db.types
Responsibility: Column types shared by every model.  Centralizes timestamp
    normalization, JSON payload storage and identifier widths so that models
    and services agree on one definition.
Architecture position: Kernel > DB.  May be imported by models/, services/
    and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Timestamps are stored and returned as timezone-aware UTC.  SQLite has
      no native timezone support and hands back naive values; UTCDateTime
      re-attaches UTC on load so comparisons never mix naive and aware.
    - JSON payloads use JSONB on PostgreSQL and plain JSON elsewhere.

Failure modes:
    - ValueError if a naive datetime is bound.  Every timestamp written by
      the kernel comes from an injected Clock, which is always aware.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

# Width of job type codes ("BJ", "ME12")
TYPE_CODE_LENGTH = 16

# Width of base job ids and change order numbers
IDENTIFIER_LENGTH = 64

# Status columns store the lowercase enum value
STATUS_LENGTH = 20

# Free text (summaries, descriptions, rejection reasons)
LONG_TEXT_LENGTH = 4000

# Structured payload column: JSONB on PostgreSQL, JSON elsewhere
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """
    DateTime(timezone=True) that always round-trips as aware UTC.

    Contract:
        Bound values must be timezone-aware; they are converted to UTC.
        Loaded values are returned in UTC, with tzinfo attached when the
        driver returns a naive value.
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
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
