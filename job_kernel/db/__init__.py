"""Database layer - engine, base classes, types, and immutability listeners."""

from job_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from job_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from job_kernel.db.types import JSONPayload, UTCDateTime

__all__ = [
    "Base",
    "JSONPayload",
    "TrackedBase",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
]
