"""Database layer - engine, base classes, and types."""

from caja_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from caja_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from caja_kernel.db.types import Money, round_money

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "Money",
    "round_money",
]
