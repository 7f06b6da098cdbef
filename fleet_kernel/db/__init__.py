"""Database layer - engine, base classes, types, and the record store."""

from fleet_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from fleet_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from fleet_kernel.db.types import money_from_value, optional_money, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "money_from_value",
    "optional_money",
    "round_money",
]
