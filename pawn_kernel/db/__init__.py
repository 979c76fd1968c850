"""Database layer - engine, base classes, types, and immutability listeners."""

from pawn_kernel.db.base import RATE, UUID, WEIGHT, Base, TrackedBase, UUIDString
from pawn_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "WEIGHT",
    "RATE",
]
