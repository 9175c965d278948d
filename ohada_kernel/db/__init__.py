"""Database layer - engine, base classes, types, and immutability listeners."""

from ohada_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ohada_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from ohada_kernel.db.types import Money, round_money, to_money

__all__ = [
    "build_engine",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "round_money",
    "to_money",
]
