"""Database layer - engine, base classes, types."""

from commission_kernel.db.base import Base, TrackedBase, UUIDString
from commission_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from commission_kernel.db.types import round_money

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "round_money",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
