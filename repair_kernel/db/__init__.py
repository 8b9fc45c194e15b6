"""Database layer: engine, declarative base, money/time helpers, immutability listeners."""

from repair_kernel.db.base import Base, TrackedBase, UUIDString
from repair_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from repair_kernel.db.types import ensure_utc, round_money

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "ensure_utc",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "round_money",
]
