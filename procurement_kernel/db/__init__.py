"""Database layer - engine, base classes, types, and immutability listeners."""

from procurement_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from procurement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_settings,
    init_engine_from_url,
    session_scope,
)
from procurement_kernel.db.types import Money, PayloadHash, Percent, Quantity, StageName

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "init_engine_from_settings",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "Percent",
    "StageName",
    "PayloadHash",
]
