"""Database layer - engine, base classes, types, and immutability."""

from vehicle_tax_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from vehicle_tax_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from vehicle_tax_kernel.db.types import PortableDecimal, round_money, to_storage

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
    "PortableDecimal",
    "round_money",
    "to_storage",
]
