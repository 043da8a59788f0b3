"""Database layer - engine, base classes, immutability enforcement."""

from fulfillment_kernel.db.base import UUID, Base, UUIDString, ensure_utc
from fulfillment_kernel.db.engine import (
    begin_write,
    build_engine,
    build_engine_from_config,
    build_session_factory,
    create_tables,
    drop_tables,
    is_transient_error,
    session_scope,
)

__all__ = [
    "Base",
    "UUIDString",
    "UUID",
    "ensure_utc",
    "build_engine",
    "build_engine_from_config",
    "build_session_factory",
    "session_scope",
    "begin_write",
    "is_transient_error",
    "create_tables",
    "drop_tables",
]
