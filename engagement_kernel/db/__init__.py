"""Database infrastructure: declarative base, engine, column types, commit path."""

from engagement_kernel.db.base import Base, TrackedBase, UUIDString
from engagement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from engagement_kernel.db.mutation import apply_mutation, next_timestamp

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "apply_mutation",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "next_timestamp",
    "reset_engine",
    "session_scope",
]
