"""
Database subsystem for Arena.

Provides the async SQLAlchemy engine and session management, and exports the
ORM base classes and mixins for model definitions.
"""

from src.core.database.base import (
    AuditMixin,
    Base,
    IdMixin,
    JSONType,
    SoftDeleteMixin,
    TimestampMixin,
    utc_now,
)
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "SoftDeleteMixin",
    "AuditMixin",
    "JSONType",
    "utc_now",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
