"""
ORM base classes and mixins for Arena models.

Every model inherits from ``Base`` plus the mixins it needs:

- ``IdMixin``: integer autoincrement primary key ``id``
- ``TimestampMixin``: ``created_at`` / ``updated_at`` (timezone-aware UTC)
- ``SoftDeleteMixin``: ``deleted_at`` / ``deleted_by_id``; rows with a
  ``deleted_at`` are invisible to repositories by default
- ``AuditMixin``: ``created_by_id`` / ``updated_by_id``

``JSONType`` maps to JSONB on PostgreSQL and plain JSON elsewhere so the
same schema runs on SQLite for local development and tests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, MetaData
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class IdMixin:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class AuditMixin:
    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)
    updated_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)


class SoftDeleteMixin:
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None, index=True
    )
    deleted_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self, deleted_by_id: Optional[int] = None) -> None:
        self.deleted_at = utc_now()
        self.deleted_by_id = deleted_by_id
