"""
User: the platform account as seen by the competitive backend.
Schema only.
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, SoftDeleteMixin, TimestampMixin


class User(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    """
    Platform user.

    ``eloscore`` is the live rating and the source of truth while a season
    is ACTIVE; it is reset partially when a season expires.
    """

    __tablename__ = "users"
    __table_args__ = (Index("ix_users_eloscore_name", "eloscore", "name"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    eloscore: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name!r}, eloscore={self.eloscore})>"
