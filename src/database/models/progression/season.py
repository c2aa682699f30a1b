"""
LeaderboardSeason: a bounded competitive period.
Schema only.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from sqlalchemy import Boolean, Date, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import (
    AuditMixin,
    Base,
    IdMixin,
    JSONType,
    SoftDeleteMixin,
    TimestampMixin,
)
from ..enums import SeasonStatus, enum_type

ACTIVE_SEASON_INDEX = "uq_leaderboard_seasons_single_active"


class LeaderboardSeason(Base, IdMixin, TimestampMixin, SoftDeleteMixin, AuditMixin):
    """
    Leaderboard season.

    Schema-only:
    - name_translations: language code → display name
    - name_key: ``leaderboardSeason.name.{id}``, set after insert
    - start_date / end_date: inclusive date window (either may be open)
    - has_opened: set on activation; opened seasons are read-only
    - precreate settings for automatic creation of the next season
    """

    __tablename__ = "leaderboard_seasons"
    __table_args__ = (
        Index("ix_leaderboard_seasons_status_start", "status", "start_date"),
        Index("ix_leaderboard_seasons_end_date", "end_date"),
        # At most one live ACTIVE season
        Index(
            ACTIVE_SEASON_INDEX,
            "status",
            unique=True,
            postgresql_where=text("status = 'ACTIVE' AND deleted_at IS NULL"),
            sqlite_where=text("status = 'ACTIVE' AND deleted_at IS NULL"),
        ),
    )

    name_translations: Mapped[Dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)
    name_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)

    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    status: Mapped[SeasonStatus] = mapped_column(
        enum_type(SeasonStatus), nullable=False, default=SeasonStatus.PREVIEW, index=True
    )
    has_opened: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    enable_precreate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    precreate_before_end_days: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    is_random_item_again: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<LeaderboardSeason(id={self.id}, status={self.status}, "
            f"start={self.start_date}, end={self.end_date})>"
        )
