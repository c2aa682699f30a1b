"""
UserSeasonHistory: a user's participation in one season.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin, utc_now
from ..enums import HistoryStatus, RankName, RewardClaimStatus, enum_type


class UserSeasonHistory(Base, IdMixin, TimestampMixin):
    """
    Per-user season row.

    Schema-only:
    - final_elo / final_rank: frozen at season close (or edited by admins)
    - season_rank_reward_id / rewards_claimed: reward assigned at close
    """

    __tablename__ = "user_season_histories"
    __table_args__ = (
        UniqueConstraint("user_id", "leaderboard_season_id"),
        Index("ix_user_season_histories_season_elo", "leaderboard_season_id", "final_elo"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    leaderboard_season_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("leaderboard_seasons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[HistoryStatus] = mapped_column(
        enum_type(HistoryStatus), nullable=False, default=HistoryStatus.ACTIVE
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    final_elo: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    final_rank: Mapped[Optional[RankName]] = mapped_column(enum_type(RankName), nullable=True)

    season_rank_reward_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("season_rank_rewards.id", ondelete="SET NULL"),
        nullable=True,
    )
    rewards_claimed: Mapped[RewardClaimStatus] = mapped_column(
        enum_type(RewardClaimStatus), nullable=False, default=RewardClaimStatus.PENDING
    )
