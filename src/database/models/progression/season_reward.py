"""
SeasonRankReward: reward tier of a season keyed by (rank, order).
Schema only.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import AuditMixin, Base, IdMixin, JSONType, TimestampMixin
from ..enums import RankName, enum_type


class SeasonRankReward(Base, IdMixin, TimestampMixin, AuditMixin):
    """
    Reward assigned at season close.

    ``order`` is the 1-based placement inside the rank; NULL marks the common
    reward for every member of the rank without a placement reward.
    ``reward_ids`` reference rewards owned by an external service.
    """

    __tablename__ = "season_rank_rewards"
    __table_args__ = (
        UniqueConstraint("leaderboard_season_id", "rank_name", "order"),
    )

    leaderboard_season_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("leaderboard_seasons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rank_name: Mapped[RankName] = mapped_column(enum_type(RankName), nullable=False)
    order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reward_ids: Mapped[List[int]] = mapped_column(JSONType, nullable=False, default=list)
