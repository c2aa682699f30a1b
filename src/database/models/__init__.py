"""
Database Models Package
========================

SQLAlchemy ORM models for Arena, organized by domain.

All models are schema-only:
- Use Mapped[] syntax with mapped_column()
- Inherit from the shared mixins (IdMixin, TimestampMixin, SoftDeleteMixin, AuditMixin)
- Explicit foreign key constraints with CASCADE / SET NULL rules

Domain Organization:
--------------------
- core: platform users
- progression: leaderboard seasons, user season histories, rank rewards
- competition: matches, participants, rounds
- enums: shared type-safe enumerations

Importing this package registers every mapper on ``Base.metadata``.
"""

from src.core.database.base import Base

from .competition import Match, MatchParticipant, MatchRound, MatchRoundParticipant
from .core import User
from .enums import (
    HistoryStatus,
    MatchStatus,
    RankName,
    RewardClaimStatus,
    RoundStatus,
    SeasonStatus,
)
from .progression import LeaderboardSeason, SeasonRankReward, UserSeasonHistory

__all__ = [
    "Base",
    "User",
    "LeaderboardSeason",
    "UserSeasonHistory",
    "SeasonRankReward",
    "Match",
    "MatchParticipant",
    "MatchRound",
    "MatchRoundParticipant",
    "SeasonStatus",
    "MatchStatus",
    "RoundStatus",
    "RankName",
    "HistoryStatus",
    "RewardClaimStatus",
]
