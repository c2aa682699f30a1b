"""Season progression models."""

from .season import LeaderboardSeason
from .season_history import UserSeasonHistory
from .season_reward import SeasonRankReward

__all__ = ["LeaderboardSeason", "UserSeasonHistory", "SeasonRankReward"]
