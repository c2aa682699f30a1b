"""
Season Module
=============

Domain: Leaderboard seasons, participation history, rank rewards and rotation

Services:
- SeasonService: Season registry and activation
- UserSeasonHistoryService: Season participation and frozen standings
- SeasonRankRewardService: Per-rank placement rewards
- SeasonRotationService: Scheduled expire / activate / precreate pass
"""

from .history_service import UserSeasonHistoryService
from .reward_service import SeasonRankRewardService
from .rotation import SeasonRotationService
from .service import SeasonService

__all__ = [
    "SeasonService",
    "UserSeasonHistoryService",
    "SeasonRankRewardService",
    "SeasonRotationService",
]
