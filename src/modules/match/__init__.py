"""
Match Module
============

Domain: Head-to-head matches and matchmaking

Services:
- MatchService: Match lifecycle and ELO settlement
- MatchmakingService: ELO-range matchmaking queue
"""

from .matchmaking import MatchmakingQueue, MatchmakingService, MatchmakingSettings
from .service import MatchService

__all__ = [
    "MatchService",
    "MatchmakingQueue",
    "MatchmakingService",
    "MatchmakingSettings",
]
