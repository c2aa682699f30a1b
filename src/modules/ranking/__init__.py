"""
Ranking Module
==============

Domain: ELO to rank conversion, ELO deltas and rank statistics

Services:
- RankAggregatorService: Rank distribution, leaderboards and season statistics
"""

from .formulas import (
    EloCalculator,
    LogisticEloCalculator,
    RankChange,
    build_elo_calculator,
    classify_rank_change,
    convert_elo_to_rank,
)
from .service import RankAggregatorService

__all__ = [
    "EloCalculator",
    "LogisticEloCalculator",
    "RankChange",
    "RankAggregatorService",
    "build_elo_calculator",
    "classify_rank_change",
    "convert_elo_to_rank",
]
