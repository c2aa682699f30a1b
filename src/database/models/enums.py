"""
Database Model Enums
====================

Type-safe constants for categorical columns across the Arena schema.
Values equal member names so stored strings stay readable in SQL.

``enum_type`` builds the non-native SQLAlchemy Enum used by every model, so
the same schema runs on PostgreSQL and SQLite.
"""

from __future__ import annotations

import enum
from typing import Type

from sqlalchemy import Enum as SAEnum


class SeasonStatus(str, enum.Enum):
    """
    Lifecycle of a leaderboard season.

    PREVIEW seasons are announced but not yet running; at most one season is
    ACTIVE at a time; EXPIRED seasons have frozen standings.
    """

    INACTIVE = "INACTIVE"
    PREVIEW = "PREVIEW"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class MatchStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RoundStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class RankName(str, enum.Enum):
    """Rank tiers, lowest (N5) to highest (N3)."""

    N5 = "N5"
    N4 = "N4"
    N3 = "N3"


class HistoryStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class RewardClaimStatus(str, enum.Enum):
    PENDING = "PENDING"
    CLAIMED = "CLAIMED"


def enum_type(enum_cls: Type[enum.Enum]) -> SAEnum:
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        validate_strings=True,
        name=enum_cls.__name__.lower(),
    )
