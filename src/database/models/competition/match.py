"""
Match, MatchParticipant, MatchRound, MatchRoundParticipant: head-to-head play.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import AuditMixin, Base, IdMixin, SoftDeleteMixin, TimestampMixin
from ..enums import MatchStatus, RoundStatus, enum_type


class Match(Base, IdMixin, TimestampMixin, SoftDeleteMixin, AuditMixin):
    """
    A match between two users inside one season.

    ``winner_id`` stays NULL for ties and unresolved matches.
    ``elo_gained`` / ``elo_lost`` are written once at completion.
    """

    __tablename__ = "matches"
    __table_args__ = (
        Index("ix_matches_season_status", "leaderboard_season_id", "status"),
        Index("ix_matches_created_at", "created_at"),
    )

    leaderboard_season_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("leaderboard_seasons.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[MatchStatus] = mapped_column(
        enum_type(MatchStatus), nullable=False, default=MatchStatus.PENDING
    )
    winner_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    elo_gained: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    elo_lost: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    participants: Mapped[List["MatchParticipant"]] = relationship(
        back_populates="match",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MatchParticipant.id",
    )
    rounds: Mapped[List["MatchRound"]] = relationship(
        back_populates="match",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MatchRound.round_number",
    )

    @property
    def participant_ids(self) -> List[int]:
        return [p.user_id for p in self.participants]


class MatchParticipant(Base, IdMixin, TimestampMixin):
    """``has_accepted`` is NULL until the user responds."""

    __tablename__ = "match_participants"
    __table_args__ = (UniqueConstraint("match_id", "user_id"),)

    match_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    has_accepted: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=None)

    match: Mapped[Match] = relationship(back_populates="participants")


class MatchRound(Base, IdMixin, TimestampMixin):
    """One of the three rounds of a match; ``round_winner_id`` NULL means a tied round."""

    __tablename__ = "match_rounds"
    __table_args__ = (UniqueConstraint("match_id", "round_number"),)

    match_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[RoundStatus] = mapped_column(
        enum_type(RoundStatus), nullable=False, default=RoundStatus.PENDING
    )
    round_winner_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    match: Mapped[Match] = relationship(back_populates="rounds")
    participants: Mapped[List["MatchRoundParticipant"]] = relationship(
        back_populates="match_round",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MatchRoundParticipant.id",
    )


class MatchRoundParticipant(Base, IdMixin, TimestampMixin):
    """Per-user round score. ``order_selected`` is the pick order."""

    __tablename__ = "match_round_participants"
    __table_args__ = (UniqueConstraint("match_round_id", "user_id"),)

    match_round_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("match_rounds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order_selected: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    match_round: Mapped[MatchRound] = relationship(back_populates="participants")
