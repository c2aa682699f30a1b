"""
Match Service
=============

Purpose
-------
Runs the head-to-head match lifecycle: creation inside the ACTIVE season,
acceptance, three scored rounds, winner resolution and ELO settlement.

Domain
------
- PENDING → (all accept) IN_PROGRESS → (round 3 completed) COMPLETED
- PENDING → (any rejection) CANCELLED; PENDING/IN_PROGRESS → CANCELLED manually
- Round winner: strictly higher points; equal points tie the round
- Match winner: most round wins, then higher total points, else a tie
- ELO deltas come from the configured EloCalculator and are clamped to the
  rating range; a tie where nobody answered costs both players ELO

Events
------
- match.created, match.accepted, match.cancelled
- match.round.started, match.round.completed, match.completed
"""

from __future__ import annotations

import random
from collections import Counter
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import LogContext, get_logger
from src.database.models.competition.match import (
    Match,
    MatchParticipant,
    MatchRound,
    MatchRoundParticipant,
)
from src.database.models.core.user import User
from src.database.models.enums import MatchStatus, RoundStatus
from src.database.models.progression.season import LeaderboardSeason
from src.modules.ranking.formulas import (
    EloCalculator,
    build_elo_calculator,
    classify_rank_change,
    clamp_elo,
    convert_elo_to_rank,
    load_rank_bands,
)
from src.modules.season.history_service import UserRepository, UserSeasonHistoryService
from src.modules.season.service import SeasonRepository
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ConflictError,
    InvalidOperationError,
    NoActiveSeasonError,
    NotFoundError,
    ValidationError,
)
from src.modules.shared.localization import resolve_translation
from src.modules.shared.pagination import FilterField, PaginationQuery, apply_qs, build_page

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus

OPEN_STATUSES = (MatchStatus.PENDING, MatchStatus.IN_PROGRESS)


# ============================================================================
# Repository
# ============================================================================


class MatchRepository(BaseRepository[Match]):
    """Repository for Match model (participants and rounds load eagerly)."""

    async def find_busy_user_ids(self, session: AsyncSession, user_ids: Sequence[int]) -> List[int]:
        stmt = (
            select(MatchParticipant.user_id)
            .join(Match, Match.id == MatchParticipant.match_id)
            .where(
                MatchParticipant.user_id.in_(list(user_ids)),
                Match.status.in_(OPEN_STATUSES),
                Match.deleted_at.is_(None),
            )
        )
        return sorted(set((await session.execute(stmt)).scalars().all()))


# ============================================================================
# Pure resolution helpers
# ============================================================================


def determine_round_winner(scores: Mapping[int, int]) -> Optional[int]:
    """
    User with strictly the most points, or None on a tie.

    Example:
        >>> determine_round_winner({1: 30, 2: 20})
        1
        >>> determine_round_winner({1: 20, 2: 20}) is None
        True
    """
    if not scores:
        return None
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return None
    return ranked[0][0]


def determine_match_winner(
    user_ids: Sequence[int],
    round_winners: Sequence[Optional[int]],
    total_points: Mapping[int, int],
) -> Optional[int]:
    """
    Match winner by round wins, then by total points; None for a tie.

    Tied rounds count for nobody.
    """
    wins = Counter(winner for winner in round_winners if winner is not None)
    by_wins = {user_id: wins.get(user_id, 0) for user_id in user_ids}
    winner = determine_round_winner(by_wins)
    if winner is not None:
        return winner
    return determine_round_winner({user_id: total_points.get(user_id, 0) for user_id in user_ids})


# ============================================================================
# MatchService
# ============================================================================


class MatchService(BaseService):
    """
    Service for match creation and resolution.

    Public Methods
    --------------
    - create_match() / respond_to_match() / cancel_match()
    - start_round() / complete_round() / complete_match()
    - get_match() / list_matches() / get_user_match_history()
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        history_service: Optional[UserSeasonHistoryService] = None,
        elo_calculator: Optional[EloCalculator] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._matches = MatchRepository(
            model_class=Match,
            logger=get_logger(f"{__name__}.MatchRepository"),
        )
        self._users = UserRepository(
            model_class=User,
            logger=get_logger(f"{__name__}.UserRepository"),
        )
        self._seasons = SeasonRepository(
            model_class=LeaderboardSeason,
            logger=get_logger(f"{__name__}.SeasonRepository"),
        )
        self._histories = history_service or UserSeasonHistoryService(
            config_manager, event_bus, get_logger("src.modules.season.history_service")
        )
        self._elo_calculator = elo_calculator
        self._rng = rng or random.Random()

    @property
    def elo_calculator(self) -> EloCalculator:
        if self._elo_calculator is None:
            self._elo_calculator = build_elo_calculator(self._config)
        return self._elo_calculator

    @property
    def rounds_per_match(self) -> int:
        return int(self.get_config("match.rounds_per_match", 3))

    # ========================================================================
    # PUBLIC API - Lifecycle
    # ========================================================================

    async def create_match(
        self, user_ids: Sequence[int], created_by_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Create a PENDING match for two users in the ACTIVE season.

        Raises:
            ValidationError: Not exactly two distinct positive user ids
            NoActiveSeasonError: No ACTIVE season
            NotFoundError: Unknown user
            ConflictError: A user is already in an open match
        """
        ids = list(user_ids or [])
        if len(ids) != 2 or len(set(ids)) != 2:
            raise ValidationError("user_ids", "A match needs exactly two distinct users")
        for user_id in ids:
            self.validate_positive_int(user_id, "user_ids")

        async with DatabaseService.get_transaction() as session:
            season = await self._seasons.find_active(session)
            if season is None:
                raise NoActiveSeasonError()

            found = {user.id for user in await self._users.get_many(session, ids)}
            for user_id in ids:
                if user_id not in found:
                    raise NotFoundError("User", user_id)

            busy = await self._matches.find_busy_user_ids(session, ids)
            if busy:
                raise ConflictError(
                    "User is already in an open match",
                    details={"user_ids": busy},
                    error_code="USER_ALREADY_IN_MATCH",
                )

            match = self._matches.add(
                session,
                Match(
                    leaderboard_season_id=season.id,
                    status=MatchStatus.PENDING,
                    created_by_id=created_by_id,
                    participants=[MatchParticipant(user_id=user_id) for user_id in ids],
                    rounds=[],
                ),
            )
            await self._matches.flush(session)
            for user_id in ids:
                await self._histories.ensure_joined(session, user_id, season.id)
            result = self.serialize(match)

        self.log_operation("create_match", match_id=result["id"], user_ids=ids, season_id=season.id)
        await self.emit_event(
            "match.created",
            {"match_id": result["id"], "season_id": season.id, "user_ids": ids},
        )
        return result

    async def respond_to_match(self, match_id: int, user_id: int, accepted: bool) -> Dict[str, Any]:
        """
        Record one participant's accept/reject decision.

        Once everyone has decided the match is cancelled on any rejection or
        started (with its rounds created) when all accepted.

        Raises:
            NotFoundError: Unknown match or participant
            InvalidOperationError: Match not PENDING or decision already made
        """
        events: List[Tuple[str, Dict[str, Any]]] = []

        async with DatabaseService.get_transaction() as session:
            match = await self._get_for_update(session, match_id)
            if match.status is not MatchStatus.PENDING:
                raise InvalidOperationError("respond_to_match", "Match is not awaiting responses")

            participant = next((p for p in match.participants if p.user_id == user_id), None)
            if participant is None:
                raise NotFoundError("MatchParticipant", f"match_id={match_id}, user_id={user_id}")
            if participant.has_accepted is not None:
                raise InvalidOperationError("respond_to_match", "Response already recorded")
            participant.has_accepted = bool(accepted)

            decisions = [p.has_accepted for p in match.participants]
            if all(decision is not None for decision in decisions):
                if all(decisions):
                    match.status = MatchStatus.IN_PROGRESS
                    self._create_rounds(match)
                    events.append(("match.accepted", {"match_id": match.id}))
                else:
                    match.status = MatchStatus.CANCELLED
                    events.append(
                        ("match.cancelled", {"match_id": match.id, "reason": "rejected"})
                    )

            await self._matches.flush(session)
            result = self.serialize(match)

        self.log_operation(
            "respond_to_match", match_id=match_id, user_id=user_id, accepted=bool(accepted)
        )
        for name, payload in events:
            await self.emit_event(name, {**payload, "season_id": result["leaderboard_season_id"]})
        return result

    async def start_round(self, match_id: int, round_number: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown match or round
            InvalidOperationError: Match not running, round not PENDING or the
                previous round not COMPLETED
        """
        async with DatabaseService.get_transaction() as session:
            match = await self._get_for_update(session, match_id)
            if match.status is not MatchStatus.IN_PROGRESS:
                raise InvalidOperationError("start_round", "Match is not in progress")

            match_round = self._find_round(match, round_number)
            if match_round.status is not RoundStatus.PENDING:
                raise InvalidOperationError("start_round", f"Round {round_number} already started")
            if round_number > 1:
                previous = self._find_round(match, round_number - 1)
                if previous.status is not RoundStatus.COMPLETED:
                    raise InvalidOperationError(
                        "start_round", f"Round {round_number - 1} is not completed"
                    )

            match_round.status = RoundStatus.IN_PROGRESS
            match_round.started_at = datetime.now(timezone.utc)
            await self._matches.flush(session)
            result = self.serialize(match)

        self.log_operation("start_round", match_id=match_id, round_number=round_number)
        await self.emit_event(
            "match.round.started",
            {
                "match_id": match_id,
                "round_number": round_number,
                "season_id": result["leaderboard_season_id"],
            },
        )
        return result

    async def complete_round(
        self,
        match_id: int,
        round_number: int,
        scores: Mapping[int, Mapping[str, int]],
    ) -> Dict[str, Any]:
        """
        Record the scores of a running round and resolve its winner.

        ``scores`` maps each participant's user id to
        ``{"points": int, "answer_count": int}``. Completing the last round
        completes the match in the same transaction.

        Raises:
            NotFoundError: Unknown match or round
            ValidationError: Scores missing, extra or negative
            InvalidOperationError: Round not IN_PROGRESS
        """
        events: List[Tuple[str, Dict[str, Any]]] = []

        with LogContext(match_id=match_id, operation="complete_round"):
            async with DatabaseService.get_transaction() as session:
                match = await self._get_for_update(session, match_id)
                if match.status is not MatchStatus.IN_PROGRESS:
                    raise InvalidOperationError("complete_round", "Match is not in progress")

                match_round = self._find_round(match, round_number)
                if match_round.status is not RoundStatus.IN_PROGRESS:
                    raise InvalidOperationError(
                        "complete_round", f"Round {round_number} is not in progress"
                    )

                self._apply_scores(match_round, scores)
                match_round.round_winner_id = determine_round_winner(
                    {p.user_id: p.points for p in match_round.participants}
                )
                match_round.status = RoundStatus.COMPLETED
                match_round.completed_at = datetime.now(timezone.utc)
                events.append(
                    (
                        "match.round.completed",
                        {
                            "match_id": match.id,
                            "round_number": round_number,
                            "round_winner_id": match_round.round_winner_id,
                        },
                    )
                )

                rank_changes: Optional[List[Dict[str, Any]]] = None
                if round_number == self.rounds_per_match:
                    rank_changes = await self._settle(session, match)
                    events.append(self._completed_event(match, rank_changes))

                await self._matches.flush(session)
                result = self.serialize(match)
                if rank_changes is not None:
                    result["rank_changes"] = rank_changes

        self.log_operation(
            "complete_round",
            match_id=match_id,
            round_number=round_number,
            round_winner_id=match_round.round_winner_id,
        )
        for name, payload in events:
            await self.emit_event(name, {**payload, "season_id": result["leaderboard_season_id"]})
        return result

    async def complete_match(self, match_id: int) -> Dict[str, Any]:
        """
        Resolve the winner and settle ELO. Completing a COMPLETED match
        returns it unchanged.

        Raises:
            NotFoundError: Unknown match
            InvalidOperationError: Match not in progress or rounds unfinished
        """
        with LogContext(match_id=match_id, operation="complete_match"):
            async with DatabaseService.get_transaction() as session:
                match = await self._get_for_update(session, match_id)
                if match.status is MatchStatus.COMPLETED:
                    return self.serialize(match)
                if match.status is not MatchStatus.IN_PROGRESS:
                    raise InvalidOperationError("complete_match", "Match is not in progress")

                rank_changes = await self._settle(session, match)
                await self._matches.flush(session)
                result = self.serialize(match)
                result["rank_changes"] = rank_changes

        name, payload = self._completed_event(match, rank_changes)
        await self.emit_event(name, payload)
        return result

    async def cancel_match(
        self, match_id: int, cancelled_by_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown match
            InvalidOperationError: Match already completed
        """
        async with DatabaseService.get_transaction() as session:
            match = await self._get_for_update(session, match_id)
            if match.status is MatchStatus.COMPLETED:
                raise InvalidOperationError("cancel_match", "Completed matches cannot be cancelled")
            changed = match.status is not MatchStatus.CANCELLED
            if changed:
                match.status = MatchStatus.CANCELLED
                match.updated_by_id = cancelled_by_id
                await self._matches.flush(session)
            result = self.serialize(match)

        if changed:
            self.log_operation("cancel_match", match_id=match_id, cancelled_by_id=cancelled_by_id)
            await self.emit_event(
                "match.cancelled",
                {
                    "match_id": match_id,
                    "season_id": result["leaderboard_season_id"],
                    "reason": "cancelled",
                },
            )
        return result

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_match(self, match_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_session() as session:
            match = await self._matches.get(session, match_id)
            if match is None:
                raise NotFoundError("Match", match_id)
            return self.serialize(match)

    async def list_matches(self, query: Optional[PaginationQuery] = None) -> Dict[str, Any]:
        """
        Paginated match list.

        ``qs`` filters: ``status``, ``season_id``, ``winner_id``;
        sort keys: ``id``, ``created_at``, ``completed_at``.
        """
        query = query or PaginationQuery()
        page, size = self._resolve_page(query)
        stmt = apply_qs(
            self._matches.select(),
            query.qs,
            filters={
                "status": FilterField(Match.status, mode="enum", enum=MatchStatus),
                "season_id": FilterField(Match.leaderboard_season_id, mode="int"),
                "winner_id": FilterField(Match.winner_id, mode="int"),
            },
            sortable={
                "id": Match.id,
                "created_at": Match.created_at,
                "completed_at": Match.completed_at,
            },
            default_order=[Match.created_at.desc(), Match.id.desc()],
        )

        async with DatabaseService.get_session() as session:
            matches, total = await self._matches.paginate(
                session, stmt, offset=(page - 1) * size, limit=size
            )
            results = [self.serialize(match) for match in matches]

        return build_page(results, page=page, size=size, total=total)

    async def get_user_match_history(
        self,
        user_id: int,
        query: Optional[PaginationQuery] = None,
        lang: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Completed matches of a user, newest first.

        Each entry carries ``is_win`` (None for a tie), the opponent, the
        season name and the signed ``elo_change`` for this user.

        Raises:
            NotFoundError: Unknown user
        """
        query = query or PaginationQuery()
        page, size = self._resolve_page(query)

        async with DatabaseService.get_session() as session:
            if await self._users.get(session, user_id) is None:
                raise NotFoundError("User", user_id)

            stmt = (
                self._matches.select(Match.status == MatchStatus.COMPLETED)
                .join(MatchParticipant, MatchParticipant.match_id == Match.id)
                .where(MatchParticipant.user_id == user_id)
                .order_by(Match.completed_at.desc(), Match.id.desc())
            )
            matches, total = await self._matches.paginate(
                session, stmt, offset=(page - 1) * size, limit=size
            )

            opponent_ids = {
                p.user_id for match in matches for p in match.participants if p.user_id != user_id
            }
            season_ids = {match.leaderboard_season_id for match in matches}
            users = {u.id: u for u in await self._users.get_many(session, list(opponent_ids))}
            seasons = {s.id: s for s in await self._seasons.get_many(session, list(season_ids))}

            results = []
            for match in matches:
                opponent_id = next(
                    (p.user_id for p in match.participants if p.user_id != user_id), None
                )
                opponent = users.get(opponent_id) if opponent_id is not None else None
                season = seasons.get(match.leaderboard_season_id)
                if match.winner_id is None:
                    is_win: Optional[bool] = None
                else:
                    is_win = match.winner_id == user_id
                elo_change = (match.elo_gained or 0) if is_win else -(match.elo_lost or 0)
                results.append(
                    {
                        "match_id": match.id,
                        "completed_at": match.completed_at.isoformat() if match.completed_at else None,
                        "is_win": is_win,
                        "elo_change": elo_change,
                        "opponent": {
                            "user_id": opponent_id,
                            "name": opponent.name if opponent else None,
                        },
                        "season": {
                            "id": match.leaderboard_season_id,
                            "name": resolve_translation(
                                season.name_translations, lang, fallback=season.name_key
                            )
                            if season
                            else None,
                        },
                    }
                )

        return build_page(results, page=page, size=size, total=total)

    async def is_user_busy(self, user_id: int) -> bool:
        async with DatabaseService.get_session() as session:
            return bool(await self._matches.find_busy_user_ids(session, [user_id]))

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _get_for_update(self, session: AsyncSession, match_id: int) -> Match:
        match = await self._matches.get_for_update(session, match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        return match

    @staticmethod
    def _find_round(match: Match, round_number: int) -> MatchRound:
        for match_round in match.rounds:
            if match_round.round_number == round_number:
                return match_round
        raise NotFoundError("MatchRound", f"match_id={match.id}, round_number={round_number}")

    def _create_rounds(self, match: Match) -> None:
        """
        Create the PENDING rounds. Round one gets a random pick order; each
        later round reverses the previous order and continues the numbering.
        """
        order = [p.user_id for p in match.participants]
        self._rng.shuffle(order)
        next_order = 1
        for round_number in range(1, self.rounds_per_match + 1):
            if round_number > 1:
                order.reverse()
            round_participants = []
            for user_id in order:
                round_participants.append(
                    MatchRoundParticipant(user_id=user_id, order_selected=next_order)
                )
                next_order += 1
            match.rounds.append(
                MatchRound(
                    round_number=round_number,
                    status=RoundStatus.PENDING,
                    participants=round_participants,
                )
            )

    @staticmethod
    def _apply_scores(match_round: MatchRound, scores: Mapping[int, Mapping[str, int]]) -> None:
        expected = {p.user_id for p in match_round.participants}
        if set(scores) != expected:
            raise ValidationError("scores", f"Scores must be given for users {sorted(expected)}")

        for participant in match_round.participants:
            entry = scores[participant.user_id]
            points = entry.get("points", 0)
            answer_count = entry.get("answer_count", 0)
            for name, value in (("points", points), ("answer_count", answer_count)):
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ValidationError(name, f"{name} must be a non-negative integer")
            participant.points = points
            participant.answer_count = answer_count

    async def _settle(self, session: AsyncSession, match: Match) -> List[Dict[str, Any]]:
        """Decide the winner, apply ELO and mark the match COMPLETED."""
        rounds = list(match.rounds)
        if len(rounds) < self.rounds_per_match or any(
            r.status is not RoundStatus.COMPLETED for r in rounds
        ):
            raise InvalidOperationError("complete_match", "All rounds must be completed")

        user_ids = match.participant_ids
        total_points: Counter = Counter()
        total_answers: Counter = Counter()
        for match_round in rounds:
            for participant in match_round.participants:
                total_points[participant.user_id] += participant.points
                total_answers[participant.user_id] += participant.answer_count

        winner_id = determine_match_winner(
            user_ids, [r.round_winner_id for r in rounds], total_points
        )

        users = {
            u.id: u
            for u in await self._users.find_many_where(session, User.id.in_(user_ids), for_update=True)
        }
        old_elo = {user_id: users[user_id].eloscore for user_id in user_ids}
        new_elo = dict(old_elo)
        calculator = self.elo_calculator

        if winner_id is not None:
            loser_id = next(user_id for user_id in user_ids if user_id != winner_id)
            gain = calculator.gain(old_elo[winner_id], old_elo[loser_id])
            loss = calculator.loss(old_elo[loser_id], old_elo[winner_id])
            new_elo[winner_id] = clamp_elo(old_elo[winner_id] + gain)
            new_elo[loser_id] = clamp_elo(old_elo[loser_id] - loss)
            match.elo_gained = gain
            match.elo_lost = loss
        elif sum(total_answers.values()) == 0:
            average = sum(old_elo.values()) / len(old_elo)
            losses = []
            for user_id in user_ids:
                loss = calculator.loss(old_elo[user_id], average)
                new_elo[user_id] = clamp_elo(old_elo[user_id] - loss)
                losses.append(loss)
            match.elo_gained = 0
            match.elo_lost = round(sum(losses) / len(losses))
        else:
            match.elo_gained = 0
            match.elo_lost = 0

        for user_id in user_ids:
            users[user_id].eloscore = new_elo[user_id]

        match.winner_id = winner_id
        match.status = MatchStatus.COMPLETED
        match.completed_at = datetime.now(timezone.utc)

        bands = load_rank_bands(self.get_config("rank.bands"))
        rank_changes = []
        for user_id in user_ids:
            old_rank = convert_elo_to_rank(old_elo[user_id], bands)
            new_rank = convert_elo_to_rank(new_elo[user_id], bands)
            rank_changes.append(
                {
                    "user_id": user_id,
                    "old_elo": old_elo[user_id],
                    "new_elo": new_elo[user_id],
                    "old_rank": old_rank.value,
                    "new_rank": new_rank.value,
                    "change": classify_rank_change(old_rank, new_rank).value,
                }
            )

        self.log.info(
            "Match settled",
            extra={
                "match_id": match.id,
                "winner_id": winner_id,
                "elo_gained": match.elo_gained,
                "elo_lost": match.elo_lost,
            },
        )
        return rank_changes

    @staticmethod
    def _completed_event(
        match: Match, rank_changes: List[Dict[str, Any]]
    ) -> Tuple[str, Dict[str, Any]]:
        return (
            "match.completed",
            {
                "match_id": match.id,
                "season_id": match.leaderboard_season_id,
                "winner_id": match.winner_id,
                "elo_gained": match.elo_gained,
                "elo_lost": match.elo_lost,
                "rank_changes": rank_changes,
            },
        )

    def _resolve_page(self, query: PaginationQuery) -> Tuple[int, int]:
        return query.resolve(
            default_size=int(self.get_config("core.pagination.default_page_size", 20)),
            max_size=int(self.get_config("core.pagination.max_page_size", 100)),
        )

    @staticmethod
    def serialize(match: Match) -> Dict[str, Any]:
        return {
            "id": match.id,
            "leaderboard_season_id": match.leaderboard_season_id,
            "status": match.status.value,
            "winner_id": match.winner_id,
            "elo_gained": match.elo_gained,
            "elo_lost": match.elo_lost,
            "completed_at": match.completed_at.isoformat() if match.completed_at else None,
            "participants": [
                {"user_id": p.user_id, "has_accepted": p.has_accepted} for p in match.participants
            ],
            "rounds": [
                {
                    "round_number": r.round_number,
                    "status": r.status.value,
                    "round_winner_id": r.round_winner_id,
                    "participants": [
                        {
                            "user_id": rp.user_id,
                            "points": rp.points,
                            "answer_count": rp.answer_count,
                            "order_selected": rp.order_selected,
                        }
                        for rp in r.participants
                    ],
                }
                for r in sorted(match.rounds, key=lambda r: r.round_number)
            ],
        }
