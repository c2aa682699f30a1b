"""
User Season History Service
===========================

Purpose
-------
Tracks which users take part in which season and exposes the frozen
standings written when a season closes.

Domain
------
- One row per (user, season)
- Joining requires an ACTIVE season
- ``final_rank`` is always derived from ``final_elo``

Events
------
- season.joined, season.history.updated
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models.core.user import User
from src.database.models.enums import HistoryStatus, RankName, RewardClaimStatus
from src.database.models.progression.season import LeaderboardSeason
from src.database.models.progression.season_history import UserSeasonHistory
from src.modules.ranking.formulas import MAX_ELO, MIN_ELO, convert_elo_to_rank, load_rank_bands
from src.modules.season.service import SeasonRepository
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ConflictError,
    NotFoundError,
    SeasonNotStartedError,
    translate_integrity_error,
)
from src.modules.shared.pagination import FilterField, PaginationQuery, apply_qs, build_page

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


# ============================================================================
# Repositories
# ============================================================================


class UserSeasonHistoryRepository(BaseRepository[UserSeasonHistory]):
    """Repository for UserSeasonHistory model."""

    async def find_for(
        self, session: AsyncSession, user_id: int, season_id: int, for_update: bool = False
    ) -> Optional[UserSeasonHistory]:
        return await self.find_one_where(
            session,
            UserSeasonHistory.user_id == user_id,
            UserSeasonHistory.leaderboard_season_id == season_id,
            for_update=for_update,
        )


class UserRepository(BaseRepository[User]):
    """Repository for User model."""


# ============================================================================
# UserSeasonHistoryService
# ============================================================================


class UserSeasonHistoryService(BaseService):
    """
    Service for per-user season participation.

    Public Methods
    --------------
    - join_season() -> Join the ACTIVE season
    - ensure_joined() -> Idempotent join inside a caller's transaction
    - get_current_history() / get_history() / list_histories()
    - update_history() -> Admin correction of final_elo
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._histories = UserSeasonHistoryRepository(
            model_class=UserSeasonHistory,
            logger=get_logger(f"{__name__}.UserSeasonHistoryRepository"),
        )
        self._users = UserRepository(
            model_class=User,
            logger=get_logger(f"{__name__}.UserRepository"),
        )
        self._seasons = SeasonRepository(
            model_class=LeaderboardSeason,
            logger=get_logger(f"{__name__}.SeasonRepository"),
        )

    @property
    def repository(self) -> UserSeasonHistoryRepository:
        return self._histories

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def join_season(self, user_id: int) -> Dict[str, Any]:
        """
        Join the ACTIVE season.

        Raises:
            NotFoundError: Unknown user
            SeasonNotStartedError: No ACTIVE season
            ConflictError: Already joined
        """
        self.validate_positive_int(user_id, "user_id")

        try:
            async with DatabaseService.get_transaction() as session:
                if await self._users.get(session, user_id) is None:
                    raise NotFoundError("User", user_id)

                season = await self._seasons.find_active(session)
                if season is None:
                    raise SeasonNotStartedError()

                if await self._histories.find_for(session, user_id, season.id) is not None:
                    raise ConflictError(
                        "User already joined the active season",
                        details={"user_id": user_id, "season_id": season.id},
                        error_code="SEASON_ALREADY_JOINED",
                    )

                history = self._histories.add(
                    session,
                    UserSeasonHistory(user_id=user_id, leaderboard_season_id=season.id),
                )
                await self._histories.flush(session)
                result = self.serialize(history)
        except IntegrityError as exc:
            raise translate_integrity_error(exc, "UserSeasonHistory") from exc

        self.log_operation("join_season", user_id=user_id, season_id=result["leaderboard_season_id"])
        await self.emit_event(
            "season.joined",
            {"user_id": user_id, "season_id": result["leaderboard_season_id"]},
        )
        return result

    async def ensure_joined(
        self, session: AsyncSession, user_id: int, season_id: int
    ) -> UserSeasonHistory:
        """Return the user's row for the season, creating it when missing."""
        history = await self._histories.find_for(session, user_id, season_id)
        if history is None:
            history = self._histories.add(
                session,
                UserSeasonHistory(user_id=user_id, leaderboard_season_id=season_id),
            )
            await self._histories.flush(session)
            self.log.debug(
                "User auto-joined season",
                extra={"user_id": user_id, "season_id": season_id},
            )
        return history

    async def update_history(
        self,
        history_id: int,
        final_elo: int,
        updated_by_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Set ``final_elo``; ``final_rank`` is recomputed from it.

        Raises:
            ValidationError: ``final_elo`` outside the rating range
            NotFoundError: Unknown history row
        """
        self.validate_non_negative_int(final_elo, "final_elo")
        self.validate_range(final_elo, "final_elo", MIN_ELO, MAX_ELO)
        bands = load_rank_bands(self.get_config("rank.bands"))

        async with DatabaseService.get_transaction() as session:
            history = await self._histories.get_for_update(session, history_id)
            if history is None:
                raise NotFoundError("UserSeasonHistory", history_id)
            history.final_elo = final_elo
            history.final_rank = convert_elo_to_rank(final_elo, bands)
            await self._histories.flush(session)
            result = self.serialize(history)

        self.log_operation(
            "update_history",
            history_id=history_id,
            final_elo=final_elo,
            updated_by_id=updated_by_id,
        )
        await self.emit_event(
            "season.history.updated",
            {"history_id": history_id, "season_id": result["leaderboard_season_id"]},
        )
        return result

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_current_history(self, user_id: int) -> Dict[str, Any]:
        """
        Raises:
            SeasonNotStartedError: No ACTIVE season
            NotFoundError: The user has not joined the ACTIVE season
        """
        async with DatabaseService.get_session() as session:
            season = await self._seasons.find_active(session)
            if season is None:
                raise SeasonNotStartedError()
            history = await self._histories.find_for(session, user_id, season.id)
            if history is None:
                raise NotFoundError("UserSeasonHistory", f"user_id={user_id}, season_id={season.id}")
            return self.serialize(history)

    async def get_history(self, history_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_session() as session:
            history = await self._histories.get(session, history_id)
            if history is None:
                raise NotFoundError("UserSeasonHistory", history_id)
            return self.serialize(history)

    async def list_histories(self, query: Optional[PaginationQuery] = None) -> Dict[str, Any]:
        """
        Paginated history rows.

        ``qs`` filters: ``user_id``, ``season_id``, ``status``, ``final_rank``,
        ``rewards_claimed``; sort keys: ``id``, ``final_elo``, ``joined_at``.
        """
        query = query or PaginationQuery()
        page, size = query.resolve(
            default_size=int(self.get_config("core.pagination.default_page_size", 20)),
            max_size=int(self.get_config("core.pagination.max_page_size", 100)),
        )
        stmt = apply_qs(
            self._histories.select(),
            query.qs,
            filters={
                "user_id": FilterField(UserSeasonHistory.user_id, mode="int"),
                "season_id": FilterField(UserSeasonHistory.leaderboard_season_id, mode="int"),
                "status": FilterField(UserSeasonHistory.status, mode="enum", enum=HistoryStatus),
                "final_rank": FilterField(UserSeasonHistory.final_rank, mode="enum", enum=RankName),
                "rewards_claimed": FilterField(
                    UserSeasonHistory.rewards_claimed, mode="enum", enum=RewardClaimStatus
                ),
            },
            sortable={
                "id": UserSeasonHistory.id,
                "final_elo": UserSeasonHistory.final_elo,
                "joined_at": UserSeasonHistory.joined_at,
            },
            default_order=[UserSeasonHistory.joined_at.desc(), UserSeasonHistory.id.desc()],
        )

        async with DatabaseService.get_session() as session:
            rows, total = await self._histories.paginate(
                session, stmt, offset=(page - 1) * size, limit=size
            )
            results = [self.serialize(row) for row in rows]

        return build_page(results, page=page, size=size, total=total)

    @staticmethod
    def serialize(history: UserSeasonHistory) -> Dict[str, Any]:
        return {
            "id": history.id,
            "user_id": history.user_id,
            "leaderboard_season_id": history.leaderboard_season_id,
            "status": history.status.value,
            "joined_at": history.joined_at.isoformat() if history.joined_at else None,
            "final_elo": history.final_elo,
            "final_rank": history.final_rank.value if history.final_rank else None,
            "season_rank_reward_id": history.season_rank_reward_id,
            "rewards_claimed": history.rewards_claimed.value,
        }
