"""
Rank Aggregator Service
=======================

Purpose
-------
Read-side aggregation over seasons, users and matches: rank conversion,
rank distribution, leaderboards and dashboard statistics.

Domain
------
- ACTIVE season: ranks are computed live from ``User.eloscore``
- Any other season: ranks come from the frozen ``UserSeasonHistory`` rows
- Statistics of EXPIRED seasons never change and are cached in Redis;
  cached entries are dropped on ``season.*`` and ``match.completed`` events

Caching
-------
Keys: ``arena:rank-distribution:{season_id}``, ``arena:season-detail:{season_id}``
TTL: ``stats.cache_ttl_seconds``
"""

from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisService
from src.database.models.competition.match import Match
from src.database.models.core.user import User
from src.database.models.enums import MatchStatus, RankName, SeasonStatus
from src.database.models.progression.season import LeaderboardSeason
from src.database.models.progression.season_history import UserSeasonHistory
from src.modules.ranking.formulas import (
    RANK_PRIORITY,
    RankBands,
    calculate_percentage,
    convert_elo_to_rank,
    load_rank_bands,
    parse_rank,
    rank_bounds,
)
from src.modules.season.service import SeasonRepository, SeasonService
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import NotFoundError
from src.modules.shared.pagination import PaginationQuery, build_page

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class RankAggregatorService(BaseService):
    """
    Service for rank tiers, leaderboards and season statistics.

    Public Methods
    --------------
    - convert_elo_to_rank() -> Rank tier for an ELO score
    - get_rank_distribution() -> Per-rank counts and percentages
    - get_leaderboard() -> Paginated standings with the caller's position
    - get_season_stats() -> Paginated per-season dashboard rows
    - get_season_detail() -> One season's summary, match totals and top players
    - get_match_activity() -> Per-day match counts across a season
    - register_listeners() -> Subscribe cache invalidation to domain events
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        cache: Any = RedisService,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._cache = cache
        self._seasons = SeasonRepository(
            model_class=LeaderboardSeason,
            logger=get_logger(f"{__name__}.SeasonRepository"),
        )

    # ========================================================================
    # Rank conversion
    # ========================================================================

    @property
    def bands(self) -> RankBands:
        return load_rank_bands(self.get_config("rank.bands"))

    def convert_elo_to_rank(self, elo: int) -> str:
        return convert_elo_to_rank(elo, self.bands).value

    # ========================================================================
    # Event wiring
    # ========================================================================

    def register_listeners(self) -> None:
        self._events.subscribe(
            "match.completed", self._invalidate_season_cache, identifier="rank-cache:match"
        )
        self._events.subscribe(
            "season.*", self._invalidate_season_cache, identifier="rank-cache:season"
        )

    async def _invalidate_season_cache(self, payload: Dict[str, Any]) -> None:
        season_id = payload.get("season_id")
        if season_id is None:
            return
        await self._cache.delete(
            self._cache.key("rank-distribution", season_id),
            self._cache.key("season-detail", season_id),
        )

    # ========================================================================
    # Distribution
    # ========================================================================

    async def get_rank_distribution(self, season_id: int) -> Dict[str, Any]:
        """
        Tally season participants into rank bands.

        Returns:
            {"season_id", "total", "distribution": {"N5": {"count", "percentage"}, ...}}

        Raises:
            NotFoundError: Unknown season
        """
        async with DatabaseService.get_session() as session:
            season = await self._get_season(session, season_id)
            if season.status is SeasonStatus.EXPIRED:
                cache_key = self._cache.key("rank-distribution", season_id)
                cached = await self._cache.get_json(cache_key)
                if cached is not None:
                    return cached
                result = await self._distribution(session, season)
                await self._cache.set_json(
                    cache_key, result, ttl_seconds=int(self.get_config("stats.cache_ttl_seconds", 3600))
                )
                return result
            return await self._distribution(session, season)

    async def _distribution(self, session: AsyncSession, season: LeaderboardSeason) -> Dict[str, Any]:
        bands = self.bands
        if season.status is SeasonStatus.EXPIRED:
            stmt = select(UserSeasonHistory.final_rank).where(
                UserSeasonHistory.leaderboard_season_id == season.id,
                UserSeasonHistory.final_rank.is_not(None),
            )
            ranks = [rank for rank in (await session.execute(stmt)).scalars().all()]
        else:
            stmt = (
                select(User.eloscore)
                .join(UserSeasonHistory, UserSeasonHistory.user_id == User.id)
                .where(
                    UserSeasonHistory.leaderboard_season_id == season.id,
                    User.deleted_at.is_(None),
                )
            )
            ranks = [
                convert_elo_to_rank(elo, bands)
                for elo in (await session.execute(stmt)).scalars().all()
            ]

        counts = Counter(ranks)
        total = len(ranks)
        return {
            "season_id": season.id,
            "total": total,
            "distribution": {
                rank.value: {
                    "count": counts.get(rank, 0),
                    "percentage": calculate_percentage(counts.get(rank, 0), total),
                }
                for rank in reversed(RANK_PRIORITY)
            },
        }

    # ========================================================================
    # Leaderboard
    # ========================================================================

    async def get_leaderboard(
        self,
        season_id: Optional[int] = None,
        user_id: Optional[int] = None,
        rank_name: Optional[str] = None,
        query: Optional[PaginationQuery] = None,
        lang: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Standings of a season.

        The season defaults to the ACTIVE one, then to the latest ending one.
        An unknown ``rank_name`` yields an empty page. With a rank filter, ``me``
        is None unless the caller falls in that rank, and is counted inside it.

        Raises:
            NotFoundError: No matching season
        """
        query = query or PaginationQuery()
        page, size = query.resolve(
            default_size=int(self.get_config("core.pagination.default_page_size", 20)),
            max_size=int(self.get_config("core.pagination.max_page_size", 100)),
        )
        offset = (page - 1) * size

        async with DatabaseService.get_session() as session:
            season = await self._resolve_season(session, season_id)
            live = season.status is SeasonStatus.ACTIVE

            rank = parse_rank(rank_name)
            me = None
            if rank_name is not None and rank is None:
                entries: List[Dict[str, Any]] = []
                total = 0
            else:
                entries, total = await self._leaderboard_page(
                    session, season, live, rank, offset, size
                )
                if user_id:
                    me = await self._position_of(session, season, live, user_id, rank)

        response = build_page(entries, page=page, size=size, total=total)
        response["season"] = SeasonService.serialize(season, lang)
        response["me"] = me
        return response

    async def _leaderboard_page(
        self,
        session: AsyncSession,
        season: LeaderboardSeason,
        live: bool,
        rank: Optional[RankName],
        offset: int,
        limit: int,
    ) -> Tuple[List[Dict[str, Any]], int]:
        bands = self.bands
        if live:
            elo_column = User.eloscore
            stmt = (
                select(User.id, User.name, User.eloscore)
                .where(User.deleted_at.is_(None))
                .order_by(User.eloscore.desc(), User.name.asc(), User.id.asc())
            )
        else:
            elo_column = UserSeasonHistory.final_elo
            stmt = (
                select(UserSeasonHistory.user_id, User.name, UserSeasonHistory.final_elo)
                .join(User, User.id == UserSeasonHistory.user_id)
                .where(
                    UserSeasonHistory.leaderboard_season_id == season.id,
                    UserSeasonHistory.final_elo.is_not(None),
                )
                .order_by(UserSeasonHistory.final_elo.desc(), UserSeasonHistory.user_id.asc())
            )
        if rank is not None:
            low, high = rank_bounds(rank, bands)
            stmt = stmt.where(elo_column.between(low, high))

        total = (
            await session.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
        ).scalar_one()
        rows = (await session.execute(stmt.offset(offset).limit(limit))).all()

        entries = [
            {
                "position": offset + index + 1,
                "user_id": row[0],
                "name": row[1],
                "elo": row[2],
                "rank": convert_elo_to_rank(row[2], bands).value,
            }
            for index, row in enumerate(rows)
        ]
        return entries, total

    async def _position_of(
        self,
        session: AsyncSession,
        season: LeaderboardSeason,
        live: bool,
        user_id: int,
        rank: Optional[RankName] = None,
    ) -> Optional[Dict[str, Any]]:
        """Caller's position: rows strictly ahead of them in leaderboard order, plus one."""
        bands = self.bands
        if live:
            user = await session.get(User, user_id)
            if user is None or user.deleted_at is not None:
                return None
            elo = user.eloscore
            ahead = or_(
                User.eloscore > elo,
                and_(
                    User.eloscore == elo,
                    or_(User.name < user.name, and_(User.name == user.name, User.id < user.id)),
                ),
            )
            elo_column = User.eloscore
            stmt = select(func.count()).select_from(User).where(User.deleted_at.is_(None), ahead)
        else:
            history = (
                await session.execute(
                    select(UserSeasonHistory).where(
                        UserSeasonHistory.leaderboard_season_id == season.id,
                        UserSeasonHistory.user_id == user_id,
                        UserSeasonHistory.final_elo.is_not(None),
                    )
                )
            ).scalar_one_or_none()
            if history is None:
                return None
            elo = history.final_elo
            elo_column = UserSeasonHistory.final_elo
            stmt = (
                select(func.count())
                .select_from(UserSeasonHistory)
                .join(User, User.id == UserSeasonHistory.user_id)
                .where(
                    UserSeasonHistory.leaderboard_season_id == season.id,
                    UserSeasonHistory.final_elo.is_not(None),
                    or_(
                        UserSeasonHistory.final_elo > elo,
                        and_(
                            UserSeasonHistory.final_elo == elo,
                            UserSeasonHistory.user_id < user_id,
                        ),
                    ),
                )
            )

        own_rank = convert_elo_to_rank(elo, bands)
        if rank is not None:
            if own_rank is not rank:
                return None
            low, high = rank_bounds(rank, bands)
            stmt = stmt.where(elo_column.between(low, high))

        ahead_count = (await session.execute(stmt)).scalar_one()
        return {
            "position": ahead_count + 1,
            "user_id": user_id,
            "elo": elo,
            "rank": own_rank.value,
        }

    # ========================================================================
    # Season statistics
    # ========================================================================

    async def get_season_stats(
        self, query: Optional[PaginationQuery] = None, lang: Optional[str] = None
    ) -> Dict[str, Any]:
        """Paginated seasons with participant counts, match counts and distribution."""
        query = query or PaginationQuery()
        page, size = query.resolve(
            default_size=int(self.get_config("core.pagination.default_page_size", 20)),
            max_size=int(self.get_config("core.pagination.max_page_size", 100)),
        )

        async with DatabaseService.get_session() as session:
            seasons, total = await self._seasons.paginate(
                session,
                self._seasons.select().order_by(
                    LeaderboardSeason.start_date.desc(), LeaderboardSeason.id.desc()
                ),
                offset=(page - 1) * size,
                limit=size,
            )
            results = []
            for season in seasons:
                distribution = await self._distribution(session, season)
                results.append(
                    {
                        "season": SeasonService.serialize(season, lang),
                        "participant_count": await self._participant_count(session, season.id),
                        "matches": await self._match_counts(session, season.id),
                        "rank_distribution": distribution["distribution"],
                    }
                )

        return build_page(results, page=page, size=size, total=total)

    async def get_season_detail(self, season_id: int, lang: Optional[str] = None) -> Dict[str, Any]:
        """
        One season's dashboard: distribution, match totals and top players.

        Raises:
            NotFoundError: Unknown season
        """
        async with DatabaseService.get_session() as session:
            season = await self._get_season(session, season_id)
            season_summary = SeasonService.serialize(season, lang)
            cache_key = None
            if season.status is SeasonStatus.EXPIRED:
                cache_key = self._cache.key("season-detail", season_id)
                cached = await self._cache.get_json(cache_key)
                if cached is not None:
                    return {"season": season_summary, **cached}

            counts = await self._match_counts(session, season.id)
            avg_gain = (
                await session.execute(
                    select(func.avg(Match.elo_gained)).where(
                        Match.leaderboard_season_id == season.id,
                        Match.status == MatchStatus.COMPLETED,
                        Match.deleted_at.is_(None),
                    )
                )
            ).scalar_one()
            top_n = int(self.get_config("stats.top_players", 10))
            live = season.status is SeasonStatus.ACTIVE
            top_players, _ = await self._leaderboard_page(session, season, live, None, 0, top_n)

            stats = {
                "participant_count": await self._participant_count(session, season.id),
                "rank_distribution": (await self._distribution(session, season))["distribution"],
                "matches": {
                    "total": counts["total"],
                    "completed": counts[MatchStatus.COMPLETED.value],
                    "cancelled": counts[MatchStatus.CANCELLED.value],
                    "average_elo_gained": round(float(avg_gain), 2) if avg_gain is not None else 0.0,
                },
                "top_players": top_players,
            }

        if cache_key is not None:
            await self._cache.set_json(
                cache_key, stats, ttl_seconds=int(self.get_config("stats.cache_ttl_seconds", 3600))
            )
        return {"season": season_summary, **stats}

    async def get_match_activity(self, season_id: int) -> Dict[str, Any]:
        """
        Per-day created/completed match counts across the season window.

        Open window bounds fall back to the first/last match day.
        """
        async with DatabaseService.get_session() as session:
            season = await self._get_season(session, season_id)
            rows = (
                await session.execute(
                    select(Match.created_at, Match.completed_at).where(
                        Match.leaderboard_season_id == season.id,
                        Match.deleted_at.is_(None),
                    )
                )
            ).all()

        created = Counter(row[0].date() for row in rows if row[0] is not None)
        completed = Counter(row[1].date() for row in rows if row[1] is not None)
        seen_days = sorted(set(created) | set(completed))

        start: Optional[date] = season.start_date or (seen_days[0] if seen_days else None)
        end: Optional[date] = season.end_date or (seen_days[-1] if seen_days else None)
        days: List[Dict[str, Any]] = []
        if start is not None and end is not None:
            current = start
            while current <= end:
                days.append(
                    {
                        "date": current.isoformat(),
                        "created": created.get(current, 0),
                        "completed": completed.get(current, 0),
                    }
                )
                current += timedelta(days=1)

        return {
            "season_id": season.id,
            "start_date": start.isoformat() if start else None,
            "end_date": end.isoformat() if end else None,
            "total_created": sum(created.values()),
            "total_completed": sum(completed.values()),
            "days": days,
        }

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _get_season(self, session: AsyncSession, season_id: int) -> LeaderboardSeason:
        season = await self._seasons.get(session, season_id)
        if season is None:
            raise NotFoundError("LeaderboardSeason", season_id)
        return season

    async def _resolve_season(
        self, session: AsyncSession, season_id: Optional[int]
    ) -> LeaderboardSeason:
        if season_id is not None:
            return await self._get_season(session, season_id)
        season = await self._seasons.find_active(session) or await self._seasons.find_latest(session)
        if season is None:
            raise NotFoundError("LeaderboardSeason")
        return season

    @staticmethod
    async def _participant_count(session: AsyncSession, season_id: int) -> int:
        return (
            await session.execute(
                select(func.count())
                .select_from(UserSeasonHistory)
                .where(UserSeasonHistory.leaderboard_season_id == season_id)
            )
        ).scalar_one()

    @staticmethod
    async def _match_counts(session: AsyncSession, season_id: int) -> Dict[str, int]:
        rows = (
            await session.execute(
                select(Match.status, func.count())
                .where(Match.leaderboard_season_id == season_id, Match.deleted_at.is_(None))
                .group_by(Match.status)
            )
        ).all()
        counts = {status.value: 0 for status in MatchStatus}
        for status, count in rows:
            counts[MatchStatus(status).value] = count
        counts["total"] = sum(count for _, count in rows)
        return counts
