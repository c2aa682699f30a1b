"""
Season Rotation
===============

Purpose
-------
Scheduled job that closes finished seasons, opens the next one and
precreates upcoming seasons from their predecessors.

Domain
------
- Expire: every ACTIVE season with ``end_date`` before today is finalized
  (standings frozen into history, placement rewards assigned, ELO reset)
  and marked EXPIRED; its successor is precreated first when enabled
- Activate: with no ACTIVE season left, the earliest PREVIEW season whose
  window contains today becomes ACTIVE
- Early precreate: an ACTIVE season within ``precreate_before_end_days`` of
  its end precreates its successor once, then disables precreation
- One pass runs under the ``season-rotation`` Redis lock

Events
------
- season.expired, season.activated, season.precreated
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import LogContext, get_logger
from src.core.redis.service import RedisLockTimeoutError, RedisService
from src.database.models.core.user import User
from src.database.models.enums import HistoryStatus, RankName, RewardClaimStatus, SeasonStatus
from src.database.models.progression.season import LeaderboardSeason
from src.database.models.progression.season_history import UserSeasonHistory
from src.database.models.progression.season_reward import SeasonRankReward
from src.modules.ranking.formulas import RANK_PRIORITY, convert_elo_to_rank, load_rank_bands
from src.modules.season.history_service import UserRepository, UserSeasonHistoryRepository
from src.modules.season.service import window_contains
from src.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.season.reward_service import SeasonRankRewardService
    from src.modules.season.service import SeasonService


class SeasonRotationService(BaseService):
    """
    Service running the season rotation pass.

    Public Methods
    --------------
    - run() -> Locked rotation pass
    - run_unlocked() -> Rotation pass without the distributed lock
    - precreate_next_season() -> Create the PREVIEW successor of a season
    """

    LOCK_NAME = ("lock", "season-rotation")

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        season_service: SeasonService,
        reward_service: SeasonRankRewardService,
        lock_provider: Any = RedisService,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._season_service = season_service
        self._reward_service = reward_service
        self._seasons = season_service.repository
        self._rewards = reward_service.repository
        self._users = UserRepository(
            model_class=User,
            logger=get_logger(f"{__name__}.UserRepository"),
        )
        self._histories = UserSeasonHistoryRepository(
            model_class=UserSeasonHistory,
            logger=get_logger(f"{__name__}.UserSeasonHistoryRepository"),
        )
        self._locks = lock_provider

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one rotation pass under the distributed lock.

        Returns ``{"skipped": True}`` when another worker holds the lock.
        """
        key = self._locks.key(*self.LOCK_NAME)
        timeout = int(self.get_config("season.rotation_lock_timeout_seconds", 300))
        try:
            async with self._locks.acquire_lock(
                key, timeout=timeout, wait_timeout=0, operation="season_rotation"
            ):
                return await self.run_unlocked(now)
        except RedisLockTimeoutError:
            self.log.info("Season rotation already running elsewhere", extra={"lock_key": key})
            return {"skipped": True}

    async def run_unlocked(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        today = self.utc_today(now)
        events: List[Tuple[str, Dict[str, Any]]] = []
        summary: Dict[str, Any] = {
            "skipped": False,
            "expired": [],
            "activated": None,
            "precreated": [],
        }

        with LogContext(operation="season_rotation", today=today.isoformat()):
            async with DatabaseService.get_transaction() as session:
                await self._expire_finished(session, today, summary, events)
                await self._activate_next(session, today, summary, events)
                await self._precreate_upcoming(session, today, summary, events)

        self.log_operation(
            "season_rotation",
            expired=summary["expired"],
            activated=summary["activated"],
            precreated=summary["precreated"],
        )
        for name, payload in events:
            await self.emit_event(name, payload)
        return summary

    async def precreate_next_season(
        self, session: AsyncSession, template: LeaderboardSeason, today: date
    ) -> Optional[LeaderboardSeason]:
        """
        Create the PREVIEW season following ``template`` inside the caller's
        transaction. Returns None when that season already exists.
        """
        start_date = template.end_date or today
        if template.start_date and template.end_date:
            duration = max(1, (template.end_date - template.start_date).days)
        else:
            duration = int(self.get_config("season.default_duration_days", 30))

        existing = await self._seasons.find_one_where(
            session,
            LeaderboardSeason.status == SeasonStatus.PREVIEW,
            LeaderboardSeason.start_date == start_date,
        )
        if existing is not None:
            self.log.info(
                "Next season already precreated",
                extra={"template_id": template.id, "existing_id": existing.id},
            )
            return None

        season = self._seasons.add(
            session,
            LeaderboardSeason(
                name_translations=dict(template.name_translations or {}),
                start_date=start_date,
                end_date=start_date + timedelta(days=duration),
                status=SeasonStatus.PREVIEW,
                has_opened=False,
                enable_precreate=template.enable_precreate,
                precreate_before_end_days=template.precreate_before_end_days,
                is_random_item_again=template.is_random_item_again,
                created_by_id=template.created_by_id,
            ),
        )
        await self._seasons.flush(session)
        season.name_key = self._season_service.build_name_key(season.id)

        await self._reward_service.clone_rewards(
            session, template.id, season.id, randomize=template.is_random_item_again
        )
        await self._seasons.flush(session)

        self.log.info(
            "Precreated next season",
            extra={
                "template_id": template.id,
                "season_id": season.id,
                "start_date": season.start_date.isoformat(),
                "end_date": season.end_date.isoformat(),
            },
        )
        return season

    # ========================================================================
    # ROTATION STEPS
    # ========================================================================

    async def _expire_finished(self, session, today, summary, events) -> None:
        finished = await self._seasons.find_many_where(
            session,
            LeaderboardSeason.status == SeasonStatus.ACTIVE,
            LeaderboardSeason.end_date.is_not(None),
            LeaderboardSeason.end_date < today,
            for_update=True,
            order_by=[LeaderboardSeason.end_date, LeaderboardSeason.id],
        )
        for season in finished:
            finalized = await self._finalize(session, season)
            if season.enable_precreate:
                created = await self.precreate_next_season(session, season, today)
                if created is not None:
                    summary["precreated"].append(created.id)
                    events.append(
                        ("season.precreated", {"season_id": created.id, "template_id": season.id})
                    )
            season.status = SeasonStatus.EXPIRED
            await self._seasons.flush(session)

            summary["expired"].append(season.id)
            events.append(("season.expired", {"season_id": season.id, **finalized}))

    async def _activate_next(self, session, today, summary, events) -> None:
        if await self._seasons.find_active(session) is not None:
            return

        candidates = await self._seasons.find_many_where(
            session,
            LeaderboardSeason.status == SeasonStatus.PREVIEW,
            for_update=True,
            order_by=[LeaderboardSeason.start_date.asc().nulls_last(), LeaderboardSeason.id],
        )
        for season in candidates:
            if window_contains(season.start_date, season.end_date, today):
                season.status = SeasonStatus.ACTIVE
                season.has_opened = True
                await self._seasons.flush(session)
                summary["activated"] = season.id
                events.append(("season.activated", {"season_id": season.id}))
                return

        self.log.info("No PREVIEW season to activate", extra={"today": today.isoformat()})

    async def _precreate_upcoming(self, session, today, summary, events) -> None:
        active = await self._seasons.find_many_where(
            session,
            LeaderboardSeason.status == SeasonStatus.ACTIVE,
            LeaderboardSeason.enable_precreate.is_(True),
            LeaderboardSeason.end_date.is_not(None),
            for_update=True,
        )
        for season in active:
            if season.end_date - timedelta(days=season.precreate_before_end_days) > today:
                continue
            created = await self.precreate_next_season(session, season, today)
            season.enable_precreate = False
            season.precreate_before_end_days = int(
                self.get_config("season.precreate_disabled_days", 999)
            )
            await self._seasons.flush(session)
            if created is not None:
                summary["precreated"].append(created.id)
                events.append(
                    ("season.precreated", {"season_id": created.id, "template_id": season.id})
                )

    # ========================================================================
    # FINALIZATION
    # ========================================================================

    async def _finalize(self, session: AsyncSession, season: LeaderboardSeason) -> Dict[str, Any]:
        """
        Freeze standings, assign placement rewards and reset ELO.

        Each rank's rows are numbered 1..n by ELO desc (user id breaks ties);
        a row gets the reward for its (rank, order) or else the rank's common
        reward. Every participant's ELO drops by ``season.elo_reset_amount``;
        users who never joined the season keep their ELO.
        """
        bands = load_rank_bands(self.get_config("rank.bands"))
        reset_amount = int(self.get_config("season.elo_reset_amount", 1000))

        rows = await self._histories.find_many_where(
            session,
            UserSeasonHistory.leaderboard_season_id == season.id,
            for_update=True,
        )
        participant_ids = {h.user_id for h in rows}
        users: Dict[int, User] = {}
        if participant_ids:
            users = {
                u.id: u
                for u in await self._users.find_many_where(
                    session, User.id.in_(participant_ids), for_update=True
                )
            }

        grouped: Dict[RankName, List[UserSeasonHistory]] = defaultdict(list)
        for history in rows:
            user = users.get(history.user_id)
            history.final_elo = user.eloscore if user is not None else (history.final_elo or 0)
            history.final_rank = convert_elo_to_rank(history.final_elo, bands)
            history.status = HistoryStatus.INACTIVE
            grouped[history.final_rank].append(history)

        placement, common = self._index_rewards(
            await self._rewards.find_by_season(session, season.id)
        )

        rewarded = 0
        for rank in RANK_PRIORITY:
            ordered = sorted(grouped.get(rank, []), key=lambda h: (-h.final_elo, h.user_id))
            for order, history in enumerate(ordered, start=1):
                reward = placement.get((rank, order)) or common.get(rank)
                history.season_rank_reward_id = reward.id if reward is not None else None
                history.rewards_claimed = RewardClaimStatus.CLAIMED
                if reward is not None:
                    rewarded += 1

        for user in users.values():
            user.eloscore = max(0, user.eloscore - reset_amount)

        await self._seasons.flush(session)
        self.log.info(
            "Season finalized",
            extra={
                "season_id": season.id,
                "participants": len(rows),
                "rewarded": rewarded,
                "users_reset": len(users),
            },
        )
        return {"participants": len(rows), "rewarded": rewarded}

    @staticmethod
    def _index_rewards(
        rewards: List[SeasonRankReward],
    ) -> Tuple[Dict[Tuple[RankName, int], SeasonRankReward], Dict[RankName, SeasonRankReward]]:
        placement: Dict[Tuple[RankName, int], SeasonRankReward] = {}
        common: Dict[RankName, SeasonRankReward] = {}
        for reward in rewards:
            if reward.order is None:
                common.setdefault(reward.rank_name, reward)
            else:
                placement[(reward.rank_name, reward.order)] = reward
        return placement, common
