"""
Season Rank Reward Service
==========================

Purpose
-------
Manages the reward table of a season: which external rewards each rank
placement receives when the season is finalized.

Domain
------
- Rewards are keyed by (rank, order); ``order`` NULL is the rank's common reward
- Replacing a season's rewards is atomic (delete then create)
- Precreated seasons clone the template's rewards, optionally redrawing the
  reward ids from ``season.random_reward_pool``

Events
------
- season.rewards.updated, season.reward.deleted
"""

from __future__ import annotations

import random
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models.enums import RankName, SeasonStatus
from src.database.models.progression.season import LeaderboardSeason
from src.database.models.progression.season_reward import SeasonRankReward
from src.modules.ranking.formulas import RANK_PRIORITY, parse_rank
from src.modules.season.service import SeasonRepository
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import InvalidOperationError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


# ============================================================================
# Repository
# ============================================================================


class SeasonRankRewardRepository(BaseRepository[SeasonRankReward]):
    """Repository for SeasonRankReward model."""

    async def find_by_season(self, session: AsyncSession, season_id: int) -> List[SeasonRankReward]:
        return await self.find_many_where(
            session,
            SeasonRankReward.leaderboard_season_id == season_id,
            order_by=[
                SeasonRankReward.rank_name,
                SeasonRankReward.order.asc().nulls_last(),
                SeasonRankReward.id,
            ],
        )

    async def delete_by_season(self, session: AsyncSession, season_id: int) -> int:
        result = await session.execute(
            delete(SeasonRankReward).where(SeasonRankReward.leaderboard_season_id == season_id)
        )
        self.log.debug(
            "Repository.delete_by_season: SeasonRankReward",
            extra={"season_id": season_id, "deleted": result.rowcount},
        )
        return result.rowcount or 0


# ============================================================================
# SeasonRankRewardService
# ============================================================================


class SeasonRankRewardService(BaseService):
    """
    Service for per-season rank rewards.

    Public Methods
    --------------
    - replace_rank_rewards() -> Atomically replace a season's reward table
    - list_rank_rewards() -> Reward table grouped by rank
    - delete_rank_reward() -> Remove one reward row
    - clone_rewards() -> Copy rewards into a precreated season
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._rewards = SeasonRankRewardRepository(
            model_class=SeasonRankReward,
            logger=get_logger(f"{__name__}.SeasonRankRewardRepository"),
        )
        self._seasons = SeasonRepository(
            model_class=LeaderboardSeason,
            logger=get_logger(f"{__name__}.SeasonRepository"),
        )
        self._rng = rng or random.Random()

    @property
    def repository(self) -> SeasonRankRewardRepository:
        return self._rewards

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def replace_rank_rewards(
        self,
        season_id: int,
        items: Sequence[Mapping[str, Any]],
        updated_by_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Replace the reward table of a season.

        ``items`` is a list of rank groups::

            [{"rank_name": "N3", "rewards": [{"order": 1, "reward_ids": [7]},
                                             {"order": None, "reward_ids": [2]}]}]

        Raises:
            ValidationError: Unknown/duplicate ranks, duplicate or invalid orders,
                malformed reward ids
            NotFoundError: Unknown season
            InvalidOperationError: Season already expired
        """
        rows = self._validate_items(items)

        async with DatabaseService.get_transaction() as session:
            season = await self._seasons.get_for_update(session, season_id)
            if season is None:
                raise NotFoundError("LeaderboardSeason", season_id)
            if season.status is SeasonStatus.EXPIRED:
                raise InvalidOperationError(
                    "replace_rank_rewards", "Rewards of an expired season are already distributed"
                )

            removed = await self._rewards.delete_by_season(session, season_id)
            self._rewards.add_many(
                session,
                [
                    SeasonRankReward(
                        leaderboard_season_id=season_id,
                        rank_name=rank,
                        order=order,
                        reward_ids=reward_ids,
                        created_by_id=updated_by_id,
                        updated_by_id=updated_by_id,
                    )
                    for rank, order, reward_ids in rows
                ],
            )
            await self._rewards.flush(session)
            result = self.group(await self._rewards.find_by_season(session, season_id))

        self.log_operation(
            "replace_rank_rewards",
            season_id=season_id,
            removed=removed,
            created=len(rows),
            updated_by_id=updated_by_id,
        )
        await self.emit_event(
            "season.rewards.updated", {"season_id": season_id, "count": len(rows)}
        )
        return result

    async def list_rank_rewards(self, season_id: int) -> List[Dict[str, Any]]:
        async with DatabaseService.get_session() as session:
            if await self._seasons.get(session, season_id) is None:
                raise NotFoundError("LeaderboardSeason", season_id)
            return self.group(await self._rewards.find_by_season(session, season_id))

    async def delete_rank_reward(self, reward_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            reward = await self._rewards.get_for_update(session, reward_id)
            if reward is None:
                raise NotFoundError("SeasonRankReward", reward_id)
            season_id = reward.leaderboard_season_id
            await self._rewards.delete(session, reward)

        self.log_operation("delete_rank_reward", reward_id=reward_id, season_id=season_id)
        await self.emit_event(
            "season.reward.deleted", {"reward_id": reward_id, "season_id": season_id}
        )
        return {"id": reward_id, "deleted": True}

    async def clone_rewards(
        self,
        session: AsyncSession,
        source_season_id: int,
        target_season_id: int,
        randomize: bool = False,
    ) -> List[SeasonRankReward]:
        """
        Copy rewards from one season to another inside the caller's transaction.

        With ``randomize`` the reward ids of each row are redrawn from the
        configured pool, keeping the row's reward count.
        """
        pool = [int(item) for item in (self.get_config("season.random_reward_pool") or [])]
        clones: List[SeasonRankReward] = []
        for reward in await self._rewards.find_by_season(session, source_season_id):
            reward_ids = list(reward.reward_ids or [])
            if randomize and pool:
                reward_ids = self._rng.sample(pool, k=min(len(reward_ids) or 1, len(pool)))
            clones.append(
                SeasonRankReward(
                    leaderboard_season_id=target_season_id,
                    rank_name=reward.rank_name,
                    order=reward.order,
                    reward_ids=reward_ids,
                )
            )
        if clones:
            self._rewards.add_many(session, clones)
            await self._rewards.flush(session)

        self.log.debug(
            "Cloned season rank rewards",
            extra={
                "source_season_id": source_season_id,
                "target_season_id": target_season_id,
                "count": len(clones),
                "randomized": bool(randomize and pool),
            },
        )
        return clones

    # ========================================================================
    # HELPERS
    # ========================================================================

    @staticmethod
    def group(rewards: Sequence[SeasonRankReward]) -> List[Dict[str, Any]]:
        """Group reward rows by rank, highest rank first, common reward last."""
        grouped: Dict[RankName, List[SeasonRankReward]] = defaultdict(list)
        for reward in rewards:
            grouped[reward.rank_name].append(reward)

        result = []
        for rank in RANK_PRIORITY:
            if rank not in grouped:
                continue
            ordered = sorted(
                grouped[rank],
                key=lambda r: (r.order is None, r.order or 0, r.id or 0),
            )
            result.append(
                {
                    "rank_name": rank.value,
                    "rewards": [
                        {"id": r.id, "order": r.order, "reward_ids": list(r.reward_ids or [])}
                        for r in ordered
                    ],
                }
            )
        return result

    @staticmethod
    def _validate_items(
        items: Sequence[Mapping[str, Any]],
    ) -> List[tuple[RankName, Optional[int], List[int]]]:
        if not isinstance(items, (list, tuple)):
            raise ValidationError("items", "items must be a list of rank groups")

        rows: List[tuple[RankName, Optional[int], List[int]]] = []
        seen_ranks = set()
        for group in items:
            rank = parse_rank(group.get("rank_name"))
            if rank is None:
                raise ValidationError("rank_name", f"Unknown rank '{group.get('rank_name')}'")
            if rank in seen_ranks:
                raise ValidationError("items", f"Duplicate rank group '{rank.value}'")
            seen_ranks.add(rank)

            seen_orders = set()
            for entry in group.get("rewards") or []:
                order = entry.get("order")
                if order is not None:
                    if isinstance(order, bool) or not isinstance(order, int) or order < 1:
                        raise ValidationError("order", f"order must be an integer >= 1, got {order!r}")
                if order in seen_orders:
                    raise ValidationError(
                        "order", f"Duplicate order {order!r} in rank '{rank.value}'"
                    )
                seen_orders.add(order)

                reward_ids = entry.get("reward_ids") or []
                if not isinstance(reward_ids, (list, tuple)) or not all(
                    isinstance(rid, int) and not isinstance(rid, bool) and rid > 0
                    for rid in reward_ids
                ):
                    raise ValidationError("reward_ids", "reward_ids must be positive integers")
                rows.append((rank, order, list(reward_ids)))
        return rows
