"""
Matchmaking
===========

Purpose
-------
Pairs queued users of similar ELO into matches. The queue itself is a pure
in-memory structure driven by an explicit clock; ``MatchmakingService``
wires it to the database and the match lifecycle.

Domain
------
- A user starts with a search range of ±``initial_range_percent`` of their ELO
- Every ``expand_interval_seconds`` the range widens by ``expand_percent``
- Ranges are clamped to [MIN_ELO, MAX_ELO]; once a bound is hit the range is
  at its maximum and the user is kicked ``kick_after_max_seconds`` later
- Two users match when either one's ELO lies inside the other's range

Events
------
- matchmaking.joined, matchmaking.left
- matchmaking.kicked, matchmaking.matched
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models.core.user import User
from src.database.models.progression.season import LeaderboardSeason
from src.modules.ranking.formulas import MAX_ELO, MIN_ELO
from src.modules.season.history_service import UserRepository
from src.modules.season.service import SeasonRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ArenaDomainException,
    ConflictError,
    NoActiveSeasonError,
    NotFoundError,
)

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.match.service import MatchService


# ============================================================================
# Queue
# ============================================================================


@dataclass(frozen=True)
class MatchmakingSettings:
    initial_range_percent: float = 10.0
    expand_percent: float = 10.0
    expand_interval_seconds: float = 5.0
    kick_after_max_seconds: float = 50.0

    @classmethod
    def from_config(cls, config: Any) -> "MatchmakingSettings":
        return cls(
            initial_range_percent=float(config.get("matchmaking.initial_range_percent", 10)),
            expand_percent=float(config.get("matchmaking.expand_percent", 10)),
            expand_interval_seconds=float(config.get("matchmaking.expand_interval_seconds", 5)),
            kick_after_max_seconds=float(config.get("matchmaking.kick_after_max_seconds", 50)),
        )


@dataclass
class QueueEntry:
    user_id: int
    base_elo: int
    joined_at: datetime
    min_elo: float
    max_elo: float
    max_range_reached_at: Optional[datetime] = None

    def accepts(self, elo: int) -> bool:
        return self.min_elo <= elo <= self.max_elo

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "elo": self.base_elo,
            "joined_at": self.joined_at.isoformat(),
            "min_elo": self.min_elo,
            "max_elo": self.max_elo,
            "max_range_reached_at": (
                self.max_range_reached_at.isoformat() if self.max_range_reached_at else None
            ),
        }


class MatchmakingQueue:
    """
    In-memory matchmaking queue. Insertion order is preserved and decides
    which pair matches first.
    """

    def __init__(self, settings: Optional[MatchmakingSettings] = None) -> None:
        self.settings = settings or MatchmakingSettings()
        self._entries: Dict[int, QueueEntry] = {}

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    def entries(self) -> List[QueueEntry]:
        return list(self._entries.values())

    def get(self, user_id: int) -> Optional[QueueEntry]:
        return self._entries.get(user_id)

    def add(self, user_id: int, elo: int, now: datetime) -> QueueEntry:
        min_elo, max_elo = self._bounds(elo, self.settings.initial_range_percent)
        entry = QueueEntry(
            user_id=user_id,
            base_elo=elo,
            joined_at=now,
            min_elo=min_elo,
            max_elo=max_elo,
        )
        self._entries[user_id] = entry
        return entry

    def remove(self, user_id: int) -> Optional[QueueEntry]:
        return self._entries.pop(user_id, None)

    def update_ranges(self, now: datetime) -> None:
        """Widen every range by the number of elapsed expansion intervals."""
        for entry in self._entries.values():
            elapsed = (now - entry.joined_at).total_seconds()
            intervals = math.floor(elapsed / self.settings.expand_interval_seconds)
            if intervals <= 0:
                continue

            percent = self.settings.initial_range_percent + intervals * self.settings.expand_percent
            entry.min_elo, entry.max_elo = self._bounds(entry.base_elo, percent)
            if entry.max_range_reached_at is None and (
                entry.min_elo <= MIN_ELO or entry.max_elo >= MAX_ELO
            ):
                entry.max_range_reached_at = now

    def users_to_kick(self, now: datetime) -> List[int]:
        limit = self.settings.kick_after_max_seconds
        return [
            entry.user_id
            for entry in self._entries.values()
            if entry.max_range_reached_at is not None
            and (now - entry.max_range_reached_at).total_seconds() >= limit
        ]

    def find_match(self) -> Optional[Tuple[int, int]]:
        entries = list(self._entries.values())
        for i, first in enumerate(entries):
            for second in entries[i + 1:]:
                if first.accepts(second.base_elo) or second.accepts(first.base_elo):
                    return first.user_id, second.user_id
        return None

    @staticmethod
    def _bounds(elo: int, percent: float) -> Tuple[float, float]:
        spread = elo * percent / 100
        return max(MIN_ELO, elo - spread), min(MAX_ELO, elo + spread)


# ============================================================================
# MatchmakingService
# ============================================================================


class MatchmakingService(BaseService):
    """
    Service for the matchmaking queue.

    Public Methods
    --------------
    - join_queue() / leave_queue() / get_queue_entry()
    - process_queue() -> One matchmaking tick
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        match_service: MatchService,
        queue: Optional[MatchmakingQueue] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._match_service = match_service
        self.queue = queue or MatchmakingQueue(MatchmakingSettings.from_config(config_manager))
        self._users = UserRepository(
            model_class=User,
            logger=get_logger(f"{__name__}.UserRepository"),
        )
        self._seasons = SeasonRepository(
            model_class=LeaderboardSeason,
            logger=get_logger(f"{__name__}.SeasonRepository"),
        )

    async def join_queue(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Raises:
            NoActiveSeasonError: No ACTIVE season
            NotFoundError: Unknown user
            ConflictError: Already queued or already in an open match
        """
        self.validate_positive_int(user_id, "user_id")
        now = now or datetime.now(timezone.utc)

        if user_id in self.queue:
            raise ConflictError(
                "User is already queued",
                details={"user_id": user_id},
                error_code="USER_ALREADY_IN_QUEUE",
            )

        async with DatabaseService.get_session() as session:
            if await self._seasons.find_active(session) is None:
                raise NoActiveSeasonError()
            user = await self._users.get(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            elo = user.eloscore

        if await self._match_service.is_user_busy(user_id):
            raise ConflictError(
                "User is already in an open match",
                details={"user_ids": [user_id]},
                error_code="USER_ALREADY_IN_MATCH",
            )

        entry = self.queue.add(user_id, elo, now)
        self.log_operation("join_queue", user_id=user_id, elo=elo, queue_size=self.queue.size)
        await self.emit_event("matchmaking.joined", {"user_id": user_id, "elo": elo})
        return entry.to_dict()

    async def leave_queue(self, user_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: User is not queued
        """
        if self.queue.remove(user_id) is None:
            raise NotFoundError("QueueEntry", user_id)

        self.log_operation("leave_queue", user_id=user_id, queue_size=self.queue.size)
        await self.emit_event("matchmaking.left", {"user_id": user_id})
        return {"user_id": user_id, "left": True}

    def get_queue_entry(self, user_id: int) -> Optional[Dict[str, Any]]:
        entry = self.queue.get(user_id)
        return entry.to_dict() if entry else None

    async def process_queue(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one matchmaking tick: widen ranges, kick expired searches and
        create matches for every compatible pair.

        A pair whose match cannot be created is dropped from the queue.
        """
        now = now or datetime.now(timezone.utc)
        kicked: List[int] = []
        matches: List[int] = []

        if self.queue.size == 0:
            return {"kicked": kicked, "matches": matches, "queue_size": 0}

        self.queue.update_ranges(now)

        for user_id in self.queue.users_to_kick(now):
            self.queue.remove(user_id)
            kicked.append(user_id)
            await self.emit_event("matchmaking.kicked", {"user_id": user_id})

        pair = self.queue.find_match()
        while pair is not None:
            first, second = pair
            self.queue.remove(first)
            self.queue.remove(second)
            try:
                match = await self._match_service.create_match([first, second])
            except ArenaDomainException as exc:
                self.log.warning(
                    "Matchmaking failed to create match",
                    extra={"user_ids": [first, second], "error_code": exc.error_code},
                )
            else:
                matches.append(match["id"])
                await self.emit_event(
                    "matchmaking.matched",
                    {"match_id": match["id"], "user_ids": [first, second]},
                )
            pair = self.queue.find_match()

        if kicked or matches:
            self.log_operation(
                "process_queue", kicked=kicked, matches=matches, queue_size=self.queue.size
            )
        return {"kicked": kicked, "matches": matches, "queue_size": self.queue.size}
