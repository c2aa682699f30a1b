"""
Pytest Configuration and Fixtures for Arena Tests
=================================================

Purpose
-------
Centralized test fixtures for the Arena test suite: database, services,
data factories and infrastructure fakes.

Responsibilities
----------------
- In-memory SQLite database through the real DatabaseService
- Fresh ConfigManager state and EventBus per test
- Service construction with recorded events
- Factories for users, seasons and histories
- Testcontainers setup for PostgreSQL and Redis (integration only)

Architecture Notes
------------------
- Unit tests run against ``sqlite+aiosqlite:///:memory:`` (StaticPool)
- Integration tests use testcontainers and are gated behind
  ``ARENA_RUN_INTEGRATION=1``
- Redis is replaced by in-memory fakes exposing the same classmethod API
"""

from __future__ import annotations

import os

os.environ.setdefault("ARENA_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import random
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus, EventPayload
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisLockTimeoutError
from src.database.models.core.user import User
from src.database.models.enums import SeasonStatus
from src.database.models.progression.season import LeaderboardSeason
from src.database.models.progression.season_history import UserSeasonHistory
from src.modules.match.matchmaking import MatchmakingQueue, MatchmakingService, MatchmakingSettings
from src.modules.match.service import MatchService
from src.modules.ranking.formulas import LogisticEloCalculator
from src.modules.ranking.service import RankAggregatorService
from src.modules.season.history_service import UserSeasonHistoryService
from src.modules.season.reward_service import SeasonRankRewardService
from src.modules.season.rotation import SeasonRotationService
from src.modules.season.service import SeasonService

logger = get_logger(__name__)

TODAY = date(2025, 6, 15)
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless ARENA_RUN_INTEGRATION=1."""
    if os.getenv("ARENA_RUN_INTEGRATION") == "1":
        return
    skip = pytest.mark.skip(reason="set ARENA_RUN_INTEGRATION=1 to run integration tests")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


# ============================================================================
# INFRASTRUCTURE FAKES
# ============================================================================


class RecordingEventBus(EventBus):
    """EventBus that also records every published event."""

    def __init__(self) -> None:
        super().__init__(listener_timeout_seconds=1.0)
        self.published: List[Tuple[str, EventPayload]] = []

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        self.published.append((event_name, dict(data)))
        return await super().publish(event_name, data)

    def names(self) -> List[str]:
        return [name for name, _ in self.published]

    def payloads(self, event_name: str) -> List[EventPayload]:
        return [data for name, data in self.published if name == event_name]


class FakeCache:
    """In-memory stand-in for the RedisService JSON/key API."""

    def __init__(self) -> None:
        self.store: Dict[str, Any] = {}
        self.deleted: List[str] = []

    @staticmethod
    def key(*parts: Any) -> str:
        return ":".join(["arena", *(str(part) for part in parts)])

    async def get_json(self, key: str) -> Optional[Any]:
        return self.store.get(key)

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self.deleted.append(key)
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed


class FakeLockProvider:
    """Lock provider mirroring RedisService.acquire_lock."""

    def __init__(self, held: bool = False) -> None:
        self.held = held
        self.acquired: List[str] = []

    @staticmethod
    def key(*parts: Any) -> str:
        return ":".join(["arena", *(str(part) for part in parts)])

    @asynccontextmanager
    async def acquire_lock(self, key: str, **kwargs: Any):
        if self.held:
            raise RedisLockTimeoutError(f"Failed to acquire Redis lock '{key}'")
        self.acquired.append(key)
        yield True


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def config_manager():
    """Fresh ConfigManager state per test (YAML defaults, no overrides)."""
    ConfigManager.reset()
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def lock_provider() -> FakeLockProvider:
    return FakeLockProvider()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialize DatabaseService on an in-memory SQLite database.

    Scope: function (clean schema per test)
    """
    await DatabaseService.initialize(url="sqlite+aiosqlite:///:memory:")
    await DatabaseService.create_all()
    yield DatabaseService
    await DatabaseService.shutdown()


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def season_service(event_bus) -> SeasonService:
    return SeasonService(ConfigManager, event_bus, get_logger("tests.season"))


@pytest.fixture
def history_service(event_bus) -> UserSeasonHistoryService:
    return UserSeasonHistoryService(ConfigManager, event_bus, get_logger("tests.history"))


@pytest.fixture
def reward_service(event_bus) -> SeasonRankRewardService:
    return SeasonRankRewardService(
        ConfigManager, event_bus, get_logger("tests.reward"), rng=random.Random(7)
    )


@pytest.fixture
def match_service(event_bus, history_service) -> MatchService:
    return MatchService(
        ConfigManager,
        event_bus,
        get_logger("tests.match"),
        history_service=history_service,
        elo_calculator=LogisticEloCalculator(k_factor=32),
        rng=random.Random(42),
    )


@pytest.fixture
def matchmaking_service(event_bus, match_service) -> MatchmakingService:
    return MatchmakingService(
        ConfigManager,
        event_bus,
        get_logger("tests.matchmaking"),
        match_service=match_service,
        queue=MatchmakingQueue(MatchmakingSettings()),
    )


@pytest.fixture
def rank_service(event_bus, fake_cache) -> RankAggregatorService:
    return RankAggregatorService(
        ConfigManager, event_bus, get_logger("tests.ranking"), cache=fake_cache
    )


@pytest.fixture
def rotation_service(event_bus, season_service, reward_service, lock_provider) -> SeasonRotationService:
    return SeasonRotationService(
        ConfigManager,
        event_bus,
        get_logger("tests.rotation"),
        season_service=season_service,
        reward_service=reward_service,
        lock_provider=lock_provider,
    )


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def make_user(database):
    """Create a user and return its id."""

    async def _make_user(name: str = "user", eloscore: int = 0, deleted: bool = False) -> int:
        async with DatabaseService.get_transaction() as session:
            user = User(name=name, eloscore=eloscore)
            if deleted:
                user.soft_delete()
            session.add(user)
            await session.flush()
            return user.id

    return _make_user


@pytest.fixture
def make_season(database):
    """Create a season row directly (bypassing activation rules) and return its id."""

    async def _make_season(
        name: str = "Season",
        status: SeasonStatus = SeasonStatus.PREVIEW,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        **fields: Any,
    ) -> int:
        async with DatabaseService.get_transaction() as session:
            season = LeaderboardSeason(
                name_translations={"en": name},
                start_date=start_date,
                end_date=end_date,
                status=status,
                has_opened=fields.pop("has_opened", status is not SeasonStatus.PREVIEW),
                **fields,
            )
            session.add(season)
            await session.flush()
            season.name_key = f"leaderboardSeason.name.{season.id}"
            return season.id

    return _make_season


@pytest.fixture
def make_history(database):
    """Create a UserSeasonHistory row and return its id."""

    async def _make_history(user_id: int, season_id: int, **fields: Any) -> int:
        async with DatabaseService.get_transaction() as session:
            history = UserSeasonHistory(user_id=user_id, leaderboard_season_id=season_id, **fields)
            session.add(history)
            await session.flush()
            return history.id

    return _make_history


@pytest.fixture
def load(database):
    """Fetch a fresh copy of a row by model and id."""

    async def _load(model: type, id_value: int) -> Any:
        async with DatabaseService.get_session() as session:
            return await session.get(model, id_value)

    return _load
