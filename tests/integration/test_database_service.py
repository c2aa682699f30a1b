"""
Integration Tests for DatabaseService and RedisService
======================================================

Purpose
-------
Exercise the services against real PostgreSQL and Redis started with
testcontainers. Verifies schema creation, transaction handling, row locking
and the Redis cache/lock primitives.

Testing Strategy
----------------
- Containers are started once per module
- The ``database`` fixture is overridden so every service fixture from
  conftest runs against PostgreSQL
- Schema is dropped and recreated per test
- Gated behind ``ARENA_RUN_INTEGRATION=1``
"""

from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import text

from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisLockTimeoutError, RedisService
from src.database.models.core.user import User
from src.database.models.enums import SeasonStatus
from src.modules.ranking.service import RankAggregatorService
from src.modules.shared.exceptions import ConflictError

from tests.conftest import NOW

pytestmark = pytest.mark.integration


# ============================================================================
# CONTAINERS
# ============================================================================


@pytest.fixture(scope="module")
def postgres_url():
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16-alpine", driver="asyncpg") as container:
        yield container.get_connection_url()


@pytest.fixture(scope="module")
def redis_url():
    from testcontainers.redis import RedisContainer

    with RedisContainer("redis:7-alpine") as container:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(6379)
        yield f"redis://{host}:{port}/0"


@pytest_asyncio.fixture
async def database(postgres_url):
    await DatabaseService.initialize(url=postgres_url)
    await DatabaseService.drop_all()
    await DatabaseService.create_all()
    yield DatabaseService
    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def redis(redis_url):
    await RedisService.initialize(url=redis_url)
    yield RedisService
    await RedisService.shutdown()


# ============================================================================
# DATABASE TESTS
# ============================================================================


@pytest.mark.asyncio
class TestDatabaseService:
    """Test engine, schema and transactions on PostgreSQL."""

    async def test_health_check(self, database):
        assert await DatabaseService.health_check() is True

    async def test_schema_created(self, database):
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                text(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = 'public'"
                )
            )
            tables = {row.table_name for row in result}

        assert {
            "users",
            "leaderboard_seasons",
            "season_rank_rewards",
            "user_season_histories",
            "matches",
            "match_participants",
            "match_rounds",
            "match_round_participants",
        } <= tables

    async def test_transaction_rolls_back_on_error(self, database):
        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                session.add(User(name="ghost", eloscore=10))
                await session.flush()
                raise RuntimeError("boom")

        async with DatabaseService.get_session() as session:
            count = (await session.execute(text("SELECT count(*) FROM users"))).scalar_one()

        assert count == 0


# ============================================================================
# SERVICE FLOWS ON POSTGRESQL
# ============================================================================


@pytest.mark.asyncio
class TestServicesOnPostgres:
    async def test_duplicate_join_conflicts(self, database, history_service, make_user, make_season):
        user_id = await make_user("ana")
        await make_season("Running", status=SeasonStatus.ACTIVE)
        await history_service.join_season(user_id)

        with pytest.raises(ConflictError):
            await history_service.join_season(user_id)

    async def test_match_settlement(self, database, match_service, make_user, make_season, load):
        await make_season("Running", status=SeasonStatus.ACTIVE)
        winner = await make_user("winner", eloscore=1000)
        loser = await make_user("loser", eloscore=1000)

        match = await match_service.create_match([winner, loser])
        for user_id in (winner, loser):
            await match_service.respond_to_match(match["id"], user_id, True)
        for number in (1, 2, 3):
            await match_service.start_round(match["id"], number)
            result = await match_service.complete_round(
                match["id"],
                number,
                {
                    winner: {"points": 20, "answer_count": 2},
                    loser: {"points": 10, "answer_count": 1},
                },
            )

        assert result["winner_id"] == winner
        assert (await load(User, winner)).eloscore == 1016
        assert (await load(User, loser)).eloscore == 984

    async def test_rotation_expires_season(self, database, rotation_service, make_user, make_season, make_history, load):
        season_id = await make_season(
            "May",
            status=SeasonStatus.ACTIVE,
            start_date=date(2025, 5, 1),
            end_date=date(2025, 5, 31),
        )
        user_id = await make_user("veteran", eloscore=1800)
        await make_history(user_id, season_id)

        result = await rotation_service.run_unlocked(now=NOW)

        assert result["expired"] == [season_id]
        assert (await load(User, user_id)).eloscore == 800


# ============================================================================
# REDIS TESTS
# ============================================================================


@pytest.mark.asyncio
class TestRedisService:
    """Test the cache and lock primitives against real Redis."""

    async def test_json_cache(self, redis):
        key = RedisService.key("test", "json")

        assert await RedisService.set_json(key, {"a": [1, 2]}, ttl_seconds=30) is True
        assert await RedisService.get_json(key) == {"a": [1, 2]}
        assert await RedisService.delete(key) == 1
        assert await RedisService.get_json(key) is None

    async def test_lock_contention(self, redis):
        key = RedisService.key("lock", "test")

        async with RedisService.acquire_lock(key, timeout=10, wait_timeout=0) as held:
            assert held is True
            with pytest.raises(RedisLockTimeoutError):
                async with RedisService.acquire_lock(key, timeout=10, wait_timeout=0):
                    pass

        async with RedisService.acquire_lock(key, timeout=10, wait_timeout=0) as held:
            assert held is True

    async def test_expired_season_distribution_cached(self, database, redis, event_bus, make_season):
        service = RankAggregatorService(ConfigManager, event_bus, get_logger("tests.ranking"))
        service.register_listeners()
        season_id = await make_season("Old", status=SeasonStatus.EXPIRED)

        first = await service.get_rank_distribution(season_id)

        assert await RedisService.get_json(RedisService.key("rank-distribution", season_id)) == first

        await event_bus.publish("season.updated", {"season_id": season_id})

        assert await RedisService.get_json(RedisService.key("rank-distribution", season_id)) is None
