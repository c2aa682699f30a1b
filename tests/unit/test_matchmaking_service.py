"""
Unit tests for MatchmakingService.

Tests queue admission rules and the matchmaking tick against the real
MatchService.
"""

from datetime import timedelta

import pytest

from src.database.models.enums import SeasonStatus
from src.modules.shared.exceptions import ConflictError, NoActiveSeasonError, NotFoundError

from tests.conftest import NOW


@pytest.fixture
def players(make_user, make_season):
    async def _players(*elos):
        await make_season("Running", status=SeasonStatus.ACTIVE)
        return [await make_user(f"p{index}", eloscore=elo) for index, elo in enumerate(elos)]

    return _players


@pytest.mark.asyncio
class TestJoinQueue:
    """Test queue admission."""

    async def test_join(self, database, matchmaking_service, players, event_bus):
        (user_id,) = await players(1500)

        entry = await matchmaking_service.join_queue(user_id, now=NOW)

        assert entry["elo"] == 1500
        assert (entry["min_elo"], entry["max_elo"]) == (1350, 1650)
        assert matchmaking_service.get_queue_entry(user_id)["user_id"] == user_id
        assert event_bus.payloads("matchmaking.joined") == [{"user_id": user_id, "elo": 1500}]

    async def test_join_twice_conflicts(self, database, matchmaking_service, players):
        (user_id,) = await players(1500)
        await matchmaking_service.join_queue(user_id, now=NOW)

        with pytest.raises(ConflictError) as exc_info:
            await matchmaking_service.join_queue(user_id, now=NOW)

        assert exc_info.value.error_code == "USER_ALREADY_IN_QUEUE"

    async def test_requires_active_season(self, database, matchmaking_service, make_user):
        user_id = await make_user()

        with pytest.raises(NoActiveSeasonError):
            await matchmaking_service.join_queue(user_id, now=NOW)

    async def test_unknown_user(self, database, matchmaking_service, players):
        await players()

        with pytest.raises(NotFoundError):
            await matchmaking_service.join_queue(404, now=NOW)

    async def test_user_in_open_match_rejected(self, database, matchmaking_service, match_service, players):
        first, second = await players(1000, 1000)
        await match_service.create_match([first, second])

        with pytest.raises(ConflictError) as exc_info:
            await matchmaking_service.join_queue(first, now=NOW)

        assert exc_info.value.error_code == "USER_ALREADY_IN_MATCH"

    async def test_leave(self, database, matchmaking_service, players, event_bus):
        (user_id,) = await players(1000)
        await matchmaking_service.join_queue(user_id, now=NOW)

        assert await matchmaking_service.leave_queue(user_id) == {"user_id": user_id, "left": True}
        assert matchmaking_service.get_queue_entry(user_id) is None
        assert "matchmaking.left" in event_bus.names()

    async def test_leave_when_not_queued(self, database, matchmaking_service):
        with pytest.raises(NotFoundError) as exc_info:
            await matchmaking_service.leave_queue(5)

        assert exc_info.value.error_code == "QUEUEENTRY_NOT_FOUND"


@pytest.mark.asyncio
class TestProcessQueue:
    """Test the matchmaking tick."""

    async def test_empty_queue(self, database, matchmaking_service):
        assert await matchmaking_service.process_queue(now=NOW) == {
            "kicked": [],
            "matches": [],
            "queue_size": 0,
        }

    async def test_compatible_pair_gets_a_match(self, database, matchmaking_service, match_service, players, event_bus):
        first, second, far = await players(1000, 1080, 2500)
        for user_id in (first, second, far):
            await matchmaking_service.join_queue(user_id, now=NOW)

        result = await matchmaking_service.process_queue(now=NOW)

        assert len(result["matches"]) == 1
        assert result["queue_size"] == 1
        match = await match_service.get_match(result["matches"][0])
        assert sorted(p["user_id"] for p in match["participants"]) == sorted([first, second])
        assert event_bus.payloads("matchmaking.matched") == [
            {"match_id": match["id"], "user_ids": [first, second]}
        ]

    async def test_ranges_widen_over_time(self, database, matchmaking_service, players):
        first, second = await players(1000, 1250)
        await matchmaking_service.join_queue(first, now=NOW)
        await matchmaking_service.join_queue(second, now=NOW)

        assert (await matchmaking_service.process_queue(now=NOW))["matches"] == []

        # 1250 reaches 1000 once its range is 20% wide
        result = await matchmaking_service.process_queue(now=NOW + timedelta(seconds=5))

        assert len(result["matches"]) == 1

    async def test_lonely_user_is_kicked(self, database, matchmaking_service, players, event_bus):
        (user_id,) = await players(1000)
        await matchmaking_service.join_queue(user_id, now=NOW)

        await matchmaking_service.process_queue(now=NOW + timedelta(seconds=45))
        result = await matchmaking_service.process_queue(now=NOW + timedelta(seconds=95))

        assert result["kicked"] == [user_id]
        assert result["queue_size"] == 0
        assert event_bus.payloads("matchmaking.kicked") == [{"user_id": user_id}]

    async def test_failed_match_creation_drops_pair(self, database, matchmaking_service, match_service, players, season_service):
        first, second = await players(1000, 1000)
        await matchmaking_service.join_queue(first, now=NOW)
        await matchmaking_service.join_queue(second, now=NOW)
        active = await season_service.find_active_season()
        await season_service.delete_season(active["id"])

        result = await matchmaking_service.process_queue(now=NOW)

        assert result["matches"] == []
        assert result["queue_size"] == 0
