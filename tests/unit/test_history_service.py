"""
Unit tests for UserSeasonHistoryService.

Tests joining the active season, admin corrections and history listing.
"""

import pytest

from src.database.models.enums import SeasonStatus
from src.modules.shared.exceptions import (
    ConflictError,
    NotFoundError,
    SeasonNotStartedError,
    ValidationError,
)
from src.modules.shared.pagination import PaginationQuery


@pytest.mark.asyncio
class TestJoinSeason:
    """Test joining the ACTIVE season."""

    async def test_join_creates_row(self, database, history_service, make_user, make_season, event_bus):
        user_id = await make_user("ana")
        season_id = await make_season("Running", status=SeasonStatus.ACTIVE)

        result = await history_service.join_season(user_id)

        assert result["user_id"] == user_id
        assert result["leaderboard_season_id"] == season_id
        assert result["status"] == "ACTIVE"
        assert result["rewards_claimed"] == "PENDING"
        assert result["final_elo"] is None
        assert event_bus.payloads("season.joined") == [{"user_id": user_id, "season_id": season_id}]

    async def test_join_twice_conflicts(self, database, history_service, make_user, make_season):
        user_id = await make_user()
        await make_season("Running", status=SeasonStatus.ACTIVE)
        await history_service.join_season(user_id)

        with pytest.raises(ConflictError) as exc_info:
            await history_service.join_season(user_id)

        assert exc_info.value.error_code == "SEASON_ALREADY_JOINED"

    async def test_join_without_active_season(self, database, history_service, make_user, make_season):
        user_id = await make_user()
        await make_season("Later")

        with pytest.raises(SeasonNotStartedError):
            await history_service.join_season(user_id)

    async def test_unknown_user(self, database, history_service, make_season):
        await make_season("Running", status=SeasonStatus.ACTIVE)

        with pytest.raises(NotFoundError):
            await history_service.join_season(999)

    async def test_current_history(self, database, history_service, make_user, make_season):
        user_id = await make_user()
        await make_season("Running", status=SeasonStatus.ACTIVE)

        with pytest.raises(NotFoundError):
            await history_service.get_current_history(user_id)

        joined = await history_service.join_season(user_id)

        assert (await history_service.get_current_history(user_id))["id"] == joined["id"]


@pytest.mark.asyncio
class TestUpdateHistory:
    """Test admin corrections of final_elo."""

    async def test_rank_follows_elo(self, database, history_service, make_user, make_season, make_history):
        user_id = await make_user()
        season_id = await make_season("Old", status=SeasonStatus.EXPIRED)
        history_id = await make_history(user_id, season_id)

        result = await history_service.update_history(history_id, 1500, updated_by_id=2)

        assert result["final_elo"] == 1500
        assert result["final_rank"] == "N4"

    @pytest.mark.parametrize("value", [-1, 3001])
    async def test_out_of_range_rejected(self, database, history_service, value):
        with pytest.raises(ValidationError):
            await history_service.update_history(1, value)

    async def test_missing_row(self, database, history_service):
        with pytest.raises(NotFoundError):
            await history_service.update_history(77, 100)


@pytest.mark.asyncio
class TestListHistories:
    async def test_filter_and_sort(self, database, history_service, make_user, make_season, make_history):
        first = await make_user("a")
        second = await make_user("b")
        season_id = await make_season("Old", status=SeasonStatus.EXPIRED)
        other_season = await make_season("Other", status=SeasonStatus.EXPIRED)
        await make_history(first, season_id, final_elo=900)
        await make_history(second, season_id, final_elo=2100)
        await make_history(first, other_season, final_elo=50)

        page = await history_service.list_histories(
            PaginationQuery(qs=f"season_id={season_id}&sort=-final_elo")
        )

        assert [row["user_id"] for row in page["results"]] == [second, first]
        assert page["pagination"]["totalItem"] == 2
