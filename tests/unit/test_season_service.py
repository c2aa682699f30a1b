"""
Unit tests for SeasonService.

Tests creation defaults, activation rules, edit locking, soft deletion and
listing with qs filters.
"""

from datetime import date

import pytest

from src.database.models.enums import SeasonStatus
from src.database.models.progression.season import LeaderboardSeason
from src.modules.shared.exceptions import (
    InvalidOperationError,
    NotFoundError,
    SeasonAlreadyActiveError,
    SeasonAlreadyOpenedError,
    SeasonNotActivatableError,
    ValidationError,
)
from src.modules.shared.pagination import PaginationQuery

from tests.conftest import NOW


@pytest.mark.asyncio
class TestCreateSeason:
    """Test season creation."""

    async def test_defaults(self, database, season_service, event_bus):
        """Dates default to today plus the configured duration."""
        result = await season_service.create_season({"name": "Spring"}, created_by_id=9, now=NOW)

        assert result["start_date"] == "2025-06-15"
        assert result["end_date"] == "2025-07-15"
        assert result["status"] == "PREVIEW"
        assert result["has_opened"] is False
        assert result["name_translations"] == {"vi": "Spring"}
        assert result["name_key"] == f"leaderboardSeason.name.{result['id']}"
        assert result["precreate_before_end_days"] == 2
        assert event_bus.payloads("season.created") == [
            {"season_id": result["id"], "status": "PREVIEW", "created_by_id": 9}
        ]

    async def test_localized_names(self, database, season_service):
        result = await season_service.create_season(
            {"name": {"en-US": "Spring", "vi": "Mùa Xuân", "ja": "  "}}, now=NOW
        )

        assert result["name_translations"] == {"en": "Spring", "vi": "Mùa Xuân"}
        assert result["name"] == "Mùa Xuân"

    async def test_create_active_opens_season(self, database, season_service):
        result = await season_service.create_season(
            {"name": "Now", "status": "active", "start_date": "2025-06-01", "end_date": "2025-06-30"},
            now=NOW,
        )

        assert result["status"] == "ACTIVE"
        assert result["has_opened"] is True

    async def test_second_active_rejected(self, database, season_service, make_season):
        active_id = await make_season("Current", status=SeasonStatus.ACTIVE)

        with pytest.raises(SeasonAlreadyActiveError) as exc_info:
            await season_service.create_season({"name": "Other", "status": "ACTIVE"}, now=NOW)

        assert exc_info.value.details["active_season_id"] == active_id

    async def test_active_outside_window_rejected(self, database, season_service):
        with pytest.raises(SeasonNotActivatableError):
            await season_service.create_season(
                {"name": "Future", "status": "ACTIVE", "start_date": "2025-07-01"}, now=NOW
            )

    @pytest.mark.parametrize(
        "data,field",
        [
            ({"name": ""}, "name"),
            ({"name": {"en": ""}}, "name"),
            ({"name": "X", "start_date": "2025-06-10", "end_date": "2025-06-01"}, "end_date"),
            ({"name": "X", "start_date": "not-a-date"}, "start_date"),
            ({"name": "X", "status": "FINISHED"}, "status"),
            ({"name": "X", "precreate_before_end_days": -1}, "precreate_before_end_days"),
        ],
    )
    async def test_invalid_input(self, database, season_service, data, field):
        with pytest.raises(ValidationError) as exc_info:
            await season_service.create_season(data, now=NOW)

        assert exc_info.value.field == field


@pytest.mark.asyncio
class TestUpdateSeason:
    """Test edits before and after opening."""

    async def test_update_preview_season(self, database, season_service, make_season, event_bus):
        season_id = await make_season("Old")

        result = await season_service.update_season(
            season_id,
            {"name": {"en": "New"}, "enable_precreate": True, "end_date": "2025-08-01"},
            updated_by_id=4,
            now=NOW,
        )

        assert result["name_translations"] == {"en": "New"}
        assert result["enable_precreate"] is True
        assert result["end_date"] == "2025-08-01"
        assert result["updated_by_id"] == 4
        assert "season.updated" in event_bus.names()

    async def test_opened_season_is_locked(self, database, season_service, make_season):
        season_id = await make_season("Running", status=SeasonStatus.ACTIVE)

        with pytest.raises(SeasonAlreadyOpenedError):
            await season_service.update_season(season_id, {"name": "Renamed"}, now=NOW)

    async def test_unknown_field_rejected(self, database, season_service, make_season):
        season_id = await make_season()

        with pytest.raises(ValidationError):
            await season_service.update_season(season_id, {"has_opened": False}, now=NOW)

    async def test_missing_season(self, database, season_service):
        with pytest.raises(NotFoundError):
            await season_service.update_season(404, {"name": "X"}, now=NOW)

    async def test_status_active_applies_activation_rules(self, database, season_service, make_season):
        season_id = await make_season(
            "Window", start_date=date(2025, 6, 1), end_date=date(2025, 6, 30)
        )

        result = await season_service.update_season(season_id, {"status": "ACTIVE"}, now=NOW)

        assert result["status"] == "ACTIVE"
        assert result["has_opened"] is True


@pytest.mark.asyncio
class TestActivateSeason:
    """Test explicit activation."""

    async def test_activate_in_window(self, database, season_service, make_season, event_bus, load):
        season_id = await make_season(
            "Window", start_date=date(2025, 6, 1), end_date=date(2025, 6, 30)
        )

        result = await season_service.activate_season(season_id, now=NOW)

        assert result["status"] == "ACTIVE"
        season = await load(LeaderboardSeason, season_id)
        assert season.has_opened is True
        assert event_bus.payloads("season.activated") == [{"season_id": season_id}]

    async def test_activate_active_is_noop(self, database, season_service, make_season, event_bus):
        season_id = await make_season("Running", status=SeasonStatus.ACTIVE)

        await season_service.activate_season(season_id, now=NOW)

        assert "season.activated" not in event_bus.names()

    async def test_activate_expired_rejected(self, database, season_service, make_season):
        season_id = await make_season("Old", status=SeasonStatus.EXPIRED)

        with pytest.raises(InvalidOperationError):
            await season_service.activate_season(season_id, now=NOW)

    async def test_open_ended_window(self, database, season_service, make_season):
        """Missing dates leave the window open on that side."""
        season_id = await make_season("Open", start_date=None, end_date=None)

        result = await season_service.activate_season(season_id, now=NOW)

        assert result["status"] == "ACTIVE"

    async def test_concurrent_activation_hits_unique_index(
        self, database, season_service, make_season, mocker
    ):
        # Both activations passed the read check before either committed
        mocker.patch.object(season_service, "ensure_activatable", mocker.AsyncMock())
        await make_season("Running", status=SeasonStatus.ACTIVE)
        waiting = await make_season("Waiting")

        with pytest.raises(SeasonAlreadyActiveError) as exc_info:
            await season_service.activate_season(waiting, now=NOW)

        assert exc_info.value.http_status == 409

    async def test_deleted_active_season_does_not_block(self, database, season_service, make_season):
        await make_season("Removed", status=SeasonStatus.ACTIVE, deleted_at=NOW)
        season_id = await make_season("Next")

        result = await season_service.activate_season(season_id, now=NOW)

        assert result["status"] == "ACTIVE"


@pytest.mark.asyncio
class TestReadAndDelete:
    """Test reads, listing and soft deletion."""

    async def test_deleted_season_is_hidden(self, database, season_service, make_season, load):
        season_id = await make_season()

        await season_service.delete_season(season_id, deleted_by_id=1)

        with pytest.raises(NotFoundError):
            await season_service.get_season(season_id)
        season = await load(LeaderboardSeason, season_id)
        assert season.deleted_at is not None
        assert season.deleted_by_id == 1

    async def test_get_season_localized(self, database, season_service):
        created = await season_service.create_season(
            {"name": {"en": "Spring", "vi": "Mùa Xuân"}}, now=NOW
        )

        assert (await season_service.get_season(created["id"], lang="en"))["name"] == "Spring"

    async def test_find_active_season(self, database, season_service, make_season):
        assert await season_service.find_active_season() is None

        season_id = await make_season("Running", status=SeasonStatus.ACTIVE)

        assert (await season_service.find_active_season())["id"] == season_id

    async def test_list_with_filters(self, database, season_service, make_season):
        await make_season("Alpha", start_date=date(2025, 1, 1))
        active_id = await make_season("Beta", status=SeasonStatus.ACTIVE, start_date=date(2025, 6, 1))
        await make_season("Gamma", status=SeasonStatus.EXPIRED, start_date=date(2024, 1, 1))

        page = await season_service.list_seasons(PaginationQuery(qs="status=active"))

        assert [row["id"] for row in page["results"]] == [active_id]
        assert page["pagination"]["totalItem"] == 1

    async def test_list_sorted_and_paginated(self, database, season_service, make_season):
        first = await make_season("Alpha", start_date=date(2025, 1, 1))
        second = await make_season("Beta", start_date=date(2025, 2, 1))
        third = await make_season("Gamma", start_date=date(2025, 3, 1))

        page = await season_service.list_seasons(
            PaginationQuery(current_page=1, page_size=2, qs="sort=start_date")
        )

        assert [row["id"] for row in page["results"]] == [first, second]
        assert page["pagination"]["totalPage"] == 2
        assert third not in [row["id"] for row in page["results"]]

    async def test_list_name_filter(self, database, season_service, make_season):
        await make_season("Spring Cup")
        await make_season("Autumn Cup")

        page = await season_service.list_seasons(PaginationQuery(qs="name=spring"))

        assert [row["name"] for row in page["results"]] == ["Spring Cup"]
