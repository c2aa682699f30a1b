"""
Unit tests for MatchService.

Tests the match lifecycle (creation, acceptance, rounds, completion,
cancellation), ELO settlement and match history reads.
"""

import pytest
from sqlalchemy import func, select

from src.database.models.competition.match import Match
from src.database.models.core.user import User
from src.database.models.enums import SeasonStatus
from src.database.models.progression.season_history import UserSeasonHistory
from src.modules.shared.exceptions import (
    ConflictError,
    InvalidOperationError,
    NoActiveSeasonError,
    NotFoundError,
    ValidationError,
)
from src.modules.shared.pagination import PaginationQuery


def score(points, answer_count=1):
    return {"points": points, "answer_count": answer_count}


@pytest.fixture
def arena(make_user, make_season):
    """Active season plus two users at 1000 ELO."""

    async def _arena(first_elo=1000, second_elo=1000):
        season_id = await make_season("Running", status=SeasonStatus.ACTIVE)
        first = await make_user("alice", eloscore=first_elo)
        second = await make_user("bob", eloscore=second_elo)
        return season_id, first, second

    return _arena


async def start_match(match_service, first, second):
    match = await match_service.create_match([first, second])
    await match_service.respond_to_match(match["id"], first, True)
    await match_service.respond_to_match(match["id"], second, True)
    return match["id"]


async def play(match_service, match_id, rounds):
    """Play every round with the given ``[(first_scores, second_scores)]`` per round."""
    result = None
    for number, scores in enumerate(rounds, start=1):
        await match_service.start_round(match_id, number)
        result = await match_service.complete_round(match_id, number, scores)
    return result


# ============================================================================
# CREATION TESTS
# ============================================================================


@pytest.mark.asyncio
class TestCreateMatch:
    """Test match creation."""

    async def test_create_pending_match(self, database, match_service, arena, event_bus, load):
        season_id, first, second = await arena()

        result = await match_service.create_match([first, second], created_by_id=first)

        assert result["status"] == "PENDING"
        assert result["leaderboard_season_id"] == season_id
        assert result["rounds"] == []
        assert [p["user_id"] for p in result["participants"]] == [first, second]
        assert all(p["has_accepted"] is None for p in result["participants"])
        assert event_bus.payloads("match.created") == [
            {"match_id": result["id"], "season_id": season_id, "user_ids": [first, second]}
        ]

    async def test_participants_join_season(self, database, match_service, arena, history_service):
        _, first, second = await arena()

        await match_service.create_match([first, second])

        assert (await history_service.get_current_history(first))["user_id"] == first
        assert (await history_service.get_current_history(second))["user_id"] == second

    @pytest.mark.parametrize("user_ids", [[1], [1, 1], [1, 2, 3], [0, 2], [True, 2]])
    async def test_invalid_user_ids(self, database, match_service, user_ids):
        with pytest.raises(ValidationError) as exc_info:
            await match_service.create_match(user_ids)

        assert exc_info.value.error_code == "VALIDATION_USER_IDS"

    async def test_requires_active_season(self, database, match_service, make_user):
        first = await make_user("a")
        second = await make_user("b")

        with pytest.raises(NoActiveSeasonError):
            await match_service.create_match([first, second])

    async def test_unknown_user(self, database, match_service, arena):
        _, first, _ = await arena()

        with pytest.raises(NotFoundError) as exc_info:
            await match_service.create_match([first, 999])

        assert exc_info.value.error_code == "USER_NOT_FOUND"

    async def test_busy_user_conflicts(self, database, match_service, arena, make_user):
        _, first, second = await arena()
        third = await make_user("carol")
        await match_service.create_match([first, second])

        with pytest.raises(ConflictError) as exc_info:
            await match_service.create_match([second, third])

        assert exc_info.value.error_code == "USER_ALREADY_IN_MATCH"
        assert await match_service.is_user_busy(second) is True
        assert await match_service.is_user_busy(third) is False


# ============================================================================
# ACCEPTANCE TESTS
# ============================================================================


@pytest.mark.asyncio
class TestRespondToMatch:
    """Test accept/reject decisions."""

    async def test_all_accept_starts_match(self, database, match_service, arena, event_bus):
        season_id, first, second = await arena()
        match = await match_service.create_match([first, second])

        pending = await match_service.respond_to_match(match["id"], first, True)
        assert pending["status"] == "PENDING"

        result = await match_service.respond_to_match(match["id"], second, True)

        assert result["status"] == "IN_PROGRESS"
        assert [r["round_number"] for r in result["rounds"]] == [1, 2, 3]
        assert all(r["status"] == "PENDING" for r in result["rounds"])
        assert event_bus.payloads("match.accepted") == [
            {"match_id": match["id"], "season_id": season_id}
        ]

    async def test_pick_order_alternates(self, database, match_service, arena):
        """Each round reverses the pick order and numbering continues."""
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        result = await match_service.get_match(match_id)

        orders = [
            [(p["user_id"], p["order_selected"]) for p in sorted(r["participants"], key=lambda p: p["order_selected"])]
            for r in result["rounds"]
        ]
        assert [[o for _, o in order] for order in orders] == [[1, 2], [3, 4], [5, 6]]
        first_round_users = [u for u, _ in orders[0]]
        assert [u for u, _ in orders[1]] == list(reversed(first_round_users))
        assert [u for u, _ in orders[2]] == first_round_users

    async def test_rejection_cancels(self, database, match_service, arena, event_bus):
        season_id, first, second = await arena()
        match = await match_service.create_match([first, second])

        await match_service.respond_to_match(match["id"], first, True)
        result = await match_service.respond_to_match(match["id"], second, False)

        assert result["status"] == "CANCELLED"
        assert result["rounds"] == []
        assert event_bus.payloads("match.cancelled") == [
            {"match_id": match["id"], "reason": "rejected", "season_id": season_id}
        ]
        assert await match_service.is_user_busy(first) is False

    async def test_second_response_rejected(self, database, match_service, arena):
        _, first, second = await arena()
        match = await match_service.create_match([first, second])
        await match_service.respond_to_match(match["id"], first, True)

        with pytest.raises(InvalidOperationError):
            await match_service.respond_to_match(match["id"], first, False)

    async def test_non_participant(self, database, match_service, arena, make_user):
        _, first, second = await arena()
        outsider = await make_user("eve")
        match = await match_service.create_match([first, second])

        with pytest.raises(NotFoundError):
            await match_service.respond_to_match(match["id"], outsider, True)

    async def test_unknown_match(self, database, match_service):
        with pytest.raises(NotFoundError) as exc_info:
            await match_service.respond_to_match(42, 1, True)

        assert exc_info.value.error_code == "MATCH_NOT_FOUND"


# ============================================================================
# ROUND TESTS
# ============================================================================


@pytest.mark.asyncio
class TestRounds:
    """Test round sequencing and scoring."""

    async def test_rounds_must_run_in_order(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        with pytest.raises(InvalidOperationError):
            await match_service.start_round(match_id, 2)

    async def test_round_cannot_start_twice(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)
        await match_service.start_round(match_id, 1)

        with pytest.raises(InvalidOperationError):
            await match_service.start_round(match_id, 1)

    async def test_pending_match_has_no_rounds_to_start(self, database, match_service, arena):
        _, first, second = await arena()
        match = await match_service.create_match([first, second])

        with pytest.raises(InvalidOperationError):
            await match_service.start_round(match["id"], 1)

    async def test_unknown_round(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        with pytest.raises(NotFoundError):
            await match_service.start_round(match_id, 4)

    async def test_complete_round_sets_winner(self, database, match_service, arena, event_bus):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)
        await match_service.start_round(match_id, 1)

        result = await match_service.complete_round(
            match_id, 1, {first: score(30, 3), second: score(20, 2)}
        )

        round_one = result["rounds"][0]
        assert round_one["status"] == "COMPLETED"
        assert round_one["round_winner_id"] == first
        assert result["status"] == "IN_PROGRESS"
        assert "rank_changes" not in result
        assert event_bus.payloads("match.round.completed")[0]["round_winner_id"] == first

    async def test_tied_round_has_no_winner(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)
        await match_service.start_round(match_id, 1)

        result = await match_service.complete_round(match_id, 1, {first: score(10), second: score(10)})

        assert result["rounds"][0]["round_winner_id"] is None

    async def test_round_must_be_started(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        with pytest.raises(InvalidOperationError):
            await match_service.complete_round(match_id, 1, {first: score(1), second: score(0)})

    @pytest.mark.parametrize(
        "build",
        [
            lambda a, b: {a: score(1)},
            lambda a, b: {a: score(1), b: score(1), 999: score(1)},
            lambda a, b: {a: score(-1), b: score(1)},
            lambda a, b: {a: {"points": 1, "answer_count": True}, b: score(1)},
            lambda a, b: {a: {"points": "7"}, b: score(1)},
        ],
    )
    async def test_invalid_scores(self, database, match_service, arena, build):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)
        await match_service.start_round(match_id, 1)

        with pytest.raises(ValidationError):
            await match_service.complete_round(match_id, 1, build(first, second))


# ============================================================================
# SETTLEMENT TESTS
# ============================================================================


@pytest.mark.asyncio
class TestSettlement:
    """Test winner resolution and ELO settlement."""

    async def test_winner_gains_and_loser_loses(self, database, match_service, arena, event_bus, load):
        season_id, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        result = await play(
            match_service,
            match_id,
            [
                {first: score(30), second: score(10)},
                {first: score(10), second: score(30)},
                {first: score(25), second: score(5)},
            ],
        )

        assert result["status"] == "COMPLETED"
        assert result["winner_id"] == first
        assert result["elo_gained"] == 16
        assert result["elo_lost"] == 16
        assert result["completed_at"] is not None
        assert (await load(User, first)).eloscore == 1016
        assert (await load(User, second)).eloscore == 984

        changes = {change["user_id"]: change for change in result["rank_changes"]}
        assert changes[first]["change"] == "RANK_UP"
        assert changes[first]["new_rank"] == "N4"
        assert changes[second]["change"] == "RANK_MAINTAIN"

        completed = event_bus.payloads("match.completed")
        assert len(completed) == 1
        assert completed[0]["winner_id"] == first
        assert completed[0]["season_id"] == season_id
        assert event_bus.names()[-2:] == ["match.round.completed", "match.completed"]

    async def test_points_break_equal_round_wins(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        result = await play(
            match_service,
            match_id,
            [
                {first: score(30), second: score(10)},
                {first: score(10), second: score(50)},
                {first: score(20), second: score(20)},
            ],
        )

        assert result["winner_id"] == second

    async def test_gain_is_clamped_at_max_elo(self, database, match_service, arena, load):
        _, first, second = await arena(first_elo=2995, second_elo=2995)
        match_id = await start_match(match_service, first, second)

        result = await play(match_service, match_id, [{first: score(5), second: score(1)}] * 3)

        assert (await load(User, first)).eloscore == 3000
        assert result["elo_gained"] == 16

    async def test_loss_is_clamped_at_zero(self, database, match_service, arena, load):
        _, first, second = await arena(first_elo=10, second_elo=10)
        match_id = await start_match(match_service, first, second)

        result = await play(match_service, match_id, [{first: score(5), second: score(1)}] * 3)

        assert (await load(User, second)).eloscore == 0
        assert result["elo_lost"] == 16

    async def test_tie_without_answers_penalizes_both(self, database, match_service, arena, load):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        result = await play(
            match_service, match_id, [{first: score(0, 0), second: score(0, 0)}] * 3
        )

        assert result["winner_id"] is None
        assert result["elo_gained"] == 0
        assert result["elo_lost"] == 16
        assert (await load(User, first)).eloscore == 984
        assert (await load(User, second)).eloscore == 984

    async def test_tie_penalty_uses_exact_average(self, database, match_service, arena, load):
        # average 1011.5; rounding it to 1012 would cost the first player 17
        _, first, second = await arena(first_elo=1001, second_elo=1022)
        match_id = await start_match(match_service, first, second)

        result = await play(
            match_service, match_id, [{first: score(0, 0), second: score(0, 0)}] * 3
        )

        assert (await load(User, first)).eloscore == 985
        assert (await load(User, second)).eloscore == 1006
        assert result["elo_lost"] == 16

    async def test_tie_with_answers_keeps_elo(self, database, match_service, arena, load):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        result = await play(
            match_service, match_id, [{first: score(10, 2), second: score(10, 1)}] * 3
        )

        assert result["winner_id"] is None
        assert (result["elo_gained"], result["elo_lost"]) == (0, 0)
        assert (await load(User, first)).eloscore == 1000

    async def test_complete_match_is_idempotent(self, database, match_service, arena, event_bus):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)
        await play(match_service, match_id, [{first: score(5), second: score(1)}] * 3)

        result = await match_service.complete_match(match_id)

        assert result["status"] == "COMPLETED"
        assert len(event_bus.payloads("match.completed")) == 1

    async def test_complete_match_requires_finished_rounds(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        with pytest.raises(InvalidOperationError):
            await match_service.complete_match(match_id)

    async def test_complete_pending_match_rejected(self, database, match_service, arena):
        _, first, second = await arena()
        match = await match_service.create_match([first, second])

        with pytest.raises(InvalidOperationError):
            await match_service.complete_match(match["id"])


# ============================================================================
# CANCELLATION TESTS
# ============================================================================


@pytest.mark.asyncio
class TestCancelMatch:
    async def test_cancel_in_progress(self, database, match_service, arena, event_bus, load):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)

        result = await match_service.cancel_match(match_id, cancelled_by_id=7)

        assert result["status"] == "CANCELLED"
        assert (await load(Match, match_id)).updated_by_id == 7
        assert event_bus.payloads("match.cancelled")[-1]["reason"] == "cancelled"

    async def test_cancel_twice_emits_once(self, database, match_service, arena, event_bus):
        _, first, second = await arena()
        match = await match_service.create_match([first, second])

        await match_service.cancel_match(match["id"])
        await match_service.cancel_match(match["id"])

        assert len(event_bus.payloads("match.cancelled")) == 1

    async def test_completed_match_cannot_be_cancelled(self, database, match_service, arena):
        _, first, second = await arena()
        match_id = await start_match(match_service, first, second)
        await play(match_service, match_id, [{first: score(5), second: score(1)}] * 3)

        with pytest.raises(InvalidOperationError):
            await match_service.cancel_match(match_id)


# ============================================================================
# READ TESTS
# ============================================================================


@pytest.mark.asyncio
class TestMatchReads:
    async def test_list_matches_filters(self, database, match_service, arena, make_user):
        season_id, first, second = await arena()
        third = await make_user("carol")
        fourth = await make_user("dave")
        cancelled = await match_service.create_match([first, second])
        await match_service.cancel_match(cancelled["id"])
        open_match = await match_service.create_match([third, fourth])

        page = await match_service.list_matches(PaginationQuery(qs="status=pending"))

        assert [row["id"] for row in page["results"]] == [open_match["id"]]

        page = await match_service.list_matches(
            PaginationQuery(qs=f"season_id={season_id}&sort=id")
        )
        assert [row["id"] for row in page["results"]] == [cancelled["id"], open_match["id"]]

    async def test_user_match_history(self, database, match_service, arena, make_user):
        season_id, first, second = await arena()
        won = await start_match(match_service, first, second)
        await play(match_service, won, [{first: score(5), second: score(1)}] * 3)
        lost = await start_match(match_service, first, second)
        await play(match_service, lost, [{first: score(1), second: score(5)}] * 3)
        # Cancelled matches are excluded
        cancelled = await match_service.create_match([first, second])
        await match_service.cancel_match(cancelled["id"])

        page = await match_service.get_user_match_history(first, lang="en")

        assert page["pagination"]["totalItem"] == 2
        latest, earlier = page["results"]
        assert latest["match_id"] == lost
        assert latest["is_win"] is False
        assert latest["elo_change"] < 0
        assert latest["opponent"] == {"user_id": second, "name": "bob"}
        assert latest["season"] == {"id": season_id, "name": "Running"}
        assert earlier["match_id"] == won
        assert earlier["is_win"] is True
        assert earlier["elo_change"] == 16

    async def test_history_for_unknown_user(self, database, match_service):
        with pytest.raises(NotFoundError):
            await match_service.get_user_match_history(404)

    async def test_history_row_created_once(self, database, match_service, arena):
        _, first, second = await arena()
        first_match = await match_service.create_match([first, second])
        await match_service.cancel_match(first_match["id"])
        await match_service.create_match([first, second])

        async with database.get_session() as session:
            count = (
                await session.execute(
                    select(func.count()).select_from(UserSeasonHistory).where(
                        UserSeasonHistory.user_id == first
                    )
                )
            ).scalar_one()
        assert count == 1
