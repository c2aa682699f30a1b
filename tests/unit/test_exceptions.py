"""
Unit tests for domain exceptions and IntegrityError translation.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from src.modules.shared.exceptions import (
    ConflictError,
    ErrorSeverity,
    InvalidOperationError,
    NoActiveSeasonError,
    NotFoundError,
    SeasonAlreadyActiveError,
    ValidationError,
    should_alert,
    translate_integrity_error,
)


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, Exception(message))


class TestErrorCodes:
    """Test stable error codes and transport status."""

    def test_not_found(self):
        exc = NotFoundError("Match", 7)

        assert exc.error_code == "MATCH_NOT_FOUND"
        assert exc.http_status == 404
        assert exc.details == {"resource_type": "Match", "identifier": 7}

    def test_validation(self):
        exc = ValidationError("user_ids", "A match needs exactly two distinct users")

        assert exc.error_code == "VALIDATION_USER_IDS"
        assert exc.http_status == 400

    def test_invalid_operation(self):
        exc = InvalidOperationError("start_round", "Round 1 is not completed")

        assert exc.error_code == "INVALID_START_ROUND"
        assert "Round 1 is not completed" in str(exc)

    def test_season_conflicts(self):
        assert NoActiveSeasonError().error_code == "NO_ACTIVE_SEASON"
        assert NoActiveSeasonError().http_status == 400
        assert SeasonAlreadyActiveError(3).details == {"active_season_id": 3}
        assert SeasonAlreadyActiveError(3).http_status == 409
        assert SeasonAlreadyActiveError().details == {}

    def test_to_dict(self):
        data = ConflictError("taken", error_code="NAME_TAKEN").to_dict()

        assert data["error_type"] == "ConflictError"
        assert data["error_code"] == "NAME_TAKEN"
        assert data["severity"] == ErrorSeverity.INFO.value
        assert data["is_retryable"] is False

    def test_alerting(self):
        assert should_alert(RuntimeError("x")) is True
        assert should_alert(NotFoundError("Season")) is False


class TestIntegrityTranslation:
    """Test SQLAlchemy IntegrityError translation."""

    @pytest.mark.parametrize(
        "message",
        [
            "UNIQUE constraint failed: user_season_histories.user_id",
            'duplicate key value violates unique constraint "uq_history"',
        ],
    )
    def test_unique_violation(self, message):
        exc = translate_integrity_error(_integrity(message), "UserSeasonHistory")

        assert isinstance(exc, ConflictError)
        assert exc.error_code == "USERSEASONHISTORY_ALREADY_EXISTS"

    def test_foreign_key_violation(self):
        exc = translate_integrity_error(
            _integrity("FOREIGN KEY constraint failed"), "Match"
        )

        assert isinstance(exc, NotFoundError)

    def test_other_violation(self):
        exc = translate_integrity_error(_integrity("NOT NULL constraint failed"), "Match")

        assert isinstance(exc, ConflictError)
        assert exc.error_code == "CONFLICT"
