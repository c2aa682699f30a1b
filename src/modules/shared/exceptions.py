"""
Domain exceptions for Arena.

Purpose
-------
Define the structured, domain-specific exception hierarchy for the season,
match and ranking logic. Services raise these for business rule violations;
an API layer (out of this repository) maps ``http_status`` onto responses.

Design Notes
------------
- All domain exceptions inherit from `ArenaDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
  - `http_status`: 400 / 404 / 409 family for transport mapping
- `translate_integrity_error` converts SQLAlchemy constraint failures into
  `ConflictError` (unique) or `NotFoundError` (foreign key).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class ArenaDomainException(Exception):
    """
    Base exception for all Arena domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise ArenaDomainException(
        ...     "Rotation aborted",
        ...     {"season_id": 4}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False
    HTTP_STATUS: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return self.HTTP_STATUS

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "http_status": self.http_status,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(ArenaDomainException):
    """
    Raised when a requested resource cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Season", "Match", "User")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    HTTP_STATUS = 404

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ConflictError(ArenaDomainException):
    """
    Raised when a write conflicts with existing state (duplicates, unique
    constraints, a state that forbids the change).
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    HTTP_STATUS = 409

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message, details=details, error_code=error_code or "CONFLICT")


class ValidationError(ArenaDomainException):
    """
    Raised when input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    HTTP_STATUS = 400

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidOperationError(ArenaDomainException):
    """
    Raised when an action violates lifecycle rules.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed

    Example:
        >>> raise InvalidOperationError(
        ...     "start_round",
        ...     "Previous round is not completed"
        ... )
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    HTTP_STATUS = 400

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


# ============================================================================
# Season / match specific errors
# ============================================================================


class NoActiveSeasonError(ConflictError):
    """Raised when an operation needs an ACTIVE season and none exists."""

    HTTP_STATUS = 400

    def __init__(self) -> None:
        super().__init__("No active leaderboard season", error_code="NO_ACTIVE_SEASON")


class SeasonAlreadyActiveError(ConflictError):
    """Raised when activation would create a second ACTIVE season."""

    def __init__(self, active_season_id: Optional[int] = None) -> None:
        super().__init__(
            "Another leaderboard season is already active",
            details={"active_season_id": active_season_id} if active_season_id is not None else {},
            error_code="SEASON_ALREADY_ACTIVE",
        )


class SeasonAlreadyOpenedError(ConflictError):
    """Raised when editing a season that has already been opened."""

    def __init__(self, season_id: int) -> None:
        super().__init__(
            "Leaderboard season has already been opened and can no longer be edited",
            details={"season_id": season_id},
            error_code="SEASON_ALREADY_OPENED",
        )


class SeasonNotActivatableError(ArenaDomainException):
    """Raised when today is outside the season's date window."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    HTTP_STATUS = 400

    def __init__(self, season_id: Optional[int], reason: str) -> None:
        super().__init__(
            f"Leaderboard season cannot be activated: {reason}",
            details={"season_id": season_id, "reason": reason},
            error_code="SEASON_NOT_ACTIVATABLE",
        )


class SeasonNotStartedError(ArenaDomainException):
    """Raised when joining while no season is running."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    HTTP_STATUS = 400

    def __init__(self) -> None:
        super().__init__(
            "Leaderboard season has not started",
            error_code="SEASON_NOT_STARTED",
        )


# ============================================================================
# ORM error translation
# ============================================================================

_UNIQUE_MARKERS = ("unique constraint", "duplicate key", "uniqueviolation")
_FOREIGN_KEY_MARKERS = ("foreign key", "foreignkeyviolation")


def translate_integrity_error(exc: IntegrityError, resource_type: str) -> ArenaDomainException:
    """
    Map an IntegrityError onto a domain exception by inspecting the driver message.

    Unique violations become ConflictError, foreign-key violations become
    NotFoundError; anything else is a generic ConflictError.
    """
    text = str(getattr(exc, "orig", None) or exc).lower()

    if any(marker in text for marker in _UNIQUE_MARKERS):
        return ConflictError(
            f"{resource_type} already exists",
            details={"resource_type": resource_type},
            error_code=f"{resource_type.upper()}_ALREADY_EXISTS",
        )
    if any(marker in text for marker in _FOREIGN_KEY_MARKERS):
        return NotFoundError(f"{resource_type} reference")
    return ConflictError(
        f"{resource_type} violates a database constraint",
        details={"resource_type": resource_type},
    )


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, ArenaDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
