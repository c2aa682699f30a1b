"""
Arena Shared Module

Purpose
-------
Provides domain-level foundations for the season, match and ranking modules:
- Domain exceptions and ORM error translation
- Base service and repository patterns
- Pagination and ``qs`` filter parsing
- Localized name resolution

Usage
-----
    from src.modules.shared import (
        BaseService,
        BaseRepository,
        NotFoundError,
        PaginationQuery,
    )
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    ArenaDomainException,
    ConflictError,
    ErrorSeverity,
    InvalidOperationError,
    NoActiveSeasonError,
    NotFoundError,
    SeasonAlreadyActiveError,
    SeasonAlreadyOpenedError,
    SeasonNotActivatableError,
    SeasonNotStartedError,
    ValidationError,
    get_error_severity,
    should_alert,
    translate_integrity_error,
)
from .localization import normalize_language, resolve_translation
from .pagination import FilterField, PaginationQuery, apply_qs, build_page, parse_qs

__all__ = [
    # Base patterns
    "BaseService",
    "BaseRepository",
    # Exceptions
    "ArenaDomainException",
    "ErrorSeverity",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "InvalidOperationError",
    "NoActiveSeasonError",
    "SeasonAlreadyActiveError",
    "SeasonAlreadyOpenedError",
    "SeasonNotActivatableError",
    "SeasonNotStartedError",
    "translate_integrity_error",
    "get_error_severity",
    "should_alert",
    # Pagination
    "PaginationQuery",
    "FilterField",
    "apply_qs",
    "build_page",
    "parse_qs",
    # Localization
    "resolve_translation",
    "normalize_language",
]
