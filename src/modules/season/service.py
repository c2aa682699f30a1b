"""
Season Service
==============

Purpose
-------
Manages the leaderboard season registry: creation, editing, activation,
soft deletion and listing of seasons with localized names.

Domain
------
- At most one ACTIVE season exists system-wide
- Activation requires today to fall inside [start_date, end_date]
- Activation sets ``has_opened``; opened seasons reject further edits
- ``name_key`` is derived from the generated id inside the creating transaction

Events
------
- season.created, season.updated, season.activated, season.deleted
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from sqlalchemy import String, cast
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models.enums import SeasonStatus
from src.database.models.progression.season import ACTIVE_SEASON_INDEX, LeaderboardSeason
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ArenaDomainException,
    InvalidOperationError,
    NotFoundError,
    SeasonAlreadyActiveError,
    SeasonAlreadyOpenedError,
    SeasonNotActivatableError,
    ValidationError,
    translate_integrity_error,
)
from src.modules.shared.localization import normalize_language, resolve_translation
from src.modules.shared.pagination import FilterField, PaginationQuery, apply_qs, build_page

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


# ============================================================================
# Repository
# ============================================================================


class SeasonRepository(BaseRepository[LeaderboardSeason]):
    """Repository for LeaderboardSeason model."""

    async def find_active(
        self, session: AsyncSession, for_update: bool = False
    ) -> Optional[LeaderboardSeason]:
        return await self.find_one_where(
            session,
            LeaderboardSeason.status == SeasonStatus.ACTIVE,
            for_update=for_update,
            order_by=[LeaderboardSeason.id],
        )

    async def find_latest(self, session: AsyncSession) -> Optional[LeaderboardSeason]:
        """Most recently ending season (open-ended seasons sort last)."""
        return await self.find_one_where(
            session,
            order_by=[
                LeaderboardSeason.end_date.desc().nulls_last(),
                LeaderboardSeason.id.desc(),
            ],
        )


# ============================================================================
# Helpers
# ============================================================================


def coerce_date(value: Any, field: str) -> Optional[date]:
    """Accept ``date``, ``datetime`` or ISO ``YYYY-MM-DD`` strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValidationError(field, f"Invalid date '{value}'") from None
    raise ValidationError(field, f"Unsupported date value {value!r}")


def window_contains(start: Optional[date], end: Optional[date], day: date) -> bool:
    """Inclusive window check; a missing bound is open-ended."""
    return (start is None or start <= day) and (end is None or day <= end)


def translate_season_integrity_error(exc: IntegrityError) -> ArenaDomainException:
    """Second concurrent activation hits the single-active index; anything else is generic."""
    message = str(getattr(exc, "orig", None) or exc).lower()
    if ACTIVE_SEASON_INDEX in message or "leaderboard_seasons.status" in message:
        return SeasonAlreadyActiveError()
    return translate_integrity_error(exc, "LeaderboardSeason")


# ============================================================================
# SeasonService
# ============================================================================


class SeasonService(BaseService):
    """
    Service for the leaderboard season registry.

    Public Methods
    --------------
    - create_season() / update_season() / activate_season() / delete_season()
    - get_season() / list_seasons() / find_active_season()
    - ensure_activatable() -> shared activation rules (used by rotation)
    """

    UPDATABLE_FIELDS = (
        "name",
        "start_date",
        "end_date",
        "status",
        "enable_precreate",
        "precreate_before_end_days",
        "is_random_item_again",
    )

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._seasons = SeasonRepository(
            model_class=LeaderboardSeason,
            logger=get_logger(f"{__name__}.SeasonRepository"),
        )

    @property
    def repository(self) -> SeasonRepository:
        return self._seasons

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def create_season(
        self,
        data: Mapping[str, Any],
        created_by_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Create a season.

        ``start_date`` defaults to today (UTC) and ``end_date`` to start plus
        ``season.default_duration_days``. Requesting ACTIVE applies the
        activation rules and opens the season immediately.

        Raises:
            ValidationError: Bad name, dates or status
            SeasonAlreadyActiveError: ACTIVE requested while another is active
            SeasonNotActivatableError: ACTIVE requested outside the window
            ConflictError / NotFoundError: Translated constraint failures
        """
        today = self.utc_today(now)
        translations = self._normalize_name(data.get("name"))
        start_date = coerce_date(data.get("start_date"), "start_date") or today
        end_date = coerce_date(data.get("end_date"), "end_date") or start_date + timedelta(
            days=int(self.get_config("season.default_duration_days", 30))
        )
        self._validate_dates(start_date, end_date)
        status = self._parse_status(data.get("status"), default=SeasonStatus.PREVIEW)
        precreate_days = self._parse_precreate_days(data.get("precreate_before_end_days", 2))

        self.log_operation("create_season", status=status.value, created_by_id=created_by_id)

        try:
            async with DatabaseService.get_transaction() as session:
                season = LeaderboardSeason(
                    name_translations=translations,
                    start_date=start_date,
                    end_date=end_date,
                    status=SeasonStatus.PREVIEW,
                    has_opened=False,
                    enable_precreate=bool(data.get("enable_precreate", False)),
                    precreate_before_end_days=precreate_days,
                    is_random_item_again=bool(data.get("is_random_item_again", False)),
                    created_by_id=created_by_id,
                )
                if status is SeasonStatus.ACTIVE:
                    await self.ensure_activatable(session, season, today)
                    season.status = SeasonStatus.ACTIVE
                    season.has_opened = True
                else:
                    season.status = status

                self._seasons.add(session, season)
                await self._seasons.flush(session)
                season.name_key = self.build_name_key(season.id)
                await self._seasons.flush(session)

                result = self.serialize(season)
        except IntegrityError as exc:
            raise translate_season_integrity_error(exc) from exc

        await self.emit_event(
            "season.created",
            {"season_id": result["id"], "status": result["status"]},
            {"created_by_id": created_by_id},
        )
        return result

    async def update_season(
        self,
        season_id: int,
        data: Mapping[str, Any],
        updated_by_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Update a season that has not been opened yet.

        Raises:
            NotFoundError: Season missing or deleted
            SeasonAlreadyOpenedError: Season was already activated once
            ValidationError: Invalid field values
        """
        unknown = set(data) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError("data", f"Unsupported fields: {', '.join(sorted(unknown))}")

        today = self.utc_today(now)
        self.log_operation("update_season", season_id=season_id, fields=sorted(data))

        try:
            async with DatabaseService.get_transaction() as session:
                season = await self._get_for_update(session, season_id)
                if season.has_opened:
                    raise SeasonAlreadyOpenedError(season.id)

                if "name" in data:
                    season.name_translations = self._normalize_name(data["name"])
                if "start_date" in data:
                    season.start_date = coerce_date(data["start_date"], "start_date")
                if "end_date" in data:
                    season.end_date = coerce_date(data["end_date"], "end_date")
                self._validate_dates(season.start_date, season.end_date)

                if "enable_precreate" in data:
                    season.enable_precreate = bool(data["enable_precreate"])
                if "precreate_before_end_days" in data:
                    season.precreate_before_end_days = self._parse_precreate_days(
                        data["precreate_before_end_days"]
                    )
                if "is_random_item_again" in data:
                    season.is_random_item_again = bool(data["is_random_item_again"])

                if "status" in data:
                    status = self._parse_status(data["status"], default=season.status)
                    if status is SeasonStatus.ACTIVE:
                        await self.ensure_activatable(session, season, today)
                        season.has_opened = True
                    season.status = status

                season.updated_by_id = updated_by_id
                await self._seasons.flush(session)
                result = self.serialize(season)
        except IntegrityError as exc:
            raise translate_season_integrity_error(exc) from exc

        await self.emit_event(
            "season.updated",
            {"season_id": season_id, "status": result["status"]},
            {"updated_by_id": updated_by_id},
        )
        return result

    async def activate_season(
        self, season_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Activate a season explicitly. Activating the ACTIVE season is a no-op.

        Raises:
            NotFoundError, InvalidOperationError (expired),
            SeasonAlreadyActiveError, SeasonNotActivatableError
        """
        today = self.utc_today(now)
        activated = False

        try:
            async with DatabaseService.get_transaction() as session:
                season = await self._get_for_update(session, season_id)
                if season.status is SeasonStatus.EXPIRED:
                    raise InvalidOperationError(
                        "activate_season", "Expired seasons cannot be activated"
                    )
                if season.status is not SeasonStatus.ACTIVE:
                    await self.ensure_activatable(session, season, today)
                    season.status = SeasonStatus.ACTIVE
                    season.has_opened = True
                    activated = True
                    await self._seasons.flush(session)
                result = self.serialize(season)
        except IntegrityError as exc:
            raise translate_season_integrity_error(exc) from exc

        if activated:
            self.log_operation("activate_season", season_id=season_id)
            await self.emit_event("season.activated", {"season_id": season_id})
        return result

    async def delete_season(
        self, season_id: int, deleted_by_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Soft delete a season (ACTIVE seasons included)."""
        async with DatabaseService.get_transaction() as session:
            season = await self._get_for_update(session, season_id)
            self._seasons.soft_delete(season, deleted_by_id)
            await self._seasons.flush(session)

        self.log_operation("delete_season", season_id=season_id, deleted_by_id=deleted_by_id)
        await self.emit_event(
            "season.deleted", {"season_id": season_id}, {"deleted_by_id": deleted_by_id}
        )
        return {"id": season_id, "deleted": True}

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_season(self, season_id: int, lang: Optional[str] = None) -> Dict[str, Any]:
        async with DatabaseService.get_session() as session:
            season = await self._seasons.get(session, season_id)
            if season is None:
                raise NotFoundError("LeaderboardSeason", season_id)
            return self.serialize(season, lang)

    async def list_seasons(
        self, query: Optional[PaginationQuery] = None, lang: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Paginated season list.

        ``qs`` filters: ``status``, ``name`` (substring), ``has_opened``;
        sort keys: ``id``, ``start_date``, ``end_date``, ``status``, ``created_at``.
        """
        query = query or PaginationQuery()
        page, size = self.resolve_page(query)

        stmt = self.apply_season_qs(self._seasons.select(), query.qs)

        async with DatabaseService.get_session() as session:
            seasons, total = await self._seasons.paginate(
                session, stmt, offset=(page - 1) * size, limit=size
            )
            results = [self.serialize(season, lang) for season in seasons]

        return build_page(results, page=page, size=size, total=total)

    async def find_active_season(self, lang: Optional[str] = None) -> Optional[Dict[str, Any]]:
        async with DatabaseService.get_session() as session:
            season = await self._seasons.find_active(session)
            return self.serialize(season, lang) if season is not None else None

    # ========================================================================
    # SHARED RULES
    # ========================================================================

    async def ensure_activatable(
        self, session: AsyncSession, season: LeaderboardSeason, today: date
    ) -> None:
        """
        Raise unless ``season`` may become ACTIVE today.

        Raises:
            SeasonAlreadyActiveError: Another season is ACTIVE
            SeasonNotActivatableError: Today is outside the season window
        """
        active = await self._seasons.find_active(session)
        if active is not None and active.id != season.id:
            raise SeasonAlreadyActiveError(active.id)
        if not window_contains(season.start_date, season.end_date, today):
            raise SeasonNotActivatableError(
                season.id,
                f"today ({today.isoformat()}) is outside "
                f"[{season.start_date}, {season.end_date}]",
            )

    def build_name_key(self, season_id: int) -> str:
        prefix = self.get_config("season.name_key_prefix", "leaderboardSeason.name")
        return f"{prefix}.{season_id}"

    def resolve_page(self, query: PaginationQuery) -> tuple[int, int]:
        return query.resolve(
            default_size=int(self.get_config("core.pagination.default_page_size", 20)),
            max_size=int(self.get_config("core.pagination.max_page_size", 100)),
        )

    def apply_season_qs(self, stmt: Any, qs: Optional[str]) -> Any:
        return apply_qs(
            stmt,
            qs,
            filters={
                "status": FilterField(LeaderboardSeason.status, mode="enum", enum=SeasonStatus),
                "name": FilterField(
                    cast(LeaderboardSeason.name_translations, String), mode="contains"
                ),
                "has_opened": FilterField(LeaderboardSeason.has_opened, mode="bool"),
            },
            sortable={
                "id": LeaderboardSeason.id,
                "start_date": LeaderboardSeason.start_date,
                "end_date": LeaderboardSeason.end_date,
                "status": LeaderboardSeason.status,
                "created_at": LeaderboardSeason.created_at,
            },
            default_order=[LeaderboardSeason.start_date.desc(), LeaderboardSeason.id.desc()],
        )

    @staticmethod
    def serialize(season: LeaderboardSeason, lang: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": season.id,
            "name": resolve_translation(season.name_translations, lang, fallback=season.name_key),
            "name_key": season.name_key,
            "name_translations": dict(season.name_translations or {}),
            "start_date": season.start_date.isoformat() if season.start_date else None,
            "end_date": season.end_date.isoformat() if season.end_date else None,
            "status": season.status.value,
            "has_opened": season.has_opened,
            "enable_precreate": season.enable_precreate,
            "precreate_before_end_days": season.precreate_before_end_days,
            "is_random_item_again": season.is_random_item_again,
            "created_by_id": season.created_by_id,
            "updated_by_id": season.updated_by_id,
        }

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _get_for_update(self, session: AsyncSession, season_id: int) -> LeaderboardSeason:
        season = await self._seasons.get_for_update(session, season_id)
        if season is None:
            raise NotFoundError("LeaderboardSeason", season_id)
        return season

    def _normalize_name(self, value: Any) -> Dict[str, str]:
        if isinstance(value, str):
            lang = normalize_language(self.get_config("core.default_language", "vi")) or "vi"
            translations = {lang: value.strip()}
        elif isinstance(value, Mapping):
            translations = {}
            for key, text in value.items():
                lang = normalize_language(str(key))
                if lang and text is not None and str(text).strip():
                    translations[lang] = str(text).strip()
        else:
            translations = {}

        if not any(translations.values()):
            raise ValidationError("name", "Season name is required")
        return translations

    @staticmethod
    def _validate_dates(start_date: Optional[date], end_date: Optional[date]) -> None:
        if start_date is not None and end_date is not None and end_date < start_date:
            raise ValidationError("end_date", "end_date must not be before start_date")

    @staticmethod
    def _parse_status(value: Any, default: SeasonStatus) -> SeasonStatus:
        if value is None:
            return default
        if isinstance(value, SeasonStatus):
            return value
        try:
            return SeasonStatus(str(value).upper())
        except ValueError:
            raise ValidationError("status", f"Unknown season status '{value}'") from None

    @staticmethod
    def _parse_precreate_days(value: Any) -> int:
        try:
            days = int(value)
        except (TypeError, ValueError):
            raise ValidationError(
                "precreate_before_end_days", "precreate_before_end_days must be an integer"
            ) from None
        if days < 0:
            raise ValidationError(
                "precreate_before_end_days", "precreate_before_end_days must be >= 0"
            )
        return days
