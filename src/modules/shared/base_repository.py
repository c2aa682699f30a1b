"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for database operations
following SQLAlchemy 2.0 async patterns. Repositories encapsulate data access
logic and provide a consistent interface for CRUD operations.

Design Notes
------------
This base repository provides:
- Type-safe CRUD operations
- Pessimistic locking support (get_for_update)
- Soft-delete awareness: models carrying ``deleted_at`` hide deleted rows
  unless ``include_deleted=True`` is passed
- Offset pagination over arbitrary select statements
- Existence/counting utilities
- Structured debug logging for every operation

What this class does NOT do:
- Manage transactions (services/DatabaseService handle that)
- Contain business logic

Usage
-----
    class SeasonRepository(BaseRepository[LeaderboardSeason]):
        async def find_active(self, session: AsyncSession):
            return await self.find_one_where(
                session,
                LeaderboardSeason.status == SeasonStatus.ACTIVE,
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import selectinload

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    # ------------------------------------------------------------------ #
    # Statement helpers
    # ------------------------------------------------------------------ #

    @property
    def is_soft_deletable(self) -> bool:
        return hasattr(self.model_class, "deleted_at")

    def visible(self, include_deleted: bool = False) -> List[ColumnElement[bool]]:
        """Conditions hiding soft-deleted rows."""
        if include_deleted or not self.is_soft_deletable:
            return []
        return [self.model_class.deleted_at.is_(None)]  # type: ignore[attr-defined]

    def select(self, *conditions: ColumnElement[bool], include_deleted: bool = False) -> Select:
        return select(self.model_class).where(*self.visible(include_deleted), *conditions)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        include_deleted: bool = False,
    ) -> Optional[T]:
        """Get a single record by primary key (no lock)."""
        stmt = self.select(
            self.model_class.id == id_value,  # type: ignore[attr-defined]
            include_deleted=include_deleted,
        )
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))

        instance = (await session.execute(stmt)).scalar_one_or_none()

        self.log.debug(
            f"Repository.get: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__, "id": id_value, "found": instance is not None},
        )
        return instance

    async def get_for_update(
        self,
        session: AsyncSession,
        id_value: Any,
        eager_load: Optional[List[InstrumentedAttribute]] = None,
    ) -> Optional[T]:
        """Get a single record by primary key with SELECT FOR UPDATE lock."""
        stmt = self.select(self.model_class.id == id_value).with_for_update()  # type: ignore[attr-defined]
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))

        instance = (await session.execute(stmt)).scalar_one_or_none()

        self.log.debug(
            f"Repository.get_for_update: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": id_value,
                "found": instance is not None,
                "locked": True,
            },
        )
        return instance

    async def get_many(self, session: AsyncSession, id_values: Sequence[Any]) -> List[T]:
        """Get multiple records by primary keys; missing ids are skipped."""
        if not id_values:
            return []
        stmt = self.select(self.model_class.id.in_(list(id_values)))  # type: ignore[attr-defined]
        instances = list((await session.execute(stmt)).scalars().all())

        self.log.debug(
            f"Repository.get_many: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "requested_count": len(id_values),
                "found_count": len(instances),
            },
        )
        return instances

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        for_update: bool = False,
        order_by: Sequence[Any] = (),
    ) -> Optional[T]:
        """Find the first record matching conditions."""
        stmt = self.select(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))

        instance = (await session.execute(stmt.limit(1))).scalars().first()

        self.log.debug(
            f"Repository.find_one_where: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__, "found": instance is not None, "locked": for_update},
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        for_update: bool = False,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
    ) -> List[T]:
        """Find multiple records matching conditions."""
        stmt = self.select(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))
        if limit is not None:
            stmt = stmt.limit(limit)

        instances = list((await session.execute(stmt)).scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found_count": len(instances),
                "locked": for_update,
                "limit": limit,
            },
        )
        return instances

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = (
            select(func.count())
            .select_from(self.model_class)
            .where(*self.visible(), *conditions)
        )
        count = (await session.execute(stmt)).scalar_one()

        self.log.debug(
            f"Repository.count: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__, "count": count},
        )
        return count

    async def paginate(
        self,
        session: AsyncSession,
        stmt: Select,
        *,
        offset: int,
        limit: int,
    ) -> Tuple[List[Any], int]:
        """
        Run ``stmt`` with offset/limit and return ``(rows, total)``.

        Single-entity statements yield model instances; multi-column
        statements yield Row objects.
        """
        total_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = (await session.execute(total_stmt)).scalar_one()

        result = await session.execute(stmt.offset(offset).limit(limit))
        if len(stmt.column_descriptions) == 1:
            rows: List[Any] = list(result.scalars().all())
        else:
            rows = list(result.all())

        self.log.debug(
            f"Repository.paginate: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "offset": offset,
                "limit": limit,
                "total": total,
                "returned": len(rows),
            },
        )
        return rows, total

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self.log.debug(
            f"Repository.add: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__},
        )
        return instance

    def add_many(self, session: AsyncSession, instances: Sequence[T]) -> List[T]:
        session.add_all(instances)
        self.log.debug(
            f"Repository.add_many: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__, "count": len(instances)},
        )
        return list(instances)

    async def delete(self, session: AsyncSession, instance: T) -> None:
        """Hard delete an instance."""
        await session.delete(instance)
        self.log.debug(
            f"Repository.delete: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__},
        )

    def soft_delete(self, instance: T, deleted_by_id: Optional[int] = None) -> None:
        instance.soft_delete(deleted_by_id)  # type: ignore[attr-defined]
        self.log.debug(
            f"Repository.soft_delete: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": getattr(instance, "id", None),
                "deleted_by_id": deleted_by_id,
            },
        )

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
        self.log.debug(
            f"Repository.flush: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__},
        )
