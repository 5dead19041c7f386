"""
Ultra Roadmap Sync - Store
==========================

Generic create/read/update/upsert access to the relational store, keyed by
model and conflict columns.

Every call runs in its own short unit of work, so independent writes can be
awaited concurrently with ``asyncio.gather``.
"""

from typing import Any, Optional, Sequence, TypeVar
from uuid import uuid4

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadmap_sync.core.database import session_scope
from roadmap_sync.core.exceptions import ConflictTargetError, StoreError

logger = structlog.get_logger()

ModelT = TypeVar("ModelT")

# SQLSTATE raised by PostgreSQL when ON CONFLICT names no unique constraint
INVALID_CONFLICT_TARGET = "42P10"


def _is_conflict_target_error(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == INVALID_CONFLICT_TARGET:
        return True
    return "ON CONFLICT clause does not match" in str(orig)


class Store:
    """Thin async gateway over the roadmap tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def session(self):
        return session_scope(self._session_factory)

    @staticmethod
    def _where(model: Any, criteria: Sequence[Any], filters: dict[str, Any]) -> list[Any]:
        clauses = list(criteria)
        clauses.extend(getattr(model, name) == value for name, value in filters.items())
        return clauses

    # ======================================================================
    # Reads
    # ======================================================================

    async def select(
        self,
        model: type[ModelT],
        *criteria: Any,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> list[ModelT]:
        stmt = select(model).where(*self._where(model, criteria, filters))
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self.session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except DBAPIError as e:
            raise StoreError(str(e.orig)) from e

    async def first(
        self,
        model: type[ModelT],
        *criteria: Any,
        order_by: Optional[Sequence[Any]] = None,
        **filters: Any,
    ) -> Optional[ModelT]:
        rows = await self.select(model, *criteria, order_by=order_by, limit=1, **filters)
        return rows[0] if rows else None

    # ======================================================================
    # Writes
    # ======================================================================

    async def insert(self, model: type[ModelT], values: dict[str, Any]) -> ModelT:
        """Insert one row and return it with its generated id."""
        try:
            async with self.session() as session:
                instance = model(**values)
                session.add(instance)
                await session.flush()
                return instance
        except DBAPIError as e:
            raise StoreError(str(e.orig)) from e

    async def update(
        self,
        model: type[ModelT],
        values: dict[str, Any],
        *criteria: Any,
        **filters: Any,
    ) -> int:
        """Update matching rows, returning the number of rows touched."""
        if not values:
            return 0
        stmt = (
            update(model)
            .where(*self._where(model, criteria, filters))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session() as session:
                result = await session.execute(stmt)
                return result.rowcount
        except DBAPIError as e:
            raise StoreError(str(e.orig)) from e

    async def upsert(
        self,
        model: type[ModelT],
        rows: Sequence[dict[str, Any]],
        conflict: tuple[str, ...],
    ) -> int:
        """
        Insert rows, overwriting the existing row that shares the conflict key.

        Raises:
            ConflictTargetError: no unique constraint matches ``conflict``
            StoreError: any other store failure
        """
        if not rows:
            return 0

        table = model.__table__  # type: ignore[attr-defined]
        rows = [{"id": uuid4(), **row} if "id" in table.c else dict(row) for row in rows]

        try:
            async with self.session() as session:
                stmt = self._dialect_insert(session, model).values(rows)
                assignments = {
                    name: stmt.excluded[name]
                    for name in rows[0]
                    if name not in conflict and name != "id"
                }
                if "updated_at" in table.c:
                    assignments["updated_at"] = func.now()
                stmt = stmt.on_conflict_do_update(
                    index_elements=list(conflict),
                    set_=assignments,
                )
                await session.execute(stmt)
        except DBAPIError as e:
            if _is_conflict_target_error(e):
                raise ConflictTargetError(table.name, conflict) from e
            raise StoreError(str(e.orig)) from e

        logger.debug("store_upsert", table=table.name, rows=len(rows))
        return len(rows)

    @staticmethod
    def _dialect_insert(session: AsyncSession, model: Any):
        dialect = session.bind.dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise StoreError(f"Upsert not supported on {dialect}")
        return insert(model)
