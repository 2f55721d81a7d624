"""Remote store adapter: table-scoped CRUD.

The canvas engine only depends on the TableStore contract:
- list(filters, order)      equality filters, optional ordering
- insert(row)               returns the stored row (with its id)
- update(id, patch, scope)  returns the stored row; RowNotFound when no row
                            with that id matches the scope
- remove(id)
- remove_in(column, values, scope)  bulk delete by membership

SqlTableStore implements it over the SQLAlchemy session factory, one session
and commit per call. There is no transaction spanning several calls: a
failure between two calls leaves the earlier ones applied.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable
from typing import Any, Generic, Protocol, TypeVar

import structlog
from sqlalchemy import delete, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import Base

logger = structlog.stdlib.get_logger(__name__)

Row = dict[str, Any]
Filters = dict[str, Any]
# (column, descending)
Order = list[tuple[str, bool]]


class StoreError(Exception):
    """Raised when a store call fails. Carries the table and operation."""

    def __init__(self, table: str, operation: str, detail: str):
        self.table = table
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} on {table!r} failed: {detail}")


class RowNotFound(StoreError):
    """Raised by update when no row with the id exists inside the given scope."""

    def __init__(self, table: str, row_id: Any):
        self.row_id = row_id
        super().__init__(table, "update", f"row {row_id!r} not found")


class TableStore(Protocol):
    table: str

    async def list(self, filters: Filters | None = None, order: Order | None = None) -> list[Row]: ...

    async def insert(self, row: Row) -> Row: ...

    async def update(self, row_id: Any, patch: Row, scope: Filters | None = None) -> Row: ...

    async def remove(self, row_id: Any) -> None: ...

    async def remove_in(
        self, column: str, values: Iterable[Any], scope: Filters | None = None
    ) -> None: ...


class SqlTableStore:
    """TableStore over one ORM model."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[Base],
    ):
        self._session_factory = session_factory
        self._model = model
        self.table: str = model.__tablename__
        mapper = inspect(model)
        # column name -> mapped attribute (``metadata`` is mapped as ``metadata_``)
        self._attrs: dict[str, str] = {
            col.name: mapper.get_property_by_column(col).key
            for col in model.__table__.columns
        }

    def _column(self, name: str):
        if name not in self._attrs:
            raise StoreError(self.table, "query", f"unknown column {name!r}")
        return getattr(self._model, self._attrs[name])

    def _to_row(self, obj: Any) -> Row:
        row: Row = {}
        for column, attr in self._attrs.items():
            value = getattr(obj, attr)
            row[column] = value.value if isinstance(value, enum.Enum) else value
        return row

    def _to_attrs(self, row: Row) -> dict[str, Any]:
        unknown = set(row) - set(self._attrs)
        if unknown:
            raise StoreError(self.table, "write", f"unknown columns {sorted(unknown)}")
        return {self._attrs[column]: value for column, value in row.items()}

    def _error(self, operation: str, exc: Exception) -> StoreError:
        logger.error("store_call_failed", table=self.table, operation=operation, error=str(exc))
        return StoreError(self.table, operation, str(exc))

    def _scoped(self, stmt, scope: Filters | None):
        for column, value in (scope or {}).items():
            stmt = stmt.where(self._column(column) == value)
        return stmt

    async def list(self, filters: Filters | None = None, order: Order | None = None) -> list[Row]:
        stmt = self._scoped(select(self._model), filters)
        for column, descending in order or []:
            col = self._column(column)
            stmt = stmt.order_by(col.desc() if descending else col.asc())
        stmt = stmt.order_by(self._model.id)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_row(obj) for obj in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise self._error("list", exc) from exc

    async def insert(self, row: Row) -> Row:
        obj = self._model(**self._to_attrs(row))
        try:
            async with self._session_factory() as session:
                session.add(obj)
                await session.commit()
                await session.refresh(obj)
                return self._to_row(obj)
        except SQLAlchemyError as exc:
            raise self._error("insert", exc) from exc

    async def update(self, row_id: Any, patch: Row, scope: Filters | None = None) -> Row:
        attrs = self._to_attrs(patch)
        stmt = self._scoped(select(self._model).where(self._model.id == row_id), scope)
        try:
            async with self._session_factory() as session:
                obj = (await session.execute(stmt)).scalar_one_or_none()
                if obj is None:
                    raise RowNotFound(self.table, row_id)
                for attr, value in attrs.items():
                    setattr(obj, attr, value)
                await session.commit()
                await session.refresh(obj)
                return self._to_row(obj)
        except SQLAlchemyError as exc:
            raise self._error("update", exc) from exc

    async def remove(self, row_id: Any) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(self._model).where(self._model.id == row_id))
                await session.commit()
        except SQLAlchemyError as exc:
            raise self._error("remove", exc) from exc

    async def remove_in(
        self, column: str, values: Iterable[Any], scope: Filters | None = None
    ) -> None:
        values = list(values)
        if not values:
            return
        stmt = self._scoped(delete(self._model).where(self._column(column).in_(values)), scope)
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise self._error("remove_in", exc) from exc


S = TypeVar("S")


class ScopedStore(Generic[S]):
    """A TableStore narrowed to one scope (e.g. one workflow, one node).

    ``scope_to_filters`` turns a scope value into equality filters; the same
    columns are merged into every created row.
    """

    def __init__(
        self,
        store: TableStore,
        scope_to_filters: Callable[[S], Filters],
        order: Order | None = None,
    ):
        self._store = store
        self._scope_to_filters = scope_to_filters
        self._order = order

    @property
    def table(self) -> str:
        return self._store.table

    async def list(self, scope: S) -> list[Row]:
        return await self._store.list(self._scope_to_filters(scope), self._order)

    async def create(self, scope: S, row: Row) -> Row:
        return await self._store.insert({**row, **self._scope_to_filters(scope)})

    async def update(self, row_id: Any, patch: Row) -> Row:
        return await self._store.update(row_id, patch)

    async def remove(self, row_id: Any) -> None:
        await self._store.remove(row_id)
