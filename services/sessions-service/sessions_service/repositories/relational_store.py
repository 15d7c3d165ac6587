from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Type, TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import Base

logger = structlog.get_logger(__name__)

ModelType = TypeVar("ModelType", bound=Base)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class UpsertOperation:
    model: Type[Base]
    rows: Sequence[Mapping[str, Any]]
    conflict_keys: Sequence[str]
    update_columns: Optional[Sequence[str]] = None


class RelationalStore:
    """Generic repository operations over an async session factory.

    Every call opens its own session, so independent calls may run
    concurrently. Errors are logged and re-raised; callers decide whether a
    failure is fatal.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def fetch(
        self,
        model: Type[ModelType],
        *filters: Any,
        order_by: Iterable[Any] = (),
        limit: Optional[int] = None,
    ) -> list[ModelType]:
        stmt = select(model).filter(*filters)
        order_by = list(order_by)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def fetch_one(
        self,
        model: Type[ModelType],
        *filters: Any,
        order_by: Iterable[Any] = (),
    ) -> Optional[ModelType]:
        rows = await self.fetch(model, *filters, order_by=order_by, limit=1)
        return rows[0] if rows else None

    async def save_with_children(
        self,
        model: Type[ModelType],
        values: Mapping[str, Any],
        child_model: Type[Base],
        child_rows: Sequence[Mapping[str, Any]],
        foreign_key: str,
        *,
        key: Any = None,
        owner_filters: Sequence[Any] = (),
    ) -> Optional[tuple[ModelType, list]]:
        """Insert a parent row, or update it by key, and insert its children in one transaction.

        ``foreign_key`` on every child is set to the parent's id. Returns None
        when ``key`` is given and the key/owner pair does not match; nothing is
        written in that case or when any statement fails.
        """
        async with self._session_factory() as session:
            if key is None:
                parent = model(**values)
                session.add(parent)
            else:
                result = await session.execute(select(model).filter(model.id == key, *owner_filters))
                parent = result.scalars().first()
                if parent is None:
                    return None
                for field, value in values.items():
                    setattr(parent, field, value)
            try:
                await session.flush()
                children = [child_model(**{**row, foreign_key: parent.id}) for row in child_rows]
                session.add_all(children)
                await session.flush()
                await session.commit()
            except Exception:
                await session.rollback()
                logger.error(
                    "store_save_with_children_failed",
                    table=model.__tablename__,
                    child_table=child_model.__tablename__,
                    key=key,
                    children=len(child_rows),
                    exc_info=True,
                )
                raise
            await session.refresh(parent)
            return parent, children

    async def update(
        self,
        model: Type[ModelType],
        key: Any,
        values: Mapping[str, Any],
        *owner_filters: Any,
    ) -> Optional[ModelType]:
        """Update one row by primary key. Returns None when the key/owner pair does not match."""
        async with self._session_factory() as session:
            result = await session.execute(select(model).filter(model.id == key, *owner_filters))
            obj = result.scalars().first()
            if obj is None:
                return None
            for field, value in values.items():
                setattr(obj, field, value)
            try:
                await session.commit()
            except Exception:
                logger.error("store_update_failed", table=model.__tablename__, key=key, exc_info=True)
                raise
            await session.refresh(obj)
            return obj

    async def upsert(
        self,
        model: Type[ModelType],
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
    ) -> int:
        return await self.upsert_batch([UpsertOperation(model, rows, conflict_keys, update_columns)])

    async def upsert_batch(self, operations: Sequence[UpsertOperation]) -> int:
        """Run several upserts in a single transaction. Returns the number of rows sent."""
        operations = [op for op in operations if op.rows]
        if not operations:
            return 0

        written = 0
        async with self._session_factory() as session:
            insert_fn = _UPSERT_DIALECTS.get(session.bind.dialect.name)
            if insert_fn is None:
                raise NotImplementedError(f"upsert is not supported for dialect {session.bind.dialect.name}")
            try:
                for op in operations:
                    await session.execute(self._build_upsert(insert_fn, op))
                    written += len(op.rows)
                await session.commit()
            except Exception:
                logger.error(
                    "store_upsert_failed",
                    tables=[op.model.__tablename__ for op in operations],
                    exc_info=True,
                )
                raise
        return written

    @staticmethod
    def _build_upsert(insert_fn, op: UpsertOperation):
        rows = [dict(row) for row in op.rows]
        stmt = insert_fn(op.model.__table__).values(rows)
        columns = op.update_columns
        if columns is None:
            columns = [name for name in rows[0] if name not in op.conflict_keys]
        return stmt.on_conflict_do_update(
            index_elements=list(op.conflict_keys),
            set_={name: stmt.excluded[name] for name in columns},
        )
