"""Database Storage — async SQLAlchemy sessions, transactions and the Storage implementation.

Invariants:
    - Every owned session auto-rolls-back on exception (no partial commits leak)
    - All SQLAlchemy exceptions mapped to DatabaseError (core/errors.py)
    - A storage call carrying an SqlAlchemyTransaction runs on that transaction's session and
      never commits it; otherwise it opens, commits (writes) and closes its own session
    - Unknown columns in attributes/order/predicates raise ConfigurationError;
      unknown keys in write payloads are ignored

Design Decisions:
    - expire_on_commit=False: rows stay readable after commit in async context
    - Predicates compiled from the storage-agnostic algebra (core/query.py);
      Related -> relationship.has(), Like -> ilike
    - Rows returned as plain dicts projected from mapped column attributes
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import and_, delete, false, func, not_, or_, select, text, true, update
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.orm import selectinload

from entity_service.config import Settings, get_settings
from entity_service.core.domain_types import Row
from entity_service.core.errors import ConfigurationError, DatabaseError, IntegrityViolationError
from entity_service.core.query import (
    AllOf, AnyOf, Eq, In, IsNull, Like, Not, QueryOptions, Related, where_clause,
)

logger = logging.getLogger(__name__)


def _map_error(e: SQLAlchemyError) -> DatabaseError:
    if isinstance(e, IntegrityError):
        logger.error(f"DB integrity error: {e}")
        return IntegrityViolationError("commit")
    if isinstance(e, OperationalError):
        logger.error(f"DB operational error: {e}")
        return DatabaseError("Connection or operational error", "execute")
    if isinstance(e, DBAPIError):
        logger.error(f"DB driver error: {e}")
        return DatabaseError("Database driver error", "query")
    logger.error(f"SQLAlchemy error: {e}")
    return DatabaseError("Database operation failed", "unknown")


class DatabaseSessionManager:
    """Manages async database sessions with pooling, rollback, and health checks."""

    def __init__(
        self, database_url: str, echo: bool = False,
        pool_size: int = 20, max_overflow: int = 10,
    ):
        engine_kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "DatabaseSessionManager":
        settings = settings or get_settings()
        return cls(settings.database_url, echo=settings.database_echo)

    def new_session(self) -> AsyncSession:
        return self._session_factory()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            raise _map_error(e)
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except DatabaseError as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


class SqlAlchemyTransaction:
    """Transaction handle owning one session until commit or rollback."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise _map_error(e)
        finally:
            await self.session.close()

    async def rollback(self) -> None:
        try:
            await self.session.rollback()
        finally:
            await self.session.close()


# ─── Predicate Compilation ───────────────────────────────────────

def _column(model: type, name: str):
    mapper = sa_inspect(model)
    if name not in mapper.column_attrs:
        raise ConfigurationError(f"Unknown column {name!r} on {model.__name__}.")
    return getattr(model, name)


def compile_predicate(model: type, predicate: Any):
    """SQL expression for one predicate of the query algebra."""
    if isinstance(predicate, Eq):
        return _column(model, predicate.column) == predicate.value
    if isinstance(predicate, In):
        return _column(model, predicate.column).in_(list(predicate.values))
    if isinstance(predicate, IsNull):
        return _column(model, predicate.column).is_(None)
    if isinstance(predicate, Like):
        return _column(model, predicate.column).ilike(predicate.pattern)
    if isinstance(predicate, AllOf):
        return and_(true(), *(compile_predicate(model, c) for c in predicate.clauses))
    if isinstance(predicate, AnyOf):
        return or_(false(), *(compile_predicate(model, c) for c in predicate.clauses))
    if isinstance(predicate, Not):
        return not_(compile_predicate(model, predicate.clause))
    if isinstance(predicate, Related):
        relationships = sa_inspect(model).relationships
        if predicate.relation not in relationships:
            raise ConfigurationError(f"Unknown relation {predicate.relation!r} on {model.__name__}.")
        target = relationships[predicate.relation].mapper.class_
        return getattr(model, predicate.relation).has(compile_predicate(target, predicate.clause))
    raise ConfigurationError(f"Unsupported predicate {predicate!r}.")


# ─── Storage ─────────────────────────────────────────────────────

def _related_row(instance: Any, attributes: list[str] | None) -> Row | None:
    if instance is None:
        return None
    names = attributes or [attr.key for attr in sa_inspect(type(instance)).column_attrs]
    return {name: getattr(instance, name) for name in names}


class SqlAlchemyStorage:
    """Storage over one mapped model class."""

    def __init__(self, model: type, manager: DatabaseSessionManager):
        self.model = model
        self.manager = manager
        self._columns = [attr.key for attr in sa_inspect(model).column_attrs]

    @asynccontextmanager
    async def _session(self, options: QueryOptions, write: bool = False) -> AsyncGenerator[AsyncSession, None]:
        handle = options.transaction_handle()
        if isinstance(handle, SqlAlchemyTransaction):
            try:
                yield handle.session
            except SQLAlchemyError as e:
                raise _map_error(e)
            return

        async with self.manager.session() as session:
            yield session
            if write:
                await session.commit()

    async def transaction(self) -> SqlAlchemyTransaction:
        return SqlAlchemyTransaction(self.manager.new_session())

    def _where(self, options: QueryOptions):
        return compile_predicate(self.model, where_clause(options.where, options.filters))

    def _select(self, options: QueryOptions):
        stmt = select(self.model).where(self._where(options))
        for relation in options.include:
            stmt = stmt.options(selectinload(getattr(self.model, relation)))
        for name, direction in options.order:
            column = _column(self.model, name)
            stmt = stmt.order_by(column.desc() if direction.lower() == "desc" else column.asc())
        if options.limit is not None:
            stmt = stmt.limit(options.limit)
        if options.offset is not None:
            stmt = stmt.offset(options.offset)
        return stmt

    def _to_row(self, instance: Any, attributes: list[str] | None, include: dict) -> Row:
        names = attributes if attributes is not None else self._columns
        for name in names:
            if name not in self._columns:
                raise ConfigurationError(f"Unknown column {name!r} on {self.model.__name__}.")
        row = {name: getattr(instance, name) for name in names}
        for relation, related_attributes in include.items():
            related = getattr(instance, relation)
            if isinstance(related, list):
                row[relation] = [_related_row(item, related_attributes) for item in related]
            else:
                row[relation] = _related_row(related, related_attributes)
        return row

    def _payload(self, data: dict) -> dict:
        return {key: value for key, value in data.items() if key in self._columns}

    async def create(self, data: dict, options: QueryOptions) -> Row:
        async with self._session(options, write=True) as session:
            instance = self.model(**self._payload(data))
            session.add(instance)
            await session.flush()
            return self._to_row(instance, None, {})

    async def find_all(self, options: QueryOptions) -> list[Row]:
        async with self._session(options) as session:
            result = await session.scalars(self._select(options))
            return [self._to_row(obj, options.attributes, options.include) for obj in result.all()]

    async def count(self, options: QueryOptions) -> int:
        async with self._session(options) as session:
            stmt = select(func.count()).select_from(self.model).where(self._where(options))
            return int(await session.scalar(stmt) or 0)

    async def find_and_count_all(self, options: QueryOptions) -> dict:
        rows = await self.find_all(options)
        count = await self.count(options)
        return {"rows": rows, "count": count}

    async def update(self, data: dict, options: QueryOptions) -> int:
        values = self._payload(data)
        if not values:
            return 0
        async with self._session(options, write=True) as session:
            stmt = (
                update(self.model)
                .where(self._where(options))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount

    async def destroy(self, options: QueryOptions) -> int:
        async with self._session(options, write=True) as session:
            stmt = (
                delete(self.model)
                .where(self._where(options))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount
