"""Service Core — uniform CRUD, single-row retrieval and lifecycle events over a storage.

Invariants:
    - Every write emits <stage>/<stage>d events in order: creating, created (same for update/delete)
    - after_create runs before `created` is emitted: subscribers only hear about a row once
      every write that belongs to it succeeded
    - Events fire only when emit_event is not False AND both event_channel and event_name are set
    - Each event is published twice: "<event_name>.<stage>" then the bare "<stage>" with the
      event name prepended; their subscriber results are concatenated
    - A transaction opened here is committed on success and rolled back on any failure;
      an inherited transaction is never committed or rolled back here
    - Every operation failure is appended to last_errors (bounded, de-duplicated) and re-raised
    - Callers' options are never mutated: operations work on QueryOptions.copy()

Design Decisions:
    - Capabilities are mixin layers over this class; each override delegates via super()
      so the base behavior always runs innermost (ADR: cooperative layering over decorators)
    - Collaborators (storage, event_channel, locale, sharing_service) are class attributes:
      a subclass or composed class wires them once, instances share them
    - One instance per concrete class via singleton() (RLock): concurrent first access
      yields the same instance
"""

import inspect
import logging
import threading
from collections import deque
from contextlib import asynccontextmanager, contextmanager
from enum import Enum
from typing import Any, AsyncIterator, ClassVar, Iterator, Mapping

from entity_service.config import get_settings
from entity_service.core.cache import TTLCache
from entity_service.core.dependency import DependencyRegistry, dependencies as default_dependencies
from entity_service.core.domain_types import LifecycleEvent, Row
from entity_service.core.errors import (
    ConfigurationError, ErrorContext, InvalidValueError, ManyRowsError, NoRowsError,
    ServiceError,
)
from entity_service.core.query import QueryOptions
from entity_service.core.repository_protocols import (
    EventChannel, Locale, Storage, Transaction,
)
from entity_service.services.build_list_options import apply_search, apply_view
from entity_service.services.resolve_references import Reference, complete_entity_id

logger = logging.getLogger(__name__)

_singleton_lock = threading.RLock()


class Service:
    """Base service: configure collaborators as class attributes, compose capabilities on top."""

    capabilities: ClassVar[frozenset] = frozenset()

    storage: Storage | None = None
    event_channel: EventChannel | None = None
    event_name: str | None = None
    locale: Locale | None = None
    dependencies: DependencyRegistry = default_dependencies

    references: dict[str, Any] = {}
    search_columns: tuple[str, ...] = ()
    translatable_columns: tuple[str, ...] = ()
    view_attributes: tuple[str, ...] | None = None
    default_translation_context: str | None = None
    transaction_required: bool = False
    translation_cache: TTLCache | None = None

    def __init__(self):
        settings = get_settings()
        self.references = {
            name: Reference.coerce(name, declaration)
            for name, declaration in type(self).references.items()
        }
        self.search_columns = list(type(self).search_columns)
        self.translatable_columns = list(type(self).translatable_columns)
        self.default_view_attributes: list[str] = []
        if self.default_translation_context is None:
            self.default_translation_context = settings.default_translation_context
        self.last_errors: deque[ServiceError | Exception] = deque(maxlen=settings.error_log_size)
        self.init()

    def init(self) -> None:
        """Hook for capability layers to contribute columns and references."""

    @classmethod
    def singleton(cls) -> "Service":
        instance = cls.__dict__.get("_instance")
        if instance is None:
            with _singleton_lock:
                instance = cls.__dict__.get("_instance")
                if instance is None:
                    instance = cls()
                    cls._instance = instance
        return instance

    @classmethod
    def reset_singleton(cls) -> None:
        with _singleton_lock:
            if "_instance" in cls.__dict__:
                del cls._instance

    @property
    def service_name(self) -> str:
        return self.event_name or type(self).__name__

    def __repr__(self) -> str:
        tags = ",".join(sorted(tag.value for tag in self.capabilities))
        return f"<{type(self).__name__} capabilities=[{tags}]>"

    # ─── Collaborators ───────────────────────────────────────────────

    def resolve_service(self, target: Any) -> "Service":
        """Resolve a dependency name, Service class, or instance to a service instance."""
        if isinstance(target, str):
            target = self.dependencies.get(target)
        if isinstance(target, type) and issubclass(target, Service):
            target = target.singleton()
        if not isinstance(target, Service):
            raise ConfigurationError(f"{target!r} is not a service.")
        return target

    def _require_storage(self) -> Storage:
        if self.storage is None:
            raise ConfigurationError(
                f"{type(self).__name__} has no storage configured.",
                ErrorContext(service=self.service_name),
            )
        return self.storage

    async def create_transaction(self) -> Transaction:
        return await self._require_storage().transaction()

    @asynccontextmanager
    async def transaction_scope(
        self, options: QueryOptions, required: bool = False,
    ) -> AsyncIterator[QueryOptions]:
        """Yield options carrying a transaction; own (commit/rollback) it only if opened here."""
        if options.transaction_handle() is not None or not (options.transaction is True or required):
            yield options
            return

        transaction = await self.create_transaction()
        scoped = options.copy(transaction=transaction)
        try:
            yield scoped
            await transaction.commit()
        except BaseException:
            await transaction.rollback()
            raise

    # ─── Error Log ───────────────────────────────────────────────────

    def push_error(self, error: Exception) -> None:
        if error in self.last_errors:
            return
        self.last_errors.append(error)
        logger.warning(
            str(error),
            extra={
                "service": self.service_name,
                "error_code": getattr(error, "code", type(error).__name__),
            },
        )

    @contextmanager
    def _record_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except ServiceError as e:
            if e.context.service is None:
                e.context.service = self.service_name
                e.context.operation = operation
            self.push_error(e)
            raise
        except Exception as e:
            self.push_error(e)
            raise

    # ─── Events ──────────────────────────────────────────────────────

    async def emit(self, sub_name: Any, condition: Any, result: Any, *params: Any) -> list:
        if condition is False or self.event_channel is None or not self.event_name:
            return []

        sub = sub_name.value if isinstance(sub_name, Enum) else sub_name
        logger.debug(
            "Emitting event",
            extra={"service": self.service_name, "event": f"{self.event_name}.{sub}"},
        )
        results = list(await self.event_channel.publish(f"{self.event_name}.{sub}", result, *params) or [])
        results.extend(await self.event_channel.publish(sub, self.event_name, result, *params) or [])
        return results

    # ─── Validation ──────────────────────────────────────────────────

    async def complete_references(
        self, data: dict, clean: bool = False, transaction: Any = None,
    ) -> dict:
        for reference in self.references.values():
            if reference.resolver is not None:
                await reference.resolver(data)
                continue
            await complete_entity_id(
                data,
                reference,
                lambda reference=reference: self.resolve_service(reference.target),
                clean=clean,
                transaction=transaction,
            )
        return data

    async def validate(self, data: dict) -> dict:
        for key, value in data.items():
            if isinstance(value, str):
                data[key] = value.strip()
        return data

    async def validate_for_creation(self, data: dict) -> dict:
        return await self.validate(data)

    async def validate_for_update(self, data: dict, where: Mapping[str, Any] | None = None) -> dict:
        return await self.validate(data)

    # ─── Writes ──────────────────────────────────────────────────────

    async def create(self, data: dict, options: QueryOptions | Mapping | None = None) -> Row:
        options = QueryOptions.coerce(options)
        with self._record_errors("create"):
            await self.complete_references(data, clean=True, transaction=options.transaction_handle())
            await self.validate_for_creation(data)
            async with self.transaction_scope(options, required=self.transaction_required) as scoped:
                await self.emit(LifecycleEvent.CREATING, scoped.emit_event, data, scoped)
                row = await self._require_storage().create(data, scoped)
                await self.after_create(row, data, scoped)
                await self.emit(LifecycleEvent.CREATED, scoped.emit_event, row, data, scoped)
        return row

    async def after_create(self, row: Row, data: dict, options: QueryOptions) -> None:
        """Hook run inside the write transaction, after the insert and before `created`."""

    async def update(self, data: dict, options: QueryOptions | Mapping | None = None) -> int:
        options = QueryOptions.coerce(options).copy()
        with self._record_errors("update"):
            await self.complete_references(data, clean=False, transaction=options.transaction_handle())
            await self.validate_for_update(data, options.where)
            async with self.transaction_scope(options, required=self.transaction_required) as scoped:
                await self.emit(LifecycleEvent.UPDATING, scoped.emit_event, data, scoped)
                count = await self._require_storage().update(data, scoped)
                await self.emit(LifecycleEvent.UPDATED, scoped.emit_event, count, data, scoped)
        return count

    async def update_for(
        self, data: dict, where: Mapping[str, Any], options: QueryOptions | Mapping | None = None,
    ) -> int:
        return await self.update(data, QueryOptions.coerce(options).with_where(where))

    async def delete(self, options: QueryOptions | Mapping | None = None) -> int:
        options = QueryOptions.coerce(options).copy()
        with self._record_errors("delete"):
            await self.complete_references(options.where, clean=True, transaction=options.transaction_handle())
            async with self.transaction_scope(options, required=self.transaction_required) as scoped:
                await self.emit(LifecycleEvent.DELETING, scoped.emit_event, scoped)
                count = await self._require_storage().destroy(scoped)
                await self.emit(LifecycleEvent.DELETED, scoped.emit_event, count, scoped)
        return count

    async def delete_for(
        self, where: Mapping[str, Any], options: QueryOptions | Mapping | None = None,
    ) -> int:
        return await self.delete(QueryOptions.coerce(options).with_where(where))

    # ─── Reads ───────────────────────────────────────────────────────

    async def get_list_options(self, options: QueryOptions) -> QueryOptions:
        """Innermost list-option layer: search and default view projection."""
        apply_view(options, list(self.view_attributes or self.default_view_attributes))
        apply_search(options, self.search_columns)
        return options

    async def get_list(self, options: QueryOptions | Mapping | None = None) -> list[Row] | dict:
        options = QueryOptions.coerce(options).copy()
        with self._record_errors("get_list"):
            options = await self.get_list_options(options)
            await self.emit(LifecycleEvent.GETTING, options.emit_event, options)
            storage = self._require_storage()
            if options.with_count:
                result = await storage.find_and_count_all(options)
            else:
                result = await storage.find_all(options)
            await self.emit(LifecycleEvent.GETTED, options.emit_event, result, options)
        return result

    async def get_list_and_count(self, options: QueryOptions | Mapping | None = None) -> dict:
        return await self.get_list(QueryOptions.coerce(options).copy(with_count=True))

    async def get_single_from_rows(
        self, rows: Any, options: QueryOptions | Mapping | None = None,
    ) -> Row | None:
        """Exactly one row, else NoRowsError/ManyRowsError unless skipped in options."""
        options = QueryOptions.coerce(options)
        if inspect.isawaitable(rows):
            rows = await rows
        if isinstance(rows, Mapping):
            rows = rows["rows"]

        with self._record_errors("get_single"):
            if len(rows) == 1:
                return rows[0]
            if not rows:
                if options.skip_no_rows_error:
                    return None
                raise NoRowsError()
            if options.skip_many_rows_error:
                return rows[0]
            raise ManyRowsError(len(rows))

    async def get_for(
        self, where: Mapping[str, Any], options: QueryOptions | Mapping | None = None,
    ) -> list[Row] | dict:
        return await self.get_list(QueryOptions.coerce(options).with_where(where))

    async def get_single(self, options: QueryOptions | Mapping | None = None) -> Row | None:
        options = QueryOptions.coerce(options)
        limit = options.limit if options.limit is not None else 2
        rows = await self.get_list(options.copy(with_count=False, limit=limit))
        return await self.get_single_from_rows(rows, options)

    async def get_single_for(
        self, where: Mapping[str, Any], options: QueryOptions | Mapping | None = None,
    ) -> Row | None:
        return await self.get_single(QueryOptions.coerce(options).with_where(where))

    async def count(self, options: QueryOptions | Mapping | None = None) -> int:
        options = QueryOptions.coerce(options).copy()
        with self._record_errors("count"):
            options = await self.get_list_options(options)
            return await self._require_storage().count(options)

    async def count_for(
        self, where: Mapping[str, Any], options: QueryOptions | Mapping | None = None,
    ) -> int:
        return await self.count(QueryOptions.coerce(options).with_where(where))

    # ─── Keyed Accessors (used by capability layers) ─────────────────

    async def _get_for_column(
        self, column: str, value: Any, options: QueryOptions | Mapping | None = None,
    ) -> Any:
        """A list for a list of keys, otherwise a single row."""
        options = QueryOptions.coerce(options)
        if value is None:
            raise InvalidValueError(f"Invalid value for {column} to get row.")
        if isinstance(value, (list, tuple, set)):
            return await self.get_list(options.with_where({column: list(value)}))
        return await self.get_single_for({column: value}, options)

    async def _get_id_for_column(
        self, column: str, value: Any, options: QueryOptions | Mapping | None = None,
    ) -> Any:
        options = QueryOptions.coerce(options)
        if options.attributes is None:
            options = options.copy(attributes=["id"])
        result = await self._get_for_column(column, value, options)
        if isinstance(result, Mapping) and "rows" in result:
            result = result["rows"]
        if isinstance(result, list):
            return [row["id"] for row in result]
        return result["id"] if result else None
