"""Memory Storage — in-process Storage implementation with undo-journal transactions.

Invariants:
    - Evaluates the same predicate algebra as SqlAlchemyStorage (Like is case-insensitive)
    - Unknown columns or relations raise ConfigurationError before any row is looked at
    - Rows handed out are copies: callers never mutate stored state
    - Writes under a MemoryTransaction are journaled; rollback restores the exact prior state,
      commit discards the journal
    - Autoincrement ids are never reused, even after rollback

Design Decisions:
    - One MemoryDatabase shared by several storages: Related predicates and includes
      follow a foreign key into another storage of the same database
    - Every call yields to the event loop once, so interleavings match a real driver
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable

from entity_service.core.domain_types import Row
from entity_service.core.errors import ConfigurationError
from entity_service.core.query import (
    AllOf, AnyOf, Eq, In, IsNull, Like, Not, QueryOptions, Related, where_clause,
)


class MemoryDatabase:
    """Tables and id sequences shared by the storages that use it."""

    def __init__(self):
        self.tables: dict[str, list[Row]] = {}
        self.sequences: dict[str, int] = {}

    def table(self, name: str) -> list[Row]:
        return self.tables.setdefault(name, [])

    def next_id(self, name: str) -> int:
        self.sequences[name] = self.sequences.get(name, 0) + 1
        return self.sequences[name]


class MemoryTransaction:
    """Undo journal for writes made through it."""

    def __init__(self):
        self._undo: list[Callable[[], None]] = []
        self.is_active = True

    def record(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    async def commit(self) -> None:
        self._undo.clear()
        self.is_active = False

    async def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self.is_active = False


@dataclass
class Relation:
    """Many-to-one link: row[foreign_key] -> storage row with that id."""
    storage: "MemoryStorage"
    foreign_key: str


def _like_regex(pattern: str) -> re.Pattern:
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _remove_identical(rows: list[Row], row: Row) -> None:
    for index, candidate in enumerate(rows):
        if candidate is row:
            del rows[index]
            return


def _sort_key(column: str):
    def key(row: Row):
        value = row.get(column)
        return (value is None, 0 if value is None else value)
    return key


class MemoryStorage:
    """Storage over one named table of a MemoryDatabase."""

    def __init__(
        self,
        name: str,
        columns: list[str],
        database: MemoryDatabase | None = None,
        defaults: dict[str, Any] | None = None,
        relations: dict[str, Relation] | None = None,
    ):
        self.name = name
        self.columns = list(columns)
        self.database = database or MemoryDatabase()
        self.defaults = dict(defaults or {})
        self.relations = dict(relations or {})

    @property
    def rows(self) -> list[Row]:
        return self.database.table(self.name)

    async def transaction(self) -> MemoryTransaction:
        return MemoryTransaction()

    # ─── Evaluation ──────────────────────────────────────────────────

    def _check_column(self, column: str) -> None:
        if column not in self.columns:
            raise ConfigurationError(f"Unknown column {column!r} on {self.name}.")

    def _relation(self, relation: str) -> Relation:
        link = self.relations.get(relation)
        if link is None:
            raise ConfigurationError(f"Unknown relation {relation!r} on {self.name}.")
        return link

    def validate(self, predicate: Any) -> None:
        """Check every column and relation a predicate names, whether or not rows exist."""
        if isinstance(predicate, (Eq, In, IsNull, Like)):
            self._check_column(predicate.column)
        elif isinstance(predicate, (AllOf, AnyOf)):
            for clause in predicate.clauses:
                self.validate(clause)
        elif isinstance(predicate, Not):
            self.validate(predicate.clause)
        elif isinstance(predicate, Related):
            self._relation(predicate.relation).storage.validate(predicate.clause)
        else:
            raise ConfigurationError(f"Unsupported predicate {predicate!r}.")

    def _predicate(self, options: QueryOptions) -> AllOf:
        predicate = where_clause(options.where, options.filters)
        self.validate(predicate)
        return predicate

    def _related(self, row: Row, relation: str) -> Row | None:
        link = self._relation(relation)
        key = row.get(link.foreign_key)
        if key is None:
            return None
        return next((r for r in link.storage.rows if r.get("id") == key), None)

    def matches(self, row: Row, predicate: Any) -> bool:
        if isinstance(predicate, Eq):
            return row.get(predicate.column) == predicate.value
        if isinstance(predicate, In):
            return row.get(predicate.column) in predicate.values
        if isinstance(predicate, IsNull):
            return row.get(predicate.column) is None
        if isinstance(predicate, Like):
            value = row.get(predicate.column)
            return value is not None and bool(_like_regex(predicate.pattern).fullmatch(str(value)))
        if isinstance(predicate, AllOf):
            return all(self.matches(row, clause) for clause in predicate.clauses)
        if isinstance(predicate, AnyOf):
            return any(self.matches(row, clause) for clause in predicate.clauses)
        if isinstance(predicate, Not):
            return not self.matches(row, predicate.clause)
        if isinstance(predicate, Related):
            related = self._related(row, predicate.relation)
            storage = self._relation(predicate.relation).storage
            return related is not None and storage.matches(related, predicate.clause)
        raise ConfigurationError(f"Unsupported predicate {predicate!r}.")

    def _select(self, options: QueryOptions) -> list[Row]:
        predicate = self._predicate(options)
        for column, _ in options.order:
            self._check_column(column)
        for column in options.attributes or ():
            self._check_column(column)
        for relation in options.include:
            self._relation(relation)
        selected = [row for row in self.rows if self.matches(row, predicate)]
        for column, direction in reversed(options.order):
            selected.sort(
                key=_sort_key(column),
                reverse=direction.lower() == "desc",
            )
        start = options.offset or 0
        end = start + options.limit if options.limit is not None else None
        return selected[start:end]

    def _project(self, row: Row, attributes: list[str] | None, include: dict) -> Row:
        names = attributes if attributes is not None else self.columns
        for name in names:
            self._check_column(name)
        projected = {name: row.get(name) for name in names}
        for relation, related_attributes in include.items():
            related = self._related(row, relation)
            if related is None:
                projected[relation] = None
            else:
                storage = self.relations[relation].storage
                projected[relation] = storage._project(related, related_attributes, {})
        return projected

    # ─── Storage Protocol ────────────────────────────────────────────

    async def create(self, data: dict, options: QueryOptions) -> Row:
        await asyncio.sleep(0)
        row = {column: None for column in self.columns}
        row.update((key, value) for key, value in self.defaults.items() if key in self.columns)
        row.update((key, value) for key, value in data.items() if key in self.columns)
        if "id" in self.columns and row.get("id") is None:
            row["id"] = self.database.next_id(self.name)
        self.rows.append(row)

        transaction = options.transaction_handle()
        if isinstance(transaction, MemoryTransaction):
            transaction.record(lambda: _remove_identical(self.rows, row))
        return dict(row)

    async def find_all(self, options: QueryOptions) -> list[Row]:
        await asyncio.sleep(0)
        return [self._project(row, options.attributes, options.include) for row in self._select(options)]

    async def count(self, options: QueryOptions) -> int:
        await asyncio.sleep(0)
        predicate = self._predicate(options)
        return sum(1 for row in self.rows if self.matches(row, predicate))

    async def find_and_count_all(self, options: QueryOptions) -> dict:
        rows = await self.find_all(options)
        return {"rows": rows, "count": await self.count(options)}

    async def update(self, data: dict, options: QueryOptions) -> int:
        await asyncio.sleep(0)
        values = {key: value for key, value in data.items() if key in self.columns}
        predicate = self._predicate(options)
        matched = [row for row in self.rows if self.matches(row, predicate)]
        transaction = options.transaction_handle()
        for row in matched:
            if isinstance(transaction, MemoryTransaction):
                previous = dict(row)
                transaction.record(lambda row=row, previous=previous: (row.clear(), row.update(previous)))
            row.update(values)
        return len(matched)

    async def destroy(self, options: QueryOptions) -> int:
        await asyncio.sleep(0)
        predicate = self._predicate(options)
        rows = self.rows
        removed = [(index, row) for index, row in enumerate(rows) if self.matches(row, predicate)]
        for index, row in reversed(removed):
            del rows[index]

        transaction = options.transaction_handle()
        if isinstance(transaction, MemoryTransaction) and removed:
            def restore():
                for index, row in removed:
                    rows.insert(index, row)
            transaction.record(restore)
        return len(removed)
