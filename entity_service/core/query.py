"""Query Options — the single per-call options value and its predicate algebra.

Invariants:
    - Operations never mutate a caller's QueryOptions: they work on copy()
    - `where` shorthand: scalar -> equality, list/tuple -> IN, None -> IS NULL
    - `filters` are ANDed with `where`; storages evaluate both through where_clause()
    - Merging an explicit filter into `where` lets the explicit filter win

Design Decisions:
    - Dataclass over free-form dict: every option a layer may read is named and typed
    - Storage-agnostic predicates (frozen dataclasses): SQLAlchemy and memory storages
      each evaluate the same algebra, the core never builds raw queries
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping


# ─── Predicates ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Eq:
    column: str
    value: Any


@dataclass(frozen=True)
class In:
    column: str
    values: tuple


@dataclass(frozen=True)
class IsNull:
    column: str


@dataclass(frozen=True)
class Like:
    """Case-insensitive pattern match; `%` any run, `_` one character."""
    column: str
    pattern: str


@dataclass(frozen=True)
class AnyOf:
    clauses: tuple


@dataclass(frozen=True)
class AllOf:
    clauses: tuple


@dataclass(frozen=True)
class Not:
    clause: Any


@dataclass(frozen=True)
class Related:
    """Predicate over the row reached through a many-to-one relation (false if empty)."""
    relation: str
    clause: Any


Predicate = Eq | In | IsNull | Like | AnyOf | AllOf | Not | Related


def any_of(*clauses) -> AnyOf:
    return AnyOf(tuple(clauses))


def all_of(*clauses) -> AllOf:
    return AllOf(tuple(clauses))


def column_clause(column: str, value: Any) -> Predicate:
    """Translate one `where` entry into a predicate."""
    if value is None:
        return IsNull(column)
    if isinstance(value, (list, tuple, set, frozenset)):
        return In(column, tuple(value))
    return Eq(column, value)


def where_clause(where: Mapping[str, Any] | None, filters=()) -> AllOf:
    """Combine a where mapping and extra predicates into one conjunction."""
    clauses = [column_clause(column, value) for column, value in (where or {}).items()]
    clauses.extend(filters)
    return AllOf(tuple(clauses))


# ─── Options ─────────────────────────────────────────────────────

@dataclass
class QueryOptions:
    """Options for every service operation (list, single, count, write)."""
    where: dict[str, Any] = field(default_factory=dict)
    filters: list = field(default_factory=list)
    attributes: list[str] | None = None
    include: dict[str, list[str] | None] = field(default_factory=dict)
    order: list[tuple[str, str]] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None

    # List-option builder inputs
    q: str | None = None
    view: bool = False
    is_enabled: bool | None = None
    with_count: bool = False

    # Translation overlay
    translate: bool | None = None
    loc: Any = None
    keep_translatable_flag: bool = False

    # Writes and lifecycle
    transaction: Any = None
    emit_event: bool = True

    # Single-row lookups
    skip_no_rows_error: bool = False
    skip_many_rows_error: bool = False

    @classmethod
    def coerce(cls, options: "QueryOptions | Mapping[str, Any] | None") -> "QueryOptions":
        """Accept None, a QueryOptions, or a mapping of option names."""
        if options is None:
            return cls()
        if isinstance(options, QueryOptions):
            return options
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise TypeError(f"Unknown query options: {', '.join(sorted(unknown))}")
        return cls(**dict(options))

    def copy(self, **changes: Any) -> "QueryOptions":
        """Independent copy: where/filters/include/order can be mutated freely."""
        copied = replace(
            self,
            where=dict(self.where),
            filters=list(self.filters),
            include=dict(self.include),
            order=list(self.order),
        )
        return replace(copied, **changes) if changes else copied

    def with_where(self, where: Mapping[str, Any]) -> "QueryOptions":
        """Copy with an explicit filter merged over the existing one."""
        return self.copy(where={**self.where, **where})

    def transaction_handle(self) -> Any:
        """The opened transaction carried by these options, if any."""
        if self.transaction is None or isinstance(self.transaction, bool):
            return None
        return self.transaction
