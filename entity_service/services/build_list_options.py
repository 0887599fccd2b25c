"""List-Option Builder — predicates and projections contributed by active capabilities.

Invariants:
    - Search builds OR(column ILIKE %q%) over every searchable column, ANDed with existing filters
    - Search without searchable columns raises ConfigurationError (never silently ignored)
    - The default view projection applies only when the caller gave no explicit attributes
    - The owner-module predicate accepts rows with no module or an enabled module

Design Decisions:
    - Pure functions over QueryOptions: each capability layer calls the helper for its own
      contribution, the base layer applies search and view last (innermost)
"""

from entity_service.core.errors import ConfigurationError
from entity_service.core.query import (
    Eq, IsNull, Like, QueryOptions, Related, any_of,
)


def contribute(columns: list[str], *names: str) -> None:
    """Add columns to a capability-accumulated list, keeping first-seen order."""
    for name in names:
        if name not in columns:
            columns.append(name)


def search_predicate(q: str, search_columns: list[str]):
    if not search_columns:
        raise ConfigurationError(
            "Search requested but no searchable columns are registered.",
        )
    pattern = f"%{q}%"
    return any_of(*(Like(column, pattern) for column in search_columns))


def apply_search(options: QueryOptions, search_columns: list[str]) -> QueryOptions:
    if options.q:
        options.filters.append(search_predicate(options.q, search_columns))
    return options


def apply_view(options: QueryOptions, view_attributes: list[str]) -> QueryOptions:
    if options.view and options.attributes is None and view_attributes:
        options.attributes = list(view_attributes)
    return options


def apply_enabled_filter(options: QueryOptions) -> QueryOptions:
    if options.is_enabled is not None:
        options.where["is_enabled"] = options.is_enabled
    return options


def owner_module_clause(
    relation: str = "owner_module", foreign_key: str = "owner_module_id",
):
    return any_of(
        IsNull(foreign_key),
        Related(relation, Eq("is_enabled", True)),
    )


def apply_owner_module_filter(
    options: QueryOptions,
    relation: str = "owner_module",
    foreign_key: str = "owner_module_id",
) -> QueryOptions:
    if options.is_enabled is not None:
        options.filters.append(owner_module_clause(relation, foreign_key))
    return options
