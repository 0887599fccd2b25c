"""Boundary Protocols — contracts between the service core and its collaborators.

Invariants:
    - Core NEVER imports from infrastructure — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by the shell (infrastructure/ or the host application)

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Storage takes QueryOptions, never raw queries: the core only describes what it wants
    - Locale.translate may be sync or async: the overlay awaits awaitables only
"""

from typing import Any, Awaitable, Protocol

from entity_service.core.domain_types import Row
from entity_service.core.query import QueryOptions


class Transaction(Protocol):
    """Scoped unit of work; only its opener commits or rolls back."""
    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


class Storage(Protocol):
    """Contract for row persistence over one opaque model handle."""
    async def create(self, data: dict, options: QueryOptions) -> Row: ...
    async def find_all(self, options: QueryOptions) -> list[Row]: ...
    async def find_and_count_all(self, options: QueryOptions) -> dict: ...
    async def count(self, options: QueryOptions) -> int: ...
    async def update(self, data: dict, options: QueryOptions) -> int: ...
    async def destroy(self, options: QueryOptions) -> int: ...
    async def transaction(self) -> Transaction: ...


class Locale(Protocol):
    """Contract for localized string lookup keyed by (context, text).

    A `language` attribute is optional; when present it keys the translation cache.
    """

    def translate(self, context: str | None, text: str) -> str | Awaitable[str]: ...


class EventChannel(Protocol):
    """Contract for lifecycle notification fan-out."""
    async def publish(self, name: str, *args: Any) -> list: ...


class SharingService(Protocol):
    """Contract for collaborator links between users and shared entities."""
    async def create(self, data: dict, options: Any = None) -> Row: ...
    async def delete_for_entity(
        self, entity: str, ids: list, options: Any = None,
    ) -> int: ...
