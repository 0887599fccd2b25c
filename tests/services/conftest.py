"""Service test fixtures — memory storages, event bus, locale and composed service factory.

Invariants:
    - Every test gets a fresh MemoryDatabase and DependencyRegistry
    - make_service builds a NEW subclass per call: no singleton or column state leaks
      between tests even though composed classes are memoized by the registry

Design Decisions:
    - MemoryStorage instead of SQLite for service tests: same predicate algebra,
      transactions via undo journal, no engine lifecycle per test
"""

import pytest

from entity_service.core.dependency import DependencyRegistry
from entity_service.infrastructure.event_bus import EventBus
from entity_service.infrastructure.memory_storage import MemoryDatabase, MemoryStorage, Relation
from entity_service.services.capability_registry import compose

ENTITY_COLUMNS = [
    "id", "uuid", "name", "title", "description", "is_enabled",
    "is_translatable", "translation_context", "owner_module_id",
]

ENTITY_DEFAULTS = {"is_enabled": True, "is_translatable": False}


class FakeLocale:
    """Dictionary-backed locale recording every lookup."""

    def __init__(self, language: str = "es", catalogue: dict | None = None):
        self.language = language
        self.catalogue = catalogue or {}
        self.calls: list[tuple] = []

    def translate(self, context, text):
        self.calls.append((context, text))
        return self.catalogue.get((context, text), text)


@pytest.fixture
def database():
    return MemoryDatabase()


@pytest.fixture
def deps():
    return DependencyRegistry()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def make_storage(database):
    def factory(table, columns=None, defaults=None, relations=None):
        return MemoryStorage(
            table,
            columns or ENTITY_COLUMNS,
            database,
            defaults=ENTITY_DEFAULTS if defaults is None else defaults,
            relations=relations,
        )
    return factory


@pytest.fixture
def make_service(make_storage, deps):
    """Instance of a fresh subclass of compose(*tags) wired to a memory table."""
    def factory(*tags, table="items", columns=None, extra_columns=(), relations=None, **attributes):
        composed = compose(*tags)
        columns = list(columns or ENTITY_COLUMNS) + list(extra_columns)
        storage = attributes.pop("storage", None) or make_storage(table, columns, relations=relations)
        namespace = {"storage": storage, "dependencies": deps, **attributes}
        service_class = type(f"{table.title()}Service", (composed,), namespace)
        return service_class()
    return factory


@pytest.fixture
def module_service(make_service, deps):
    service = make_service("id", "name", "enabled", table="modules")
    deps.add_static("module_service", service)
    return service


@pytest.fixture
def owner_relation(module_service):
    return {"owner_module": Relation(module_service.storage, "owner_module_id")}


@pytest.fixture
def locale():
    return FakeLocale("es", {("widget", "Save"): "Guardar", ("widget", "Cancel"): "Cancelar"})


@pytest.fixture
def make_locale():
    return FakeLocale
