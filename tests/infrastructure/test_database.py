"""SQLAlchemy Storage — verifies the Storage contract against a temporary SQLite file.

Tests cover:
    - composed services running unchanged on SqlAlchemyStorage
    - predicate compilation: ilike search, IN, relation predicates
    - includes projected as nested dicts
    - transactions: commit, rollback, inherited session
    - error mapping and configuration errors

Design Decisions:
    - File database under tmp_path (not :memory:): every session sees the same data
      without sharing one connection between transactions
"""

import pytest
from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entity_service.config import Settings
from entity_service.core.dependency import DependencyRegistry
from entity_service.core.errors import ConfigurationError, DatabaseError, IntegrityViolationError
from entity_service.core.query import Eq, QueryOptions, Related
from entity_service.db.base import Base
from entity_service.infrastructure.database import (
    DatabaseSessionManager, SqlAlchemyStorage, SqlAlchemyTransaction,
)
from entity_service.infrastructure.event_bus import EventBus
from entity_service.services.capability_registry import compose


class ModuleModel(Base):
    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class WidgetModel(Base):
    __tablename__ = "widgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    owner_module_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("modules.id"), nullable=True,
    )

    owner_module: Mapped[ModuleModel | None] = relationship()


@pytest.fixture
async def manager(tmp_path):
    manager = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'entities.db'}")
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield manager
    await manager.dispose()


@pytest.fixture
def deps():
    return DependencyRegistry()


@pytest.fixture
def modules(manager, deps):
    service_class = type("ModuleService", (compose("id", "name", "enabled"),), {
        "storage": SqlAlchemyStorage(ModuleModel, manager),
        "dependencies": deps,
    })
    service = service_class()
    deps.add_static("module_service", service)
    return service


@pytest.fixture
def widgets(manager, deps, modules):
    service_class = type(
        "WidgetService",
        (compose("id", "uuid", "name", "description", "enabled", "owner_module"),),
        {"storage": SqlAlchemyStorage(WidgetModel, manager), "dependencies": deps},
    )
    return service_class()


# --- CRUD ---------------------------------------------------------------------

async def test_create_and_read_back(widgets):
    row = await widgets.create({"name": "chart", "description": "Bar chart"})
    assert row["id"] == 1
    assert row["is_enabled"] is True
    fetched = await widgets.get_single_for_uuid(row["uuid"])
    assert fetched["name"] == "chart"


async def test_update_and_delete_report_counts(widgets):
    await widgets.create({"name": "a"})
    await widgets.create({"name": "b"})
    assert await widgets.update_for({"description": "x"}, {"name": ["a", "b"]}) == 2
    assert await widgets.delete_for_name("a") == 1
    assert await widgets.count() == 1


async def test_search_is_case_insensitive(widgets):
    await widgets.create({"name": "chart", "description": "Quarterly REVENUE"})
    await widgets.create({"name": "grid", "description": "Raw data"})
    rows = await widgets.get_list({"q": "revenue", "attributes": ["name"]})
    assert rows == [{"name": "chart"}]


async def test_order_limit_offset(widgets):
    for name in ("c", "a", "b"):
        await widgets.create({"name": name})
    rows = await widgets.get_list({"order": [("name", "asc")], "limit": 2, "offset": 1})
    assert [r["name"] for r in rows] == ["b", "c"]


async def test_counted_list(widgets):
    for name in ("a", "b", "c"):
        await widgets.create({"name": name})
    result = await widgets.get_list_and_count({"limit": 1})
    assert result["count"] == 3
    assert len(result["rows"]) == 1


# --- relations ----------------------------------------------------------------

async def test_owner_module_filter_uses_relation(widgets, modules):
    await widgets.create({"name": "chart", "owner_module": "reports"})
    await widgets.create({"name": "orphan"})
    await modules.disable_for_name("reports")

    rows = await widgets.get_list({"is_enabled": True})
    assert [r["name"] for r in rows] == ["orphan"]


async def test_related_predicate(widgets):
    await widgets.create({"name": "chart", "owner_module": "reports"})
    await widgets.create({"name": "grid", "owner_module": "tables"})
    storage = widgets.storage
    rows = await storage.find_all(QueryOptions(
        filters=[Related("owner_module", Eq("name", "tables"))], attributes=["name"],
    ))
    assert rows == [{"name": "grid"}]


async def test_include_projects_nested_row(widgets):
    await widgets.create({"name": "chart", "owner_module": "reports"})
    row = await widgets.get_single_for_name("chart", {"include": {"owner_module": ["name"]}})
    assert row["owner_module"] == {"name": "reports"}


# --- transactions -------------------------------------------------------------

async def test_rollback_discards_writes(widgets):
    transaction = await widgets.create_transaction()
    assert isinstance(transaction, SqlAlchemyTransaction)
    await widgets.create({"name": "temp"}, {"transaction": transaction})
    await transaction.rollback()
    assert await widgets.count() == 0


async def test_commit_persists_writes(widgets):
    transaction = await widgets.create_transaction()
    await widgets.create({"name": "kept"}, {"transaction": transaction})
    await transaction.commit()
    assert await widgets.count() == 1


async def test_owned_transaction_rolls_back_on_failure(widgets):
    class Boom(Exception):
        pass

    async def explode(*args):
        raise Boom()

    bus = EventBus()
    bus.subscribe("widgets.created", explode)
    widgets.event_channel = bus
    widgets.event_name = "widgets"

    with pytest.raises(Boom):
        await widgets.create({"name": "temp"}, {"transaction": True})
    assert await widgets.count() == 0


# --- errors -------------------------------------------------------------------

async def test_integrity_error_is_database_error(widgets):
    storage = widgets.storage
    await storage.create({"name": "dup", "uuid": "u-1"}, QueryOptions())
    with pytest.raises(IntegrityViolationError, match="Integrity") as excinfo:
        await storage.create({"name": "dup", "uuid": "u-2"}, QueryOptions())
    assert isinstance(excinfo.value, DatabaseError)
    assert excinfo.value.code == "INTEGRITY_VIOLATION"


async def test_unknown_column_is_configuration_error(widgets):
    with pytest.raises(ConfigurationError, match="colour"):
        await widgets.get_list({"where": {"colour": "red"}})


async def test_unknown_payload_keys_are_ignored(widgets):
    row = await widgets.create({"name": "chart", "colour": "red"})
    assert "colour" not in row


async def test_health_check(manager):
    assert await manager.health_check() is True


async def test_manager_from_settings(tmp_path):
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'configured.db'}")
    manager = DatabaseSessionManager.from_settings(settings)
    try:
        assert await manager.health_check() is True
    finally:
        await manager.dispose()
