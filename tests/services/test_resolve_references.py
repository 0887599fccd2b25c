"""Reference Resolver — verifies id completion from uuid, name, nested object and fallbacks.

Tests cover:
    - key derivation and declaration shorthands
    - lookup order and which lookups suppress NoRowsError
    - idempotence and conditional cleaning
    - create-if-absent, single and multi-valued
    - capability-based lookup selection and custom resolvers
"""

import pytest

from entity_service.core.errors import ConfigurationError, NoRowsError
from entity_service.services.resolve_references import Reference, camel_case


@pytest.fixture
async def owners(make_service, deps):
    service = make_service("id", "uuid", "name", table="owners")
    deps.add_static("owners", service)
    await service.create({"name": "first"})
    await service.create({"name": "acme"})
    return service


@pytest.fixture
def make_items(make_service):
    def factory(**declaration):
        return make_service(
            table="items",
            extra_columns=["owner_id", "owner_name"],
            references={"owner": {"target": "owners", **declaration}},
        )
    return factory


# --- declarations -------------------------------------------------------------

def test_camel_case():
    assert camel_case("owner_module") == "OwnerModule"
    assert camel_case("owner") == "Owner"


def test_derived_keys():
    reference = Reference(field_name="owner_module")
    assert reference.id_key == "owner_module_id"
    assert reference.uuid_key == "owner_module_uuid"
    assert reference.object_key == "OwnerModule"


def test_explicit_keys_override_derived():
    reference = Reference(
        field_name="owner", id_property_name="user_id",
        uuid_property_name="user_uuid", object_name="User",
    )
    assert (reference.id_key, reference.uuid_key, reference.object_key) == ("user_id", "user_uuid", "User")


def test_coerce_shorthands():
    assert Reference.coerce("owner", "owners") == Reference(field_name="owner", target="owners")
    assert Reference.coerce("owner", {"target": "owners", "clean": False}).clean is False
    declared = Reference(target="owners")
    assert Reference.coerce("owner", declared).field_name == "owner"


# --- lookups ------------------------------------------------------------------

async def test_plain_name_resolves_and_cleans(owners, make_items):
    items = make_items()
    data = await items.complete_references({"owner": "acme"}, clean=True)
    assert data == {"owner_id": 2}


async def test_uuid_resolves(owners, make_items):
    acme = await owners.get_single_for_name("acme")
    items = make_items()
    data = await items.complete_references({"owner_uuid": acme["uuid"]}, clean=True)
    assert data == {"owner_id": acme["id"]}


async def test_nested_object_id_used_directly(owners, make_items):
    items = make_items()
    data = await items.complete_references({"Owner": {"id": 5}}, clean=True)
    assert data == {"owner_id": 5}


async def test_nested_object_name_resolves(owners, make_items):
    items = make_items()
    data = await items.complete_references({"Owner": {"name": "first"}}, clean=True)
    assert data == {"owner_id": 1}


async def test_missing_plain_name_is_suppressed(owners, make_items):
    items = make_items()
    data = await items.complete_references({"owner": "ghost"}, clean=True)
    assert data == {"owner": "ghost"}


async def test_missing_nested_name_is_not_suppressed(owners, make_items):
    items = make_items()
    with pytest.raises(NoRowsError):
        await items.complete_references({"Owner": {"name": "ghost"}}, clean=True)


async def test_alternate_name_field(owners, make_items):
    items = make_items(other_name="owner_name")
    data = await items.complete_references({"owner_name": "acme"}, clean=True)
    assert data["owner_id"] == 2


async def test_clean_false_keeps_identifying_keys(owners, make_items):
    items = make_items()
    data = await items.complete_references({"owner": "acme"}, clean=False)
    assert data == {"owner": "acme", "owner_id": 2}


async def test_reference_without_clean_flag_keeps_keys(owners, make_items):
    items = make_items(clean=False)
    data = await items.complete_references({"owner": "acme"}, clean=True)
    assert data == {"owner": "acme", "owner_id": 2}


# --- idempotence --------------------------------------------------------------

async def test_populated_id_is_left_alone(owners, make_items):
    items = make_items()
    data = await items.complete_references({"owner_id": 7, "owner": "acme"})
    assert data == {"owner_id": 7, "owner": "acme"}


async def test_second_pass_is_a_no_op(owners, make_items):
    items = make_items()
    data = await items.complete_references({"owner": "acme"}, clean=True)
    again = await items.complete_references(dict(data), clean=True)
    assert again == data


async def test_populated_id_never_resolves_target(make_service):
    items = make_service(
        table="items", extra_columns=["ghost_id"],
        references={"ghost": "not_registered"},
    )
    data = await items.complete_references({"ghost_id": 1})
    assert data == {"ghost_id": 1}


# --- create if absent ---------------------------------------------------------

async def test_create_if_not_exists_creates_referent(owners, make_items):
    items = make_items(create_if_not_exists=True)
    data = await items.complete_references({"owner": "newco"}, clean=True)
    created = await owners.get_single_for_name("newco")
    assert data == {"owner_id": created["id"]}


async def test_create_if_not_exists_reuses_existing(owners, make_items):
    items = make_items(create_if_not_exists=True)
    await items.complete_references({"Owner": "acme"}, clean=True)
    assert await owners.count() == 2


async def test_create_if_not_exists_multi_valued(owners, make_items):
    items = make_items(create_if_not_exists=True)
    data = await items.complete_references({"Owner": ["x", "acme", "y"]}, clean=True)
    assert data["owner_id"][1] == 2
    assert await owners.count() == 4
    assert "Owner" not in data


async def test_create_needs_name_capability(make_service, deps):
    plain = make_service("id", table="plain")
    deps.add_static("plain", plain)
    items = make_service(
        table="items", extra_columns=["plain_id"],
        references={"plain": {"target": "plain", "create_if_not_exists": True}},
    )
    with pytest.raises(ConfigurationError, match="cannot create by name"):
        await items.complete_references({"plain": "x"})


async def test_no_input_leaves_target_unresolved(make_service):
    items = make_service(
        table="items", extra_columns=["ghost_id"], references={"ghost": "unregistered_service"},
    )
    assert await items.complete_references({"name": "x"}, clean=True) == {"name": "x"}


# --- lookup selection ---------------------------------------------------------

async def test_target_without_uuid_ignores_uuid_input(make_service, deps):
    named = make_service("id", "name", table="named")
    deps.add_static("named", named)
    items = make_service(
        table="items", extra_columns=["named_id"], references={"named": "named"},
    )
    data = await items.complete_references({"named_uuid": "whatever"}, clean=True)
    assert "named_id" not in data


async def test_custom_name_lookup(owners, make_items):
    async def by_title(value, options=None):
        return 99

    owners.lookup_by_title = by_title
    items = make_items(name_lookup="lookup_by_title")
    data = await items.complete_references({"owner": "anything"}, clean=True)
    assert data == {"owner_id": 99}


async def test_missing_custom_name_lookup_is_configuration_error(owners, make_items):
    items = make_items(name_lookup="absent_lookup")
    with pytest.raises(ConfigurationError, match="absent_lookup"):
        await items.complete_references({"owner": "acme"})


async def test_custom_resolver_replaces_algorithm(make_service):
    async def resolver(data):
        data["tag_id"] = len(data.pop("tag"))

    items = make_service(
        table="items", extra_columns=["tag_id"],
        references={"tag": {"resolver": resolver}},
    )
    data = await items.complete_references({"tag": "abc"})
    assert data == {"tag_id": 3}
