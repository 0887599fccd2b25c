"""Reference Resolver — fills a foreign-entity id from id/uuid/name/nested-object input.

Invariants:
    - An already populated id property is never touched (idempotent)
    - The target service is only resolved when some identifying input is present
    - Lookup order: uuid property, plain name field, nested object (id, uuid, name),
      alternate name field, then create-if-absent
    - Plain-field and alternate-field name lookups suppress NoRowsError;
      the nested-object name lookup does NOT
    - Cleaning removes uuid/name/nested keys only when the id property ended up populated
    - Lookup support is decided from the target's capability set, never by probing methods

Design Decisions:
    - Reference as dataclass with derived key names: declared once per service,
      normalized by Reference.coerce from shorthand declarations
    - Create-if-absent requires the Name capability on the target (ConfigurationError otherwise)
"""

from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Mapping

from entity_service.core.domain_types import Capability
from entity_service.core.errors import ConfigurationError
from entity_service.core.query import QueryOptions


def camel_case(name: str) -> str:
    """owner_module -> OwnerModule (nested-object key for a reference)."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def _is_set(value: Any) -> bool:
    return value is not None and value != "" and value != []


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


@dataclass
class Reference:
    """Declaration of one foreign-entity reference field."""
    field_name: str = ""
    target: Any = None
    id_property_name: str | None = None
    uuid_property_name: str | None = None
    object_name: str | None = None
    other_name: str | None = None
    create_if_not_exists: bool = False
    name_lookup: str | None = None
    clean: bool = True
    resolver: Callable[[dict], Awaitable[Any]] | None = None

    @classmethod
    def coerce(cls, field_name: str, declaration: Any) -> "Reference":
        """Accept a Reference, a mapping of its fields, or a bare target."""
        if isinstance(declaration, Reference):
            return replace(declaration, field_name=declaration.field_name or field_name)
        if isinstance(declaration, Mapping):
            return cls(**{"field_name": field_name, **declaration})
        return cls(field_name=field_name, target=declaration)

    @property
    def id_key(self) -> str:
        return self.id_property_name or f"{self.field_name}_id"

    @property
    def uuid_key(self) -> str:
        return self.uuid_property_name or f"{self.field_name}_uuid"

    @property
    def object_key(self) -> str:
        return self.object_name or camel_case(self.field_name)


def _uuid_lookup(target):
    if {Capability.ID, Capability.UUID} <= target.capabilities:
        return target.get_id_for_uuid
    return None


def _name_lookup(reference: Reference, target):
    if reference.name_lookup:
        lookup = getattr(target, reference.name_lookup, None)
        if lookup is None:
            raise ConfigurationError(
                f"Reference '{reference.field_name}' names lookup "
                f"'{reference.name_lookup}' missing on {type(target).__name__}.",
            )
        return lookup
    if {Capability.ID, Capability.NAME} <= target.capabilities:
        return target.get_id_for_name
    return None


def _assign(data: dict, key: str, value: Any) -> None:
    if value is not None:
        data[key] = value


async def _create_referents(data: dict, reference: Reference, target, options: QueryOptions):
    if Capability.NAME not in target.capabilities:
        raise ConfigurationError(
            f"Reference '{reference.field_name}' creates missing rows but "
            f"{type(target).__name__} cannot create by name.",
        )

    nested = data.get(reference.object_key)
    plain = data.get(reference.field_name)
    other = data.get(reference.other_name) if reference.other_name else None

    if isinstance(nested, Mapping) and nested:
        payload = dict(nested)
    elif _is_text(nested):
        payload = {"name": nested}
    elif _is_text(plain):
        payload = {"name": plain}
    elif _is_text(other):
        payload = {"name": other}
    else:
        for candidate in (nested, plain, other):
            if isinstance(candidate, list) and candidate:
                ids = []
                for element in candidate:
                    element_payload = dict(element) if isinstance(element, Mapping) else {"name": element}
                    row = await target.create_if_not_exists(element_payload, options)
                    ids.append(row["id"])
                return ids
        return None

    row = await target.create_if_not_exists(payload, options)
    return row["id"] if row else None


async def complete_entity_id(
    data: dict,
    reference: Reference,
    resolve_target: Callable[[], Any],
    clean: bool = False,
    transaction: Any = None,
) -> dict:
    """Populate data[reference.id_key] from whatever identifying input is present."""
    id_key = reference.id_key
    inputs = [reference.uuid_key, reference.field_name, reference.object_key]
    if reference.other_name:
        inputs.append(reference.other_name)
    if not _is_set(data.get(id_key)) and any(_is_set(data.get(key)) for key in inputs):
        target = resolve_target()
        options = QueryOptions(transaction=transaction)
        uuid_lookup = _uuid_lookup(target)
        name_lookup = _name_lookup(reference, target)

        uuid_value = data.get(reference.uuid_key)
        plain = data.get(reference.field_name)
        nested = data.get(reference.object_key)

        if uuid_value and uuid_lookup:
            _assign(data, id_key, await uuid_lookup(uuid_value, options))
        elif _is_text(plain) and name_lookup:
            _assign(data, id_key, await name_lookup(plain, options.copy(skip_no_rows_error=True)))
        elif isinstance(nested, Mapping) and nested:
            if _is_set(nested.get("id")):
                data[id_key] = nested["id"]
            elif nested.get("uuid") and uuid_lookup:
                _assign(data, id_key, await uuid_lookup(nested["uuid"], options))
            elif nested.get("name") and name_lookup:
                _assign(data, id_key, await name_lookup(nested["name"], options))

        other_name = reference.other_name
        if not _is_set(data.get(id_key)) and other_name and _is_text(data.get(other_name)) and name_lookup:
            _assign(
                data, id_key,
                await name_lookup(data[other_name], options.copy(skip_no_rows_error=True)),
            )

        if not _is_set(data.get(id_key)) and reference.create_if_not_exists:
            _assign(data, id_key, await _create_referents(data, reference, target, options))

    if clean and reference.clean and _is_set(data.get(id_key)):
        for key in (reference.uuid_key, reference.object_key, reference.field_name):
            data.pop(key, None)

    return data
