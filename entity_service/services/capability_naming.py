"""Naming capabilities — unique immutable name, scoped-unique title, description.

Invariants:
    - Name: required and non-empty on create, unique across the table, never updatable
    - Creates of one name are serialized per service instance; create_if_not_exists returns
      the existing row when a concurrent create won
    - Title: required on create, unique within title_scope; on update a new title must be
      non-empty, the update must target exactly one row and no OTHER row may hold the title
    - A title update with no where clause, or whose where matches many rows, raises ConflictError
    - UniqueTitle: titles unique across the table; a missing title is taken from the name
    - Title and Description are searchable and translatable; Name is searchable only
"""

import asyncio
from contextlib import asynccontextmanager

from entity_service.core.errors import ConflictError, IntegrityViolationError
from entity_service.core.query import Not, QueryOptions, where_clause
from entity_service.services.build_list_options import contribute
from entity_service.services.check_fields import forbid_field, optional_text, require_text


class NameMixin:
    """Unique immutable machine name with name-keyed accessors."""

    def init(self):
        super().init()
        self._name_locks: dict[str, list] = {}
        contribute(self.search_columns, "name")
        contribute(self.default_view_attributes, "name")

    async def validate_for_creation(self, data):
        name = require_text(data, "name")
        if await self.count_for({"name": name}):
            raise ConflictError(f'Exists another row with the name "{name}" in "{self.service_name}".')
        return await super().validate_for_creation(data)

    async def validate_for_update(self, data, where=None):
        forbid_field(data, "name", "Name cannot be updated.")
        return await super().validate_for_update(data, where)

    @asynccontextmanager
    async def _name_guard(self, name):
        """Serialize creates of one name; an entry lives only while someone holds or awaits it."""
        if not isinstance(name, str) or not name.strip():
            yield
            return

        key = name.strip()
        entry = self._name_locks.get(key)
        if entry is None:
            entry = self._name_locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if not entry[1]:
                del self._name_locks[key]

    async def create(self, data, options=None):
        async with self._name_guard(data.get("name")):
            return await super().create(data, options)

    async def create_if_not_exists(self, data, options=None):
        """The row named data["name"]; created from data when absent."""
        options = QueryOptions.coerce(options)
        name = require_text(data, "name")
        lookup = options.copy(skip_no_rows_error=True, attributes=None)
        row = await self.get_single_for_name(name, lookup)
        if row is not None:
            return row
        try:
            return await self.create(data, QueryOptions(transaction=options.transaction))
        except (ConflictError, IntegrityViolationError):
            row = await self.get_single_for_name(name, lookup)
            if row is None:
                raise
            return row

    async def get_for_name(self, name, options=None):
        return await self._get_for_column("name", name, options)

    async def get_single_for_name(self, name, options=None):
        return await self.get_single_for({"name": name}, options)

    async def update_for_name(self, data, name, options=None) -> int:
        return await self.update_for(data, {"name": name}, options)

    async def delete_for_name(self, name, options=None) -> int:
        return await self.delete_for({"name": name}, options)


class TitleMixin:
    """Human title, unique within the columns named by title_scope."""

    title_scope: tuple[str, ...] = ()

    def init(self):
        super().init()
        contribute(self.search_columns, "title")
        contribute(self.translatable_columns, "title")
        contribute(self.default_view_attributes, "title")

    async def check_title_for_conflict(self, title, data=None, where=None):
        title_where = {"title": title}
        for column in self.title_scope:
            if data and column in data:
                title_where[column] = data[column]
        filters = [Not(where_clause(where))] if where else []
        if await self.count(QueryOptions(where=title_where, filters=filters)):
            raise ConflictError(
                f'Exists another row with the title "{title}" in "{self.service_name}".',
            )

    async def validate_for_creation(self, data):
        title = require_text(data, "title")
        await self.check_title_for_conflict(title, data)
        return await super().validate_for_creation(data)

    async def validate_for_update(self, data, where=None):
        title = optional_text(data, "title")
        if title is not None:
            if not where:
                raise ConflictError("Title update without a where clause is forbidden.")
            if await self.count_for(where) > 1:
                raise ConflictError("Title update for many rows is forbidden.")
            await self.check_title_for_conflict(title, data, where)
        return await super().validate_for_update(data, where)

    async def get_for_title(self, title, options=None):
        return await self._get_for_column("title", title, options)

    async def get_single_for_title(self, title, options=None):
        return await self.get_single_for({"title": title}, options)

    async def update_for_title(self, data, title, options=None) -> int:
        return await self.update_for(data, {"title": title}, options)

    async def delete_for_title(self, title, options=None) -> int:
        return await self.delete_for({"title": title}, options)


class UniqueTitleMixin:
    """Title unique across the whole table, ignoring title_scope; defaults to the name on create."""

    async def check_title_for_conflict(self, title, data=None, where=None):
        await super().check_title_for_conflict(title, None, where)

    async def validate_for_creation(self, data):
        name = data.get("name")
        if not data.get("title") and isinstance(name, str):
            data["title"] = name.strip()
        return await super().validate_for_creation(data)


class DescriptionMixin:
    def init(self):
        super().init()
        contribute(self.search_columns, "description")
        contribute(self.translatable_columns, "description")
        contribute(self.default_view_attributes, "description")
