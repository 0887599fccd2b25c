"""Cross-cutting layers — accessors that exist only when two capabilities are both active.

Invariants:
    - Each layer is applied by the registry iff every capability it names is in the final set
    - get_id_for_<key> returns a list of ids for a list of keys, otherwise one id (or None
      when skip_no_rows_error suppressed the lookup)
    - enable/disable_for_<key> only flip is_enabled
"""

from entity_service.core.domain_types import Capability
from entity_service.core.query import QueryOptions


class IdUuidMixin:
    async def get_id_for_uuid(self, row_uuid, options=None):
        return await self._get_id_for_column("uuid", row_uuid, options)


class IdNameMixin:
    async def get_id_for_name(self, name, options=None):
        return await self._get_id_for_column("name", name, options)

    async def get_name_for_id(self, row_id, options=None):
        options = QueryOptions.coerce(options)
        if options.attributes is None:
            options = options.copy(attributes=["name"])
        row = await self.get_single_for({"id": row_id}, options)
        return row["name"] if row else None

    async def get_id_or_create_for_name(self, name, data=None, options=None):
        """Id of the row named `name`, creating it from data when absent."""
        options = QueryOptions.coerce(options)
        row_id = await self.get_id_for_name(name, options.copy(skip_no_rows_error=True))
        if row_id is not None:
            return row_id
        payload = {**(data or {}), "name": name}
        if Capability.TITLE in self.capabilities:
            payload.setdefault("title", name)
        row = await self.create(payload, QueryOptions(transaction=options.transaction))
        return row["id"]


class IdTitleMixin:
    async def get_id_for_title(self, title, options=None):
        return await self._get_id_for_column("title", title, options)


class IdEnabledMixin:
    async def enable_for_id(self, row_id, options=None) -> int:
        return await self.update_for({"is_enabled": True}, {"id": row_id}, options)

    async def disable_for_id(self, row_id, options=None) -> int:
        return await self.update_for({"is_enabled": False}, {"id": row_id}, options)


class UuidEnabledMixin:
    async def enable_for_uuid(self, row_uuid, options=None) -> int:
        return await self.update_for({"is_enabled": True}, {"uuid": row_uuid}, options)

    async def disable_for_uuid(self, row_uuid, options=None) -> int:
        return await self.update_for({"is_enabled": False}, {"uuid": row_uuid}, options)


class NameEnabledMixin:
    async def enable_for_name(self, name, options=None) -> int:
        return await self.update_for({"is_enabled": True}, {"name": name}, options)

    async def disable_for_name(self, name, options=None) -> int:
        return await self.update_for({"is_enabled": False}, {"name": name}, options)


class TitleEnabledMixin:
    async def enable_for_title(self, title, options=None) -> int:
        return await self.update_for({"is_enabled": True}, {"title": title}, options)

    async def disable_for_title(self, title, options=None) -> int:
        return await self.update_for({"is_enabled": False}, {"title": title}, options)
