"""Identity capabilities — surrogate id and public uuid.

Invariants:
    - Id: callers never supply `id` on create or update
    - Uuid: generated (uuid4) when absent on create; a supplied one must parse and be unused
    - Uuid: never updatable
"""

import uuid

from entity_service.core.errors import CheckError, ConflictError
from entity_service.services.build_list_options import contribute
from entity_service.services.check_fields import forbid_field


class IdMixin:
    """Surrogate integer id and id-keyed accessors."""

    def init(self):
        super().init()
        contribute(self.default_view_attributes, "id")

    async def validate_for_creation(self, data):
        forbid_field(data, "id")
        return await super().validate_for_creation(data)

    async def validate_for_update(self, data, where=None):
        forbid_field(data, "id")
        return await super().validate_for_update(data, where)

    async def get_for_id(self, row_id, options=None):
        return await self._get_for_column("id", row_id, options)

    async def get_single_for_id(self, row_id, options=None):
        return await self.get_single_for({"id": row_id}, options)

    async def get_id_for(self, where, options=None) -> list:
        rows = await self.get_for(where, {"attributes": ["id"]} if options is None else options)
        if isinstance(rows, dict):
            rows = rows["rows"]
        return [row["id"] for row in rows]

    async def update_for_id(self, data, row_id, options=None) -> int:
        return await self.update_for(data, {"id": row_id}, options)

    async def delete_for_id(self, row_id, options=None) -> int:
        return await self.delete_for({"id": row_id}, options)


class UuidMixin:
    """Public uuid column: generated, validated, unique and immutable."""

    def init(self):
        super().init()
        contribute(self.default_view_attributes, "uuid")

    async def validate_for_creation(self, data):
        value = data.get("uuid")
        if value is None:
            data["uuid"] = str(uuid.uuid4())
        else:
            try:
                data["uuid"] = str(uuid.UUID(str(value)))
            except ValueError:
                raise CheckError(f"Invalid UUID: {value}.", field="uuid") from None
            if await self.count_for({"uuid": data["uuid"]}):
                raise ConflictError(f"Another row already has the UUID {data['uuid']}.")
        return await super().validate_for_creation(data)

    async def validate_for_update(self, data, where=None):
        forbid_field(data, "uuid", "UUID cannot be updated.")
        return await super().validate_for_update(data, where)

    async def get_for_uuid(self, row_uuid, options=None):
        return await self._get_for_column("uuid", row_uuid, options)

    async def get_single_for_uuid(self, row_uuid, options=None):
        return await self.get_single_for({"uuid": row_uuid}, options)

    async def update_for_uuid(self, data, row_uuid, options=None) -> int:
        return await self.update_for(data, {"uuid": row_uuid}, options)

    async def delete_for_uuid(self, row_uuid, options=None) -> int:
        return await self.delete_for({"uuid": row_uuid}, options)
