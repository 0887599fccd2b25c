"""Scoping capabilities — owner module and sharing.

Invariants:
    - OwnerModule: `owner_module` is a create-if-absent reference to the module service;
      enabled-filtered lists only return rows with no owner module or an enabled one
    - Shared: a create carrying an owner inserts the row AND its owner collaborator link
      inside one transaction; a delete removes the sharing links and the rows inside one
      transaction; partial failure leaves nothing behind
    - The owner link is written before `created` is emitted, so a failed link means no
      subscriber ever hears of the row
"""

from entity_service.core.query import QueryOptions
from entity_service.services.build_list_options import apply_owner_module_filter
from entity_service.services.resolve_references import Reference


class OwnerModuleMixin:
    """Rows owned by an optional module; disabled modules hide their rows."""

    module_service = "module_service"

    def init(self):
        super().init()
        if "owner_module" not in self.references:
            self.references["owner_module"] = Reference(
                field_name="owner_module",
                target=self.module_service,
                create_if_not_exists=True,
            )

    async def get_list_options(self, options):
        apply_owner_module_filter(options)
        return await super().get_list_options(options)


class SharedMixin:
    """Rows shared with users through a sharing service."""

    sharing_service = None
    share_entity: str | None = None

    def _sharing(self):
        sharing = self.sharing_service
        if isinstance(sharing, str):
            sharing = self.dependencies.get(sharing)
        return sharing if self.share_entity else None

    def _has_owner(self, data):
        return data.get("owner_id") is not None or bool(data.get("owner"))

    async def create(self, data, options=None):
        options = QueryOptions.coerce(options)
        if self._sharing() is not None and self._has_owner(data) and options.transaction_handle() is None:
            options = options.copy(transaction=True)
        return await super().create(data, options)

    async def after_create(self, row, data, options):
        await super().after_create(row, data, options)
        if self._sharing() is not None and self._has_owner(data):
            await self.add_collaborator(
                {
                    "entity_id": row["id"],
                    "user_id": data.get("owner_id"),
                    "user": data.get("owner"),
                    "type": "owner",
                },
                options,
            )

    async def add_collaborator(self, data, options=None):
        """Link a user to a row of this entity; no-op without sharing or user."""
        sharing = self._sharing()
        if sharing is None or (data.get("user_id") is None and not data.get("user")):
            return None
        options = QueryOptions.coerce(options)
        payload = {"entity": self.share_entity}
        payload.update((key, value) for key, value in data.items() if value is not None)
        return await sharing.create(payload, QueryOptions(transaction=options.transaction_handle()))

    async def delete(self, options=None):
        options = QueryOptions.coerce(options).copy()
        sharing = self._sharing()
        if sharing is None:
            return await super().delete(options)

        with self._record_errors("delete"):
            await self.complete_references(
                options.where, clean=True, transaction=options.transaction_handle(),
            )
            async with self.transaction_scope(options, required=True) as scoped:
                rows = await self.get_list(QueryOptions(
                    where=dict(scoped.where),
                    attributes=["id"],
                    transaction=scoped.transaction,
                    emit_event=False,
                    translate=False,
                ))
                ids = [row["id"] for row in rows]
                if ids:
                    await sharing.delete_for_entity(
                        self.share_entity, ids, QueryOptions(transaction=scoped.transaction),
                    )
                count = await super().delete(scoped)
        return count
