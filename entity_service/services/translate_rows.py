"""Translation Overlay — substitutes localized text into returned rows.

Invariants:
    - Only rows flagged is_translatable are translated, and only the service's translatable columns
    - Context is the row's translation_context, else the service default context
    - The is_translatable flag is stripped from every outgoing row unless keep_flag is set
    - Nested sub-objects of references whose target service is Translatable are processed too

Design Decisions:
    - Locale.translate may be sync or async: awaited only when it returns an awaitable
    - Lookups memoized in the owning service's TTLCache keyed by (language, context, text);
      a locale without a `language` attribute is keyed by its identity instead
"""

import inspect

from entity_service.core.cache import TTLCache
from entity_service.core.domain_types import Capability, Row

_MISSING = object()


async def translate_text(
    loc, context: str | None, text: str, cache: TTLCache | None = None,
) -> str:
    key = (getattr(loc, "language", None) or id(loc), context, text)
    if cache is not None:
        cached = cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

    translated = loc.translate(context, text)
    if inspect.isawaitable(translated):
        translated = await translated

    if cache is not None:
        cache.set(key, translated)
    return translated


async def translate_row(service, row: Row, loc, keep_flag: bool = False) -> Row:
    if row.get("is_translatable"):
        context = row.get("translation_context")
        if context is None:
            context = service.default_translation_context
        for column in service.translatable_columns:
            value = row.get(column)
            if isinstance(value, str) and value:
                row[column] = await translate_text(
                    loc, context, value, service.translation_cache,
                )

    if not keep_flag:
        row.pop("is_translatable", None)

    for reference in service.references.values():
        nested = row.get(reference.field_name)
        if not isinstance(nested, dict) or reference.target is None:
            continue
        target = service.resolve_service(reference.target)
        if Capability.TRANSLATABLE in target.capabilities:
            await translate_row(target, nested, loc, keep_flag)

    return row


async def translate_rows(service, rows: list[Row], loc, keep_flag: bool = False) -> list[Row]:
    for row in rows:
        await translate_row(service, row, loc, keep_flag)
    return rows
