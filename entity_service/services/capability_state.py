"""State capabilities — enabled flag and translatable rows.

Invariants:
    - Enabled: options.is_enabled (when not None) becomes an equality filter on is_enabled
    - Translatable: rows are overlaid after retrieval unless options.translate is False;
      without any locale the rows are returned untranslated (a warning is logged when
      translation was explicitly requested)
"""

import logging

from entity_service.config import get_settings
from entity_service.core.cache import TTLCache
from entity_service.core.errors import DisabledRowError, NoRowError
from entity_service.core.query import QueryOptions
from entity_service.services.build_list_options import apply_enabled_filter, contribute
from entity_service.services.translate_rows import translate_rows

logger = logging.getLogger(__name__)


class EnabledMixin:
    """Boolean is_enabled column with list filtering."""

    def init(self):
        super().init()
        contribute(self.default_view_attributes, "is_enabled")

    async def get_list_options(self, options):
        apply_enabled_filter(options)
        return await super().get_list_options(options)

    @staticmethod
    def check_enabled(row, message: str | None = None):
        """The row itself when enabled; NoRowError / DisabledRowError otherwise."""
        if not row:
            raise NoRowError()
        if not row.get("is_enabled"):
            raise DisabledRowError(message or "Object is disabled.")
        return row


class TranslatableMixin:
    """Overlay localized text on every row flagged is_translatable."""

    def init(self):
        super().init()
        contribute(self.default_view_attributes, "is_translatable", "translation_context")
        settings = get_settings()
        self.translation_cache = TTLCache(
            max_size=settings.translation_cache_size,
            ttl_seconds=settings.translation_cache_ttl_seconds,
        )

    async def get_list(self, options=None):
        options = QueryOptions.coerce(options)
        result = await super().get_list(options)
        if options.translate is False:
            return result

        loc = options.loc or self.locale
        if loc is None:
            if options.translate:
                logger.warning(
                    "Cannot translate because there is no locale defined",
                    extra={"service": self.service_name},
                )
            return result

        rows = result["rows"] if isinstance(result, dict) else result
        await translate_rows(self, rows, loc, options.keep_translatable_flag)
        return result
