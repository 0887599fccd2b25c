"""Capability Registry — composes capability layers over Service into one class per tag set.

Invariants:
    - Layers fold in catalogue order regardless of the order tags are requested in
    - Cross-cutting layers fold after every regular layer, only when both tags are present
    - The same tag set (after implied tags are added) always yields the same class object
    - Composition performs no I/O; unknown tags raise ConfigurationError

Design Decisions:
    - Lazy composition memoized by the canonical sorted tag key; prepare() folds a known list
      of tag sets up front for callers that want every class built at startup
    - Implied tags (unique_title -> title) keep each mixin at most once in the MRO
    - The composed class records its tag set in `capabilities`; resolvers check that set
      instead of probing for methods
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from entity_service.core.domain_types import Capability, CapabilityKey, capability_key
from entity_service.core.errors import ConfigurationError
from entity_service.services.capability_cross_cutting import (
    IdEnabledMixin, IdNameMixin, IdTitleMixin, IdUuidMixin, NameEnabledMixin,
    TitleEnabledMixin, UuidEnabledMixin,
)
from entity_service.services.capability_identity import IdMixin, UuidMixin
from entity_service.services.capability_naming import (
    DescriptionMixin, NameMixin, TitleMixin, UniqueTitleMixin,
)
from entity_service.services.capability_scoping import OwnerModuleMixin, SharedMixin
from entity_service.services.capability_state import EnabledMixin, TranslatableMixin
from entity_service.services.service_base import Service

logger = logging.getLogger(__name__)

Apply = Callable[[type], type]


def layer(mixin: type) -> Apply:
    """apply(base) -> class deriving from mixin then base."""
    def apply(base: type) -> type:
        return type(f"{mixin.__name__}Layer", (mixin, base), {"__module__": base.__module__})
    return apply


@dataclass(frozen=True)
class CapabilityDescriptor:
    tag: Capability
    apply: Apply
    cross_cutting: Mapping[Capability, Apply] = field(default_factory=dict)
    implies: frozenset = frozenset()


CATALOGUE: tuple[CapabilityDescriptor, ...] = (
    CapabilityDescriptor(Capability.ID, layer(IdMixin), {
        Capability.UUID: layer(IdUuidMixin),
        Capability.NAME: layer(IdNameMixin),
        Capability.TITLE: layer(IdTitleMixin),
        Capability.ENABLED: layer(IdEnabledMixin),
    }),
    CapabilityDescriptor(Capability.UUID, layer(UuidMixin), {
        Capability.ENABLED: layer(UuidEnabledMixin),
    }),
    CapabilityDescriptor(Capability.NAME, layer(NameMixin), {
        Capability.ENABLED: layer(NameEnabledMixin),
    }),
    CapabilityDescriptor(Capability.TITLE, layer(TitleMixin), {
        Capability.ENABLED: layer(TitleEnabledMixin),
    }),
    CapabilityDescriptor(
        Capability.UNIQUE_TITLE, layer(UniqueTitleMixin),
        implies=frozenset({Capability.TITLE}),
    ),
    CapabilityDescriptor(Capability.DESCRIPTION, layer(DescriptionMixin)),
    CapabilityDescriptor(Capability.ENABLED, layer(EnabledMixin)),
    CapabilityDescriptor(Capability.TRANSLATABLE, layer(TranslatableMixin)),
    CapabilityDescriptor(Capability.OWNER_MODULE, layer(OwnerModuleMixin)),
    CapabilityDescriptor(Capability.SHARED, layer(SharedMixin)),
)


class CapabilityRegistry:
    """Memoized composition of capability tag sets over a base service class."""

    def __init__(
        self,
        base: type[Service] = Service,
        catalogue: Iterable[CapabilityDescriptor] = CATALOGUE,
    ):
        self._base = base
        self._catalogue = tuple(catalogue)
        self._by_tag = {descriptor.tag: descriptor for descriptor in self._catalogue}
        self._composed: dict[CapabilityKey, type[Service]] = {}
        self._lock = threading.Lock()

    def normalize(self, tags: Iterable[Capability | str]) -> frozenset[Capability]:
        """Validated tag set including implied tags."""
        resolved: set[Capability] = set()
        for tag in tags:
            try:
                capability = Capability(tag)
            except ValueError:
                raise ConfigurationError(f"Unknown capability: {tag!r}.") from None
            if capability not in self._by_tag:
                raise ConfigurationError(f"Capability {capability.value!r} is not in the catalogue.")
            resolved.add(capability)

        pending = list(resolved)
        while pending:
            for implied in self._by_tag[pending.pop()].implies:
                if implied not in resolved:
                    resolved.add(implied)
                    pending.append(implied)
        return frozenset(resolved)

    def compose(self, *tags: Capability | str) -> type[Service]:
        capabilities = self.normalize(tags)
        key = capability_key(capabilities)
        composed = self._composed.get(key)
        if composed is None:
            with self._lock:
                composed = self._composed.get(key)
                if composed is None:
                    composed = self._build(capabilities)
                    self._composed[key] = composed
                    logger.debug(
                        "Composed service class",
                        extra={"capabilities": key or "-"},
                    )
        return composed

    def prepare(self, tag_sets: Iterable[Iterable[Capability | str]]) -> list[type[Service]]:
        """Compose every listed tag set now."""
        return [self.compose(*tags) for tags in tag_sets]

    def composed_keys(self) -> list[CapabilityKey]:
        return sorted(self._composed)

    def _build(self, capabilities: frozenset[Capability]) -> type[Service]:
        present = [d for d in self._catalogue if d.tag in capabilities]

        composed = self._base
        for descriptor in present:
            composed = descriptor.apply(composed)
        for descriptor in present:
            for other, apply in descriptor.cross_cutting.items():
                if other in capabilities:
                    composed = apply(composed)

        name = self._base.__name__ + "".join(
            d.tag.value.title().replace("_", "") for d in present
        )
        return type(name, (composed,), {
            "__module__": __name__,
            "capabilities": capabilities,
        })


registry = CapabilityRegistry()


def compose(*tags: Capability | str) -> type[Service]:
    """Composed service class for the tag set, from the process-wide registry."""
    return registry.compose(*tags)
