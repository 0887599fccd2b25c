"""Domain Types — capability tags and row shapes shared across the codebase.

Invariants:
    - Capability is the fixed tag universe; composition never accepts other tags
    - A capability tag set is canonicalized by sorted tag values (registration order is irrelevant)
    - Rows are plain dicts; a counted list is {"rows": [...], "count": n}

Design Decisions:
    - str Enum: tags serialize to JSON and accept their string value as input
    - NewType over wrappers: zero runtime cost, full type-checker support
"""

from enum import Enum
from typing import Any, Iterable, NewType


# ─── Row Types ───────────────────────────────────────────────────

Row = dict[str, Any]
RowId = NewType("RowId", int)
CapabilityKey = NewType("CapabilityKey", str)


# ─── Enums ───────────────────────────────────────────────────────

class Capability(str, Enum):
    """Orthogonal behavioral traits a composed service may carry."""
    ID = "id"
    UUID = "uuid"
    NAME = "name"
    TITLE = "title"
    UNIQUE_TITLE = "unique_title"
    DESCRIPTION = "description"
    ENABLED = "enabled"
    TRANSLATABLE = "translatable"
    OWNER_MODULE = "owner_module"
    SHARED = "shared"


class LifecycleEvent(str, Enum):
    """Sub-names published on the event channel around each operation."""
    CREATING = "creating"
    CREATED = "created"
    UPDATING = "updating"
    UPDATED = "updated"
    DELETING = "deleting"
    DELETED = "deleted"
    GETTING = "getting"
    GETTED = "getted"


def capability_key(tags: Iterable[Capability]) -> CapabilityKey:
    """Canonical string for a tag set: sorted values joined by '+'."""
    return CapabilityKey("+".join(sorted(Capability(tag).value for tag in tags)))
