"""Field checks shared by capability layers (all raise CheckError)."""

from typing import Any

from entity_service.core.errors import CheckError


def forbid_field(data: dict, field: str, message: str | None = None) -> None:
    if field in data:
        raise CheckError(message or f"Forbidden {field} field.", field=field)


def require_text(data: dict, field: str, label: str | None = None) -> str:
    """The stripped value of a mandatory non-empty string field."""
    value: Any = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise CheckError(f"{label or field.capitalize()} field is missing or empty.", field=field)
    return value.strip()


def optional_text(data: dict, field: str, label: str | None = None) -> str | None:
    """Absent is fine; present must be a non-empty string."""
    if field not in data:
        return None
    return require_text(data, field, label)
