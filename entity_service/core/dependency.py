"""Dependency Registry — named collaborators with static, singleton, or transient lifetime.

Invariants:
    - A name is registered at most once (re-registration raises ConfigurationError)
    - A singleton factory runs at most once, even under concurrent first access
    - Unknown names raise ConfigurationError unless a default is supplied

Design Decisions:
    - Factories are plain callables: services register `SomeService.singleton`,
      so core never needs to know the Service type
    - Re-entrant lock: a singleton factory may resolve other dependencies
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from entity_service.core.errors import ConfigurationError

_MISSING = object()


class Lifetime(str, Enum):
    STATIC = "static"
    SINGLETON = "singleton"
    TRANSIENT = "transient"


@dataclass
class _Entry:
    lifetime: Lifetime
    provider: Any
    value: Any = _MISSING


class DependencyRegistry:
    """Named collaborator lookup used to resolve services referenced by string."""

    def __init__(self):
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.RLock()

    def _add(self, name: str, entry: _Entry) -> None:
        with self._lock:
            if name in self._entries:
                raise ConfigurationError(f"Dependency '{name}' already exists.")
            self._entries[name] = entry

    def add_static(self, name: str, value: Any) -> None:
        self._add(name, _Entry(Lifetime.STATIC, value, value))

    def add_singleton(self, name: str, factory: Callable[[], Any]) -> None:
        self._add(name, _Entry(Lifetime.SINGLETON, factory))

    def add_transient(self, name: str, factory: Callable[[], Any]) -> None:
        self._add(name, _Entry(Lifetime.TRANSIENT, factory))

    def has(self, name: str) -> bool:
        return name in self._entries

    def remove(self, name: str) -> None:
        with self._lock:
            self._entries.pop(name, None)

    def get(self, name: str, default: Any = _MISSING) -> Any:
        entry = self._entries.get(name)
        if entry is None:
            if default is not _MISSING:
                return default
            raise ConfigurationError(f"Dependency '{name}' does not exist.")

        if entry.lifetime is Lifetime.TRANSIENT:
            return entry.provider()

        if entry.value is _MISSING:
            with self._lock:
                if entry.value is _MISSING:
                    entry.value = entry.provider()
        return entry.value


# Process-wide registry (services default to it; tests pass their own)
dependencies = DependencyRegistry()
