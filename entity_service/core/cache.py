"""TTL Cache — bounded in-memory cache with time-based expiry and an injected clock.

Invariants:
    - Never holds more than max_size entries (least recently used evicted first)
    - An entry older than ttl_seconds is never returned
    - Owned by the component that needs it: no module-level cache instances

Design Decisions:
    - Injected clock (defaults to time.monotonic): deterministic expiry in tests
    - OrderedDict for LRU order: O(1) get/set/evict
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Hashable

_MISSING = object()


class TTLCache:
    """Bounded LRU cache whose entries expire after ttl_seconds."""

    def __init__(
        self,
        max_size: int = 1024,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._store: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._store.get(key, _MISSING)
        if entry is _MISSING:
            return default

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return default

        self._store.move_to_end(key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if key in self._store:
            self._store.move_to_end(key)
        elif len(self._store) >= self._max_size:
            self._store.popitem(last=False)
        self._store[key] = (value, self._clock() + self._ttl)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._store)

    def delete(self, key: Hashable) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def evict_expired(self) -> int:
        """Drop every expired entry; returns how many were dropped."""
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._store.items() if now >= expires_at]
        for key in expired:
            del self._store[key]
        return len(expired)
