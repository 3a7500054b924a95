"""Short-lived in-process cache for status lookups"""
import time
from typing import Any, Callable, Dict, Optional, Tuple

_MISSING = object()


class TTLCache:
    """
    key -> (value, expiry) with explicit invalidation.

    Entries expire after ttl seconds; expired entries are dropped on read.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default

        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return default
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = (value, self._clock() + (self.ttl if ttl is None else ttl))

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [key for key in list(self._entries) if key.startswith(prefix)]
        return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
