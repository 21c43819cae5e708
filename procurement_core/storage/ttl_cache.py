"""Process-local TTL cache with least-recently-used eviction."""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float


class TTLCache:
    """
    Bounded cache whose entries are valid for ``ttl_seconds`` after being set.

    Stale entries are dropped when read or swept. When ``max_entries`` is
    exceeded the least recently used entry is evicted.
    """

    def __init__(self, ttl_seconds: float, max_entries: int):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp < self.ttl_seconds

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry, time.time()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def set(self, key: str, data: Any) -> CacheEntry:
        entry = CacheEntry(key=key, data=data, timestamp=time.time())
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def sweep_expired(self) -> int:
        """Drop every stale entry and return how many were removed."""
        now = time.time()
        stale = [key for key, entry in self._entries.items() if not self._is_fresh(entry, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
