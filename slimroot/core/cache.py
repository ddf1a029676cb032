"""Session-scoped build cache keyed by content hashes.

Keys are content hashes of the inputs, so a key collision means an
identical logical input and is always safe to serve as a hit. There is no
eviction and no invalidation by mutation: entries live until ``clear()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from slimroot.models.cache import CacheEntry, CacheKey

logger = logging.getLogger(__name__)


class BuildCache:
    """Thread-safe memo for resolver and layer-builder outputs.

    Concurrent writers to one key are last-writer-wins; values for a key
    are always computed identically, so the race is harmless.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: CacheKey) -> Any | None:
        """Return the cached value for ``key``, or None."""
        address = key.address
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
        logger.debug("cache hit: %s %s", key.stage, key.subject_hash)
        return entry.value

    def put(self, key: CacheKey, value: Any) -> None:
        """Store ``value`` under ``key``."""
        entry = CacheEntry(key=key, value=value)
        with self._lock:
            self._entries[key.address] = entry

    def clear(self) -> None:
        """Drop every entry. The only way entries are invalidated."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("cache cleared (%d entries)", count)

    def entries(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key.address in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
