"""
In-memory response cache keyed by user, endpoint and query parameters.

Entries expire after a TTL and are dropped per user on every successful
mutation. Values are deep-copied on the way in and out so callers can never
mutate cached state in place.
"""

import copy
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tourdesk.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float


def cache_key(user_id: int, endpoint: str, params: Optional[dict[str, Any]] = None) -> str:
    """Build a cache key, e.g. ``7:calendar-events:{"from": "..."}``."""
    param_string = json.dumps(params, sort_keys=True, default=str) if params else ""
    return f"{user_id}:{endpoint}:{param_string}"


class ResponseCache:
    """TTL cache with per-user and per-endpoint invalidation."""

    def __init__(
        self,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._ttl = settings.cache.ttl_seconds if ttl is None else ttl
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("Cache MISS: %s", key)
            return None
        if self._clock() - entry.stored_at > entry.ttl:
            del self._entries[key]
            logger.debug("Cache EXPIRED: %s", key)
            return None
        logger.debug("Cache HIT: %s", key)
        return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            value=copy.deepcopy(value),
            stored_at=self._clock(),
            ttl=self._ttl if ttl is None else ttl,
        )
        logger.debug("Cache SET: %s", key)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Delete all keys starting with prefix (e.g. ``7:calendar-events:``)."""
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("Cache DELETE prefix: %s (%d keys)", prefix, len(keys))
        return len(keys)

    def invalidate_user(self, user_id: int, endpoints: Optional[list[str]] = None) -> int:
        """Drop every cached page for a user, or only the given endpoints."""
        if endpoints is None:
            return self.delete_prefix(f"{user_id}:")
        return sum(self.delete_prefix(f"{user_id}:{endpoint}:") for endpoint in endpoints)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
