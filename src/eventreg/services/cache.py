"""Process-local count cache.

Holds "total matching rows" per (scope, filter) so the first page of a
listing does not pay a full count scan on every request. Entries expire
after a fixed TTL regardless of access; there is no other eviction since
the number of scopes is bounded by the number of live events.

Consistency comes from the writers: every successful insert or soft delete
invalidates its scope right after the commit. A reader that computed a
count just before a concurrent commit may still store it; that window is
bounded by the TTL.

One instance is created per process by the application lifespan and handed
to callers explicitly.
"""

import hashlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, NamedTuple

from eventreg.config import settings

logger = logging.getLogger(__name__)


def _make_key(prefix: str, *parts: Any) -> str:
    """Create a cache scope from prefix and parts."""
    key_data = ":".join(str(p) for p in parts)
    return f"{prefix}:{key_data}" if key_data else prefix


def _hash_dict(data: dict[str, Any]) -> str:
    """Create a hash of a dictionary for cache key generation."""
    serialized = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()[:16]


class CountKey(NamedTuple):
    """Cache key: the scope being counted plus a filter variant."""

    scope: str
    variant: str


def events_scope() -> str:
    """Scope covering every event listing."""
    return _make_key("events")


def registrations_scope(event_id: int) -> str:
    """Scope covering the registrations of one event."""
    return _make_key("registrations", event_id)


def count_key(scope: str, filters: dict[str, Any] | None = None) -> CountKey:
    """Build the key for a scope and a filter (None values are ignored)."""
    active = {k: v for k, v in (filters or {}).items() if v is not None}
    return CountKey(scope, _hash_dict(active))


class CountCache:
    """TTL cache of row counts keyed by (scope, filter variant)."""

    def __init__(
        self,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            ttl: Entry lifetime in seconds (uses settings.count_cache_ttl if not specified)
            clock: Monotonic time source, replaceable in tests
        """
        self.ttl = ttl if ttl is not None else settings.count_cache_ttl
        self._clock = clock
        # scope -> variant -> (count, expires_at)
        self._entries: dict[str, dict[str, tuple[int, float]]] = {}
        self._closed = False

    def get(self, key: CountKey) -> int | None:
        """Return the cached count, or None on a miss or expired entry."""
        variants = self._entries.get(key.scope)
        if not variants:
            return None
        entry = variants.get(key.variant)
        if entry is None:
            return None
        count, expires_at = entry
        if self._clock() >= expires_at:
            variants.pop(key.variant, None)
            return None
        return count

    def set(self, key: CountKey, count: int, ttl: float | None = None) -> None:
        """Store a count for ``ttl`` seconds (default: the cache TTL)."""
        if self._closed:
            return
        lifetime = self.ttl if ttl is None else ttl
        self._entries.setdefault(key.scope, {})[key.variant] = (count, self._clock() + lifetime)

    def invalidate(self, scope: str) -> int:
        """Drop every filter variant cached for a scope.

        Returns the number of entries removed.
        """
        removed = self._entries.pop(scope, None)
        if removed:
            logger.debug("Invalidated %d cached count(s) for %s", len(removed), scope)
            return len(removed)
        return 0

    async def get_or_load(self, key: CountKey, loader: Callable[[], Awaitable[int]]) -> int:
        """Return the cached count or run ``loader`` and cache its result.

        Nothing is cached when the loader raises; the error propagates.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        logger.debug("Count cache miss for %s", key.scope)
        count = await loader()
        self.set(key, count)
        return count

    def __len__(self) -> int:
        return sum(len(variants) for variants in self._entries.values())

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def close(self) -> None:
        """Tear down at shutdown; later writes are ignored."""
        self._closed = True
        self._entries.clear()
