"""
Per-process cache for resolved membership and subscription snapshots.

Entries are keyed by ``(user_id, organization_id)`` and expire after a short
TTL. Writers invalidate explicitly; the TTL bounds staleness for changes made
by other processes.
"""

from collections.abc import Callable
from time import monotonic
from typing import Any

from cachetools import TTLCache

from entitlements.settings import Settings, get_settings

CacheKey = tuple[str, str]


class SnapshotCache:
    """Thin wrapper over ``cachetools.TTLCache`` with organization-wide invalidation."""

    def __init__(
        self,
        maxsize: int | None = None,
        ttl: float | None = None,
        timer: Callable[[], float] = monotonic,
        settings: Settings | None = None,
    ) -> None:
        config = (settings or get_settings()).entitlements
        self.ttl = config.permission_cache_ttl if ttl is None else ttl
        self._cache: TTLCache[CacheKey, Any] = TTLCache(
            maxsize=maxsize or config.permission_cache_size,
            ttl=self.ttl,
            timer=timer,
        )

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    def get(self, user_id: str, organization_id: str) -> Any:
        if not self.enabled:
            return None
        return self._cache.get((user_id, organization_id))

    def set(self, user_id: str, organization_id: str, value: Any) -> None:
        if self.enabled:
            self._cache[(user_id, organization_id)] = value

    def invalidate(self, user_id: str, organization_id: str) -> None:
        self._cache.pop((user_id, organization_id), None)

    def invalidate_organization(self, organization_id: str) -> int:
        """Drop every entry of an organization; returns the number removed."""
        keys = [key for key in list(self._cache.keys()) if key[1] == organization_id]
        for key in keys:
            self._cache.pop(key, None)
        return len(keys)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


__all__ = ["SnapshotCache"]
