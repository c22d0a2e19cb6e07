from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional, Tuple

from .common import normalize_title
from .metrics import CACHE_EVENTS

CacheKey = Tuple[str, str]


def cache_key(stage: str, url: str, tag: Optional[str] = None, title: Optional[str] = None) -> CacheKey:
    """Build a ``(stage, normalizedKey)`` pair.

    The season/episode tag and the normalized title are part of the key so a
    season-wide archive cached once is not served for a different episode.
    """
    parts = [url]
    if tag is not None or title is not None:
        parts.append((tag or "").upper())
        parts.append(normalize_title(title))
    return stage, "|".join(parts)


class TTLCache:
    """Very small in-memory LRU cache with TTL semantics.

    Entries expire ``default_ttl`` seconds after being written. When the cache
    grows past ``max_size`` the least recently used entries are evicted. No
    locking: it is only touched from the event loop thread.
    """

    def __init__(self, default_ttl: float = 1800.0, max_size: Optional[int] = 200) -> None:
        self._default_ttl = default_ttl
        self._max_size = max_size
        self._store: "OrderedDict[Any, Tuple[float, Any]]" = OrderedDict()

    def _now(self) -> float:
        return time.monotonic()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def get(self, key: Any) -> Optional[Any]:
        item = self._store.get(key)
        if item is None:
            return None
        expiry, value = item
        if expiry < self._now():
            del self._store[key]
            return None
        self._store.move_to_end(key)
        return value

    def set(self, key: Any, value: Any, ttl: Optional[float] = None) -> None:
        ttl_value = self._default_ttl if ttl is None else ttl
        self._store[key] = (self._now() + ttl_value, value)
        self._store.move_to_end(key)
        if self._max_size is not None:
            while len(self._store) > self._max_size:
                self._store.popitem(last=False)

    def clear(self) -> None:
        self._store.clear()

    def delete(self, key: Any) -> None:
        self._store.pop(key, None)

    async def get_or_set(
        self,
        key: CacheKey,
        producer: Callable[[], Awaitable[Any]],
        cache_empty: bool = False,
    ) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        Falsy results (empty link lists, missing assets) are not stored unless
        ``cache_empty`` is set, so a transient upstream miss is retried on the
        next request.
        """
        stage = key[0] if isinstance(key, tuple) else "default"
        cached = self.get(key)
        if cached is not None:
            CACHE_EVENTS.labels(stage=stage, event="hit").inc()
            return cached
        CACHE_EVENTS.labels(stage=stage, event="miss").inc()
        value = await producer()
        if value or cache_empty:
            self.set(key, value)
        return value
