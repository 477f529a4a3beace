"""Query cache for read paths.

QueryCache maps a key to a value with a time-to-live and a set of tags.
Repositories wrap their read queries with ``get_or_load`` and call
``invalidate_tag`` after every write to the same collection, so a reader in
this process never sees a value older than the last local write.

Each tag carries a generation counter bumped on invalidation. A load that
overlaps an invalidation of one of its tags returns its result but does not
cache it.

The cache is an explicit object handed to the repositories that use it.
Authorization and validation never go through it.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Set, Tuple

_MISSING = object()


@dataclass
class _Entry:
    value: Any
    expires_at: float
    tags: Tuple[str, ...]


class QueryCache:
    """TTL cache with tag-based invalidation.

    Args:
        ttl_seconds: Default lifetime of an entry. 0 disables caching.
        clock: Monotonic time source, injectable for tests

    Examples:
        >>> cache = QueryCache(ttl_seconds=60)
        >>> cache.get_or_load(("form", "f1"), lambda: "loaded", tags=["forms"])
        'loaded'
        >>> cache.get(("form", "f1"))
        'loaded'
        >>> cache.invalidate_tag("forms")
        1
        >>> cache.get(("form", "f1")) is None
        True
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, _Entry] = {}
        self._tag_index: Dict[str, Set[Hashable]] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Look up a fresh entry.

        Args:
            key: Cache key
            default: Returned on a miss or an expired entry

        Returns:
            The cached value, or default
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.expires_at <= self._clock():
                self._drop(key)
                return default
            return entry.value

    def set(
        self,
        key: Hashable,
        value: Any,
        tags: Iterable[str] = (),
        ttl_seconds: Optional[float] = None,
    ) -> None:
        """Store a value, replacing any entry under the same key.

        Args:
            key: Cache key
            value: Value to store
            tags: Tags the entry is invalidated by
            ttl_seconds: Lifetime override; 0 or less stores nothing
        """
        self._store(key, value, tuple(tags), ttl_seconds, None)

    def get_or_load(
        self,
        key: Hashable,
        loader: Callable[[], Any],
        tags: Iterable[str] = (),
        ttl_seconds: Optional[float] = None,
    ) -> Any:
        """Return the cached value for key, calling loader on a miss.

        Loader exceptions propagate and nothing is cached. A loader result of
        None is not cached, so a record created later is found immediately.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        tags = tuple(tags)
        with self._lock:
            seen = self._generation_of(tags)
        value = loader()
        if value is not None:
            self._store(key, value, tags, ttl_seconds, seen)
        return value

    def invalidate(self, key: Hashable) -> None:
        """Drop one entry if present."""
        with self._lock:
            self._drop(key)

    def invalidate_tag(self, tag: str) -> int:
        """Drop every entry carrying tag.

        Loads of that tag already in flight will not be cached.

        Returns:
            Number of entries dropped
        """
        with self._lock:
            self._generations[tag] = self._generations.get(tag, 0) + 1
            keys = self._tag_index.pop(tag, set())
            for key in list(keys):
                self._drop(key)
            return len(keys)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._epoch += 1
            self._entries.clear()
            self._tag_index.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _generation_of(self, tags: Tuple[str, ...]) -> Tuple[int, ...]:
        return (self._epoch,) + tuple(self._generations.get(tag, 0) for tag in tags)

    def _store(
        self,
        key: Hashable,
        value: Any,
        tags: Tuple[str, ...],
        ttl_seconds: Optional[float],
        seen: Optional[Tuple[int, ...]],
    ) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        with self._lock:
            if seen is not None and seen != self._generation_of(tags):
                return
            self._drop(key)
            entry = _Entry(value=value, expires_at=self._clock() + ttl, tags=tags)
            self._entries[key] = entry
            for tag in entry.tags:
                self._tag_index.setdefault(tag, set()).add(key)

    def _drop(self, key: Hashable) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tag_index[tag]


__all__ = ["QueryCache"]
