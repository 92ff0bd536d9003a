#!/usr/bin/env python3
"""
Cache Facade
Key normalization + dependency invalidation on top of any Store.

Implements:
- get(key, default) / get_multiple(keys, default)
- set(key, value, ttl, dependency) / set_multiple(items, ttl, dependency)
- add(key, value, ttl, dependency) / add_multiple(items, ttl, dependency)
- get_or_set(key, producer, ttl, dependency)
- has(key), delete(key), delete_multiple(keys), clear()

Typical usage:

    cache = Cache(MemoryStore())
    value = cache.get(key)
    if value is None:
        value = compute()
        cache.set(key, value, ttl, dependency)

or simply cache.get_or_set(key, lambda cache: compute(), ttl, dependency).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from .dependencies import Dependency
from .key_builder import build_key
from .stores.base import TTL, Store

logger = logging.getLogger(__name__)

_MISS = object()

Items = Union[Mapping[Any, Any], Iterable[Tuple[Any, Any]]]


@dataclass(frozen=True)
class DependentEntry:
    """Stored shape of a value written with a dependency."""

    value: Any
    dependency: Dependency


def _iter_items(items: Items) -> Iterator[Tuple[Any, Any]]:
    if isinstance(items, Mapping):
        return iter(items.items())
    return iter(items)


def _describe_key(key: Any) -> str:
    try:
        return json.dumps(key)
    except (TypeError, ValueError):
        return repr(key)


class Cache:
    """
    Caching facade over a Store.

    Design principles:
    - Any JSON-serializable key works; build_key() makes it storage-safe
    - Dependencies are checked on every read; a changed one is a miss
    - Reads never fail for cache-internal reasons: stale data = miss
    - Writes report success as a bool; the store decides what failure is

    The facade keeps no state except the store, so one instance can be
    shared by any number of callers if the store allows it. There is no
    locking: add() and add_multiple() are check-then-act, and get_or_set()
    may run the producer once per concurrent caller.
    """

    def __init__(self, store: Store):
        self._store = store

    @property
    def store(self) -> Store:
        return self._store

    def set_store(self, store: Optional[Store]) -> "Cache":
        """Replace the backing store. None leaves the current one in place."""
        if store is not None:
            self._store = store
        return self

    def build_key(self, key: Any) -> str:
        """
        Normalize an application key into a storage key.

        ASCII alphanumeric strings of at most 32 chars are kept as-is;
        anything else becomes an MD5 hex digest of the string or its JSON.
        """
        return build_key(key)

    def _unwrap(self, stored: Any, default: Any) -> Any:
        if stored is None:
            return default
        if isinstance(stored, DependentEntry):
            if stored.dependency.is_changed(self):
                return default
            return stored.value
        return stored

    @staticmethod
    def _wrap(value: Any, dependency: Optional[Dependency]) -> Any:
        if dependency is None:
            return value
        return DependentEntry(value, dependency)

    def _prepare(self, items: Items, dependency: Optional[Dependency]) -> Dict[str, Any]:
        if dependency is not None:
            dependency.evaluate(self)
        return {self.build_key(key): self._wrap(value, dependency) for key, value in _iter_items(items)}

    def get(self, key: Any, default: Any = None) -> Any:
        """
        Retrieve a value from cache.

        Args:
            key: Application key (string or any JSON-serializable structure)
            default: Returned on miss

        Returns:
            The cached value, or default if absent, expired, or its
            dependency has changed
        """
        stored = self._store.get(self.build_key(key))
        return self._unwrap(stored, default)

    def get_multiple(self, keys: Iterable[Any], default: Any = None) -> Dict[Any, Any]:
        """
        Retrieve several values with one store round trip.

        Args:
            keys: Hashable application keys (use tuples for composite keys)
            default: Value for every key that misses

        Returns:
            {original_key: value_or_default}, never normalized keys
        """
        key_map = {key: self.build_key(key) for key in keys}
        values = self._store.get_multiple(list(key_map.values()))

        results = {}
        for key, normalized in key_map.items():
            results[key] = self._unwrap(values.get(normalized), default)
        return results

    def has(self, key: Any) -> bool:
        """
        Whether the store holds an entry for key.

        Dependencies are not checked: an entry invalidated by its dependency
        still counts as present here while get() returns the default.
        """
        return self._store.has(self.build_key(key))

    def set(self, key: Any, value: Any, ttl: TTL = None, dependency: Optional[Dependency] = None) -> bool:
        """
        Store a value, replacing any existing one.

        Args:
            key: Application key
            value: Value to cache
            ttl: Seconds or timedelta; None/0 uses the store default
            dependency: Evaluated now, re-checked on every read

        Returns:
            Whether the store accepted the write
        """
        if dependency is not None:
            dependency.evaluate(self)
            value = DependentEntry(value, dependency)
        return self._store.set(self.build_key(key), value, ttl)

    def set_multiple(self, items: Items, ttl: TTL = None, dependency: Optional[Dependency] = None) -> bool:
        """
        Store several values with one store write.

        The dependency is evaluated once and shared by every item.
        Not atomic across keys unless the store makes it so.
        """
        return self._store.set_multiple(self._prepare(items, dependency), ttl)

    def add(self, key: Any, value: Any, ttl: TTL = None, dependency: Optional[Dependency] = None) -> bool:
        """
        Store a value only if the store has no entry for key.

        Returns:
            False if an entry exists (valid or not), else the store's result
        """
        if dependency is not None:
            dependency.evaluate(self)
            value = DependentEntry(value, dependency)

        key = self.build_key(key)
        if self._store.has(key):
            return False
        return self._store.set(key, value, ttl)

    def add_multiple(self, items: Items, ttl: TTL = None, dependency: Optional[Dependency] = None) -> bool:
        """
        Store several values, skipping keys that already hold a value.

        Existing keys keep their value and expiry.
        """
        data = self._prepare(items, dependency)

        existing = self._store.get_multiple(list(data.keys()))
        for key, value in existing.items():
            if value is not None:
                data.pop(key, None)

        return self._store.set_multiple(data, ttl)

    def delete(self, key: Any) -> bool:
        return self._store.delete(self.build_key(key))

    def delete_multiple(self, keys: Iterable[Any]) -> bool:
        return self._store.delete_multiple([self.build_key(key) for key in keys])

    def clear(self) -> bool:
        """
        Delete every entry in the store.

        Careful: this also wipes data of any other cache sharing the store.
        """
        return self._store.clear()

    def get_or_set(
        self,
        key: Any,
        producer: Callable[["Cache"], Any],
        ttl: TTL = None,
        dependency: Optional[Dependency] = None,
    ) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Application key
            producer: Called with this cache to build the value on a miss
            ttl: Seconds or timedelta for the stored value
            dependency: Attached to the stored value

        Returns:
            The cached value, or the producer's result even if storing it failed
        """
        value = self.get(key, _MISS)
        if value is not _MISS:
            return value

        value = producer(self)
        if not self.set(key, value, ttl, dependency):
            logger.warning(f"Failed to set cache value for key {_describe_key(key)}")

        return value

    def __getitem__(self, key: Any) -> Any:
        return self.get(key)

    def __setitem__(self, key: Any, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: Any) -> None:
        self.delete(key)

    def __contains__(self, key: Any) -> bool:
        return self.get(key, _MISS) is not _MISS
