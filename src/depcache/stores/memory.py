"""
In-process dict store with lazy TTL expiry.

Values are deep-copied on the way in and on the way out, so a stored entry
is a snapshot: later changes to the caller's objects (including a dependency
re-evaluated for another write) never leak into it.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .base import TTL, normalize_ttl

logger = logging.getLogger(__name__)

# Errors deepcopy raises for objects it can't snapshot
COPY_ERRORS = (copy.Error, TypeError, AttributeError, RecursionError)


@dataclass
class MemoryEntry:
    value: Any
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class MemoryStore:
    def __init__(self, default_ttl: TTL = None, clock: Callable[[], float] = time.time) -> None:
        self._store: Dict[str, MemoryEntry] = {}
        self._default_ttl = default_ttl
        self._clock = clock

    def _get(self, key: str) -> Optional[MemoryEntry]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._store[key]
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        entry = self._get(key)
        return copy.deepcopy(entry.value) if entry is not None else None

    def get_multiple(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {key: self.get(key) for key in keys}

    def has(self, key: str) -> bool:
        return self._get(key) is not None

    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        return self.set_multiple({key: value}, ttl)

    def set_multiple(self, items: Mapping[str, Any], ttl: TTL = None) -> bool:
        """Snapshot every value first; nothing is written if one can't be copied."""
        seconds = normalize_ttl(ttl, self._default_ttl)
        if seconds is not None and seconds <= 0:
            return self.delete_multiple(items.keys())

        try:
            snapshots = {key: copy.deepcopy(value) for key, value in items.items()}
        except COPY_ERRORS as e:
            logger.error(f"Cache write error: {e}")
            return False

        expires_at = self._clock() + seconds if seconds is not None else None
        for key, value in snapshots.items():
            self._store[key] = MemoryEntry(value=value, expires_at=expires_at)
        return True

    def delete(self, key: str) -> bool:
        self._store.pop(key, None)
        return True

    def delete_multiple(self, keys: Iterable[str]) -> bool:
        for key in list(keys):
            self.delete(key)
        return True

    def clear(self) -> bool:
        self._store.clear()
        return True

    def __len__(self) -> int:
        return len(self._store)
