"""Store contract shared by every backend the cache facade can sit on."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Union, runtime_checkable

TTL = Optional[Union[int, float, timedelta]]


@runtime_checkable
class Store(Protocol):
    """
    Minimal key-value backend.

    Keys are already-normalized strings. Values may be anything the backend
    can hold. Write-family methods report failure as False, never raise.
    """

    def get(self, key: str) -> Optional[Any]:
        ...

    def get_multiple(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Absent keys are either omitted or mapped to None."""
        ...

    def has(self, key: str) -> bool:
        ...

    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        ...

    def set_multiple(self, items: Mapping[str, Any], ttl: TTL = None) -> bool:
        ...

    def delete(self, key: str) -> bool:
        ...

    def delete_multiple(self, keys: Iterable[str]) -> bool:
        ...

    def clear(self) -> bool:
        ...


def normalize_ttl(ttl: TTL, default_ttl: TTL = None) -> Optional[float]:
    """
    Resolve a TTL argument to seconds.

    Returns:
        None for "never expires", otherwise seconds (<= 0 means already expired)

    None and 0 fall back to the store default.
    """
    seconds = _to_seconds(ttl)
    if seconds is None or seconds == 0:
        seconds = _to_seconds(default_ttl)
        if seconds == 0:
            return None
    return seconds


def _to_seconds(ttl: TTL) -> Optional[float]:
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)
