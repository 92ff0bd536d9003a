"""
Cache Dependencies

A dependency is attached to a value at write time and re-checked on every
read. evaluate() records a baseline, is_changed() compares the current
condition against it. A changed dependency turns a cached value into a miss.

Variants:
- CallbackDependency: any callable
- FileDependency: file modification time
- PeriodDependency: fixed time windows
- SqlDependency: result of a DB-API query
- HttpDependency: ETag / Last-Modified of a URL
- TagDependency: version tokens stored in the cache itself
- ChainedDependency: AND / OR over other dependencies

GitDependency lives in git_state.py.
"""

from __future__ import annotations

import copy
import logging
import math
import os
import time
import uuid
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

import requests

if TYPE_CHECKING:
    from .cache import Cache

logger = logging.getLogger(__name__)


@runtime_checkable
class Dependency(Protocol):
    def evaluate(self, cache: "Cache") -> None:
        """Capture the baseline of whatever this dependency watches."""
        ...

    def is_changed(self, cache: "Cache") -> bool:
        """Whether the watched condition moved away from the baseline."""
        ...


class DataDependency(ABC):
    """
    Snapshot-and-compare base.

    evaluate() stores generate_data() in self.data; is_changed() regenerates
    and compares with ==. Subclasses only describe what to snapshot.
    """

    data: Any = None

    @abstractmethod
    def generate_data(self, cache: "Cache") -> Any:
        ...

    def evaluate(self, cache: "Cache") -> None:
        self.data = self.generate_data(cache)

    def is_changed(self, cache: "Cache") -> bool:
        return self.generate_data(cache) != self.data


class CallbackDependency(DataDependency):
    """Changed when callback(cache) returns something different."""

    def __init__(self, callback: Callable[["Cache"], Any]):
        self.callback = callback

    def generate_data(self, cache: "Cache") -> Any:
        return self.callback(cache)


class FileDependency(DataDependency):
    """Changed when the file's mtime changes, appears, or disappears."""

    def __init__(self, path: str | os.PathLike):
        self.path = os.fspath(path)

    def generate_data(self, cache: "Cache") -> Optional[float]:
        try:
            return os.stat(self.path).st_mtime
        except FileNotFoundError:
            return None


class PeriodDependency(DataDependency):
    """
    Time-based dependency.

    Time is cut into fixed windows of `seconds`; the value stays valid
    until the window it was written in ends.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.time):
        if seconds <= 0:
            raise ValueError(f"period must be positive, got {seconds}")
        self.seconds = seconds
        self.clock = clock

    def generate_data(self, cache: "Cache") -> int:
        return math.floor(self.clock() / self.seconds)


class SqlDependency(DataDependency):
    """Changed when the first row of a query changes."""

    def __init__(self, connection: Any, sql: str, params: Sequence[Any] = ()):
        self.connection = connection
        self.sql = sql
        self.params = tuple(params)

    def generate_data(self, cache: "Cache") -> Optional[tuple]:
        cursor = self.connection.cursor()
        try:
            cursor.execute(self.sql, self.params)
            row = cursor.fetchone()
        finally:
            cursor.close()
        return tuple(row) if row is not None else None

    def __deepcopy__(self, memo: Dict[int, Any]) -> "SqlDependency":
        # The connection is shared, only the snapshot is copied
        clone = copy.copy(self)
        clone.data = copy.deepcopy(self.data, memo)
        return clone


class HttpDependency(DataDependency):
    """
    Changed when the ETag or Last-Modified header of a URL changes.

    A failed request snapshots as None, so an outage on both sides
    of the comparison does not invalidate anything.
    """

    def __init__(self, url: str, timeout: float = 5):
        self.url = url
        self.timeout = timeout

    def generate_data(self, cache: "Cache") -> Optional[tuple]:
        try:
            resp = requests.head(self.url, timeout=self.timeout, allow_redirects=True)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"HEAD {self.url} failed: {e}")
            return None
        return resp.headers.get("ETag"), resp.headers.get("Last-Modified")


class TagDependency(DataDependency):
    """
    Group invalidation by tag.

    Each tag has a version token stored in the cache. The dependency
    snapshots the tokens of its tags; TagDependency.invalidate() replaces
    them, which changes every dependency on those tags at once.
    """

    KEY_PREFIX = "depcache.tag"

    def __init__(self, tags: str | Iterable[str]):
        self.tags: List[str] = [tags] if isinstance(tags, str) else list(tags)

    def generate_data(self, cache: "Cache") -> Dict[str, Optional[str]]:
        return self.get_versions(cache, self.tags)

    def evaluate(self, cache: "Cache") -> None:
        versions = self.get_versions(cache, self.tags)
        missing = [tag for tag, version in versions.items() if version is None]
        if missing:
            versions.update(self.touch(cache, missing))
        self.data = versions

    @classmethod
    def invalidate(cls, cache: "Cache", tags: str | Iterable[str]) -> None:
        """Invalidate every cached value depending on any of `tags`."""
        tags = [tags] if isinstance(tags, str) else list(tags)
        cls.touch(cache, tags)
        logger.info(f"Invalidated tags: {', '.join(tags)}")

    @classmethod
    def touch(cls, cache: "Cache", tags: Sequence[str]) -> Dict[str, str]:
        versions = {tag: uuid.uuid4().hex for tag in tags}
        cache.store.set_multiple(
            {cache.build_key([cls.KEY_PREFIX, tag]): version for tag, version in versions.items()}
        )
        return versions

    @classmethod
    def get_versions(cls, cache: "Cache", tags: Sequence[str]) -> Dict[str, Optional[str]]:
        if not tags:
            return {}
        keys = {tag: cache.build_key([cls.KEY_PREFIX, tag]) for tag in tags}
        stored = cache.store.get_multiple(list(keys.values()))
        return {tag: stored.get(key) for tag, key in keys.items()}


class ChainedDependency:
    """
    Composite over several dependencies.

    depend_on_all=True: changed as soon as any member changed.
    depend_on_all=False: changed only once every member changed.
    An empty chain is unchanged with depend_on_all=True, changed otherwise.
    """

    def __init__(self, dependencies: Iterable[Dependency], depend_on_all: bool = True):
        self.dependencies = list(dependencies)
        self.depend_on_all = depend_on_all

    def evaluate(self, cache: "Cache") -> None:
        for dependency in self.dependencies:
            dependency.evaluate(cache)

    def is_changed(self, cache: "Cache") -> bool:
        if self.depend_on_all:
            return any(dependency.is_changed(cache) for dependency in self.dependencies)
        return all(dependency.is_changed(cache) for dependency in self.dependencies)
