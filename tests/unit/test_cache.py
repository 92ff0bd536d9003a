#!/usr/bin/env python3
"""
Unit tests for the cache facade
Read/write paths, dependency invalidation, batch operations, get_or_set
"""

import logging
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from depcache.cache import Cache, DependentEntry
from depcache.dependencies import CallbackDependency
from depcache.key_builder import KeyNormalizationError, build_key
from depcache.stores.memory import MemoryStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def cache(store):
    return Cache(store)


@pytest.fixture
def version():
    """Mutable state watched by a CallbackDependency."""
    return {"value": 1}


@pytest.fixture
def dependency(version):
    return CallbackDependency(lambda cache: version["value"])


class TestReadWrite:
    """Test set/get round trips and misses."""

    def test_set_and_get(self, cache):
        assert cache.set("user:42", {"name": "Ann"})
        assert cache.get("user:42") == {"name": "Ann"}

    def test_composite_key(self, cache):
        cache.set([1, "x", True], "stored")
        assert cache.get([1, "x", True]) == "stored"
        assert cache.get((1, "x", True)) == "stored"

    def test_miss_returns_default(self, cache):
        assert cache.get("missing") is None
        assert cache.get("missing", "fallback") == "fallback"

    def test_set_replaces(self, cache):
        cache.set("k", "a")
        cache.set("k", "b")
        assert cache.get("k") == "b"

    def test_ttl_expiry(self, cache, clock):
        cache.set("short", "v", ttl=10)
        assert cache.get("short") == "v"

        clock.now += 11
        assert cache.get("short") is None

    def test_pair_value_is_not_mistaken_for_dependent_entry(self, cache, dependency):
        """A cached 2-tuple holding a dependency is still a plain value."""
        dependency.evaluate(cache)
        cache.set("pair", ("value", dependency))

        result = cache.get("pair")
        assert isinstance(result, tuple)
        assert result[0] == "value"
        assert isinstance(result[1], CallbackDependency)

    def test_plain_value_stored_raw(self, cache, store):
        cache.set("plain", 5)
        assert store.get("plain") == 5

    def test_dependent_value_stored_wrapped(self, cache, store, dependency):
        cache.set("dep", 5, dependency=dependency)
        stored = store.get("dep")
        assert isinstance(stored, DependentEntry)
        assert stored.value == 5
        assert isinstance(stored.dependency, CallbackDependency)
        assert stored.dependency.data == 1

    def test_returned_value_is_a_copy(self, cache):
        cache.set("k", {"n": 1})
        cache.get("k")["n"] = 99
        assert cache.get("k") == {"n": 1}

    def test_mutating_after_set_does_not_change_cache(self, cache):
        value = {"items": [1]}
        cache.set("k", value)
        value["items"].append(2)
        assert cache.get("k") == {"items": [1]}

    def test_invalid_key_raises(self, cache):
        with pytest.raises(KeyNormalizationError):
            cache.set(object(), "v")
        with pytest.raises(KeyNormalizationError):
            cache.get({1, 2})


class TestStoreDelegation:
    """Test what the facade hands to the store."""

    def test_set_passes_normalized_key_and_ttl(self):
        store = MagicMock()
        store.set.return_value = True

        assert Cache(store).set("user:42", 1, ttl=60)
        store.set.assert_called_once_with(build_key("user:42"), 1, 60)

    def test_store_failure_is_false(self):
        store = MagicMock()
        store.set.return_value = False

        assert Cache(store).set("k", 1) is False
        store.set.assert_called_once()

    def test_set_store(self, cache, store):
        other = MemoryStore()
        assert cache.set_store(other) is cache
        assert cache.store is other

        cache.set_store(None)
        assert cache.store is other


class TestDependencies:
    """Test dependency evaluation and invalidation on read."""

    def test_unchanged_dependency_hits(self, cache, dependency):
        cache.set("k", "v", dependency=dependency)
        assert cache.get("k") == "v"

    def test_changed_dependency_misses(self, cache, dependency, version):
        cache.set("k", "v", dependency=dependency)
        version["value"] = 2
        assert cache.get("k", "default") == "default"

    def test_has_ignores_dependency(self, cache, dependency, version):
        cache.set("k", "v", dependency=dependency)
        version["value"] = 2

        assert cache.has("k") is True
        assert cache.get("k") is None

    def test_evaluate_and_check_receive_cache(self, cache):
        seen = []
        dep = CallbackDependency(lambda c: seen.append(c) or 1)

        cache.set("k", "v", dependency=dep)
        assert seen == [cache]

        cache.get("k")
        assert seen == [cache, cache]

    def test_dependency_errors_propagate(self, cache):
        state = {"fail": False}

        def check(c):
            if state["fail"]:
                raise RuntimeError("boom")
            return 1

        dep = CallbackDependency(check)
        cache.set("k", "v", dependency=dep)

        state["fail"] = True
        with pytest.raises(RuntimeError):
            cache.get("k")
        with pytest.raises(RuntimeError):
            cache.set("other", "v", dependency=dep)

    def test_reused_dependency_keeps_earlier_entry_invalid(self, cache, dependency, version):
        """Re-evaluating a dependency for a new write leaves old snapshots alone."""
        cache.set("k1", "old", dependency=dependency)
        version["value"] = 2
        assert cache.get("k1", "miss") == "miss"

        cache.set("k2", "new", dependency=dependency)

        assert cache.get("k1", "miss") == "miss"
        assert cache.get("k2") == "new"

    def test_reused_dependency_in_batches(self, cache, dependency, version):
        cache.set_multiple({"a": 1, "b": 2}, dependency=dependency)
        version["value"] = 2
        cache.set_multiple({"c": 3}, dependency=dependency)

        assert cache.get_multiple(["a", "b", "c"], "miss") == {"a": "miss", "b": "miss", "c": 3}


class TestAdd:
    """Test add() never clobbers existing entries."""

    def test_add_missing(self, cache):
        assert cache.add("k", "a") is True
        assert cache.get("k") == "a"

    def test_add_existing(self, cache):
        cache.set("k", "a")
        assert cache.add("k", "b") is False
        assert cache.get("k") == "a"

    def test_add_over_invalidated_entry(self, cache, dependency, version):
        """Presence is decided by the store, not by dependency validity."""
        cache.set("k", "a", dependency=dependency)
        version["value"] = 2
        assert cache.add("k", "b") is False


class TestBatch:
    """Test multi-key operations."""

    def test_get_multiple_keyed_by_original_keys(self, cache):
        cache.set("user:1", "ann")
        cache.set(("user", 2), "bob")

        result = cache.get_multiple(["user:1", ("user", 2), "user:3"], default="none")
        assert result == {"user:1": "ann", ("user", 2): "bob", "user:3": "none"}

    def test_get_multiple_invalidated_is_default(self, cache, dependency, version):
        cache.set("a", 1, dependency=dependency)
        cache.set("b", 2)
        version["value"] = 2

        assert cache.get_multiple(["a", "b"]) == {"a": None, "b": 2}

    def test_get_multiple_single_store_read(self):
        store = MagicMock()
        store.get_multiple.return_value = {}

        Cache(store).get_multiple(["a", "b:c"])
        store.get_multiple.assert_called_once_with(["a", build_key("b:c")])

    def test_set_multiple(self, cache):
        assert cache.set_multiple({"a": 1, "b:c": 2})
        assert cache.get("a") == 1
        assert cache.get("b:c") == 2

    def test_set_multiple_pairs_allow_composite_keys(self, cache):
        cache.set_multiple([([1, 2], "list-key"), ({"id": 7}, "dict-key")])
        assert cache.get([1, 2]) == "list-key"
        assert cache.get({"id": 7}) == "dict-key"

    def test_set_multiple_evaluates_dependency_once(self, cache):
        calls = []
        dep = CallbackDependency(lambda c: calls.append(c) or 1)

        cache.set_multiple({"a": 1, "b": 2, "c": 3}, dependency=dep)
        assert calls == [cache]

        assert cache.get_multiple(["a", "b", "c"]) == {"a": 1, "b": 2, "c": 3}

    def test_set_multiple_shared_dependency_invalidates_all(self, cache, dependency, version):
        cache.set_multiple({"a": 1, "b": 2}, dependency=dependency)
        version["value"] = 2
        assert cache.get_multiple(["a", "b"], "gone") == {"a": "gone", "b": "gone"}

    def test_set_multiple_returns_store_result(self):
        store = MagicMock()
        store.set_multiple.return_value = False
        assert Cache(store).set_multiple({"a": 1}) is False

    def test_add_multiple_skips_existing(self, cache):
        cache.set("a", "old")
        assert cache.add_multiple({"a": "new", "b": "new"})

        assert cache.get("a") == "old"
        assert cache.get("b") == "new"

    def test_delete_multiple(self, cache):
        cache.set_multiple({"a": 1, "b:c": 2, "d": 3})
        assert cache.delete_multiple(["a", "b:c"])
        assert cache.get_multiple(["a", "b:c", "d"]) == {"a": None, "b:c": None, "d": 3}


class TestGetOrSet:
    """Test the read-through helper."""

    def test_computes_on_miss_and_caches(self, cache):
        producer = MagicMock(return_value="computed")

        assert cache.get_or_set("k", producer) == "computed"
        producer.assert_called_once_with(cache)
        assert cache.get("k") == "computed"

    def test_hit_skips_producer(self, cache):
        cache.set("k", "cached")
        producer = MagicMock(return_value="computed")

        assert cache.get_or_set("k", producer) == "cached"
        producer.assert_not_called()

    def test_recomputes_after_dependency_change(self, cache, dependency, version):
        cache.get_or_set("k", lambda c: "first", dependency=dependency)
        version["value"] = 2

        assert cache.get_or_set("k", lambda c: "second", dependency=dependency) == "second"
        assert cache.get("k") == "second"

    def test_write_failure_returns_value_and_warns(self, caplog):
        store = MagicMock()
        store.get.return_value = None
        store.set.return_value = False
        producer = MagicMock(return_value=42)

        with caplog.at_level(logging.WARNING, logger="depcache.cache"):
            result = Cache(store).get_or_set(["report", 7], producer, ttl=30)

        assert result == 42
        producer.assert_called_once()
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert '["report", 7]' in warnings[0].getMessage()

    def test_passes_ttl_and_dependency(self, cache, store, dependency, clock):
        cache.get_or_set("k", lambda c: "v", ttl=5, dependency=dependency)
        assert isinstance(store.get("k"), DependentEntry)

        clock.now += 6
        assert cache.get("k") is None


class TestDeletion:
    def test_delete(self, cache):
        cache.set("user:42", "v")
        assert cache.delete("user:42")
        assert cache.get("user:42") is None

    def test_clear(self, cache, store):
        cache.set_multiple({"a": 1, "b": 2})
        assert cache.clear()
        assert len(store) == 0


class TestIndexedAccess:
    """Dict-style sugar over get/set/delete."""

    def test_item_access(self, cache):
        cache["foo"] = "some data"
        assert cache["foo"] == "some data"

        del cache["foo"]
        assert cache["foo"] is None

    def test_contains_respects_dependency(self, cache, dependency, version):
        cache.set("k", "v", dependency=dependency)
        assert "k" in cache

        version["value"] = 2
        assert "k" not in cache
        assert cache.has("k")
