"""Tests for the suggestion cache backends."""

import threading
import time
from unittest.mock import MagicMock

from redis import RedisError

from mealsuggest.config import Settings
from mealsuggest.schemas.suggestion import CacheClearResponse
from mealsuggest.services.cache.suggestion_cache import (
    InMemorySuggestionCache,
    RedisSuggestionCache,
    build_cache,
    make_cache_key,
)
from mealsuggest.services.suggestion.types import PantrySnapshot


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def value(n: int) -> CacheClearResponse:
    return CacheClearResponse(user_id="u1", cleared_keys=n)


def test_cache_key_ignores_pantry_order():
    a = PantrySnapshot.of("u1", ["rice", "egg"])
    b = PantrySnapshot.of("u1", ["egg", "rice"])
    assert make_cache_key("suggestions", "u1", a, {"limit": 10}, 1) == make_cache_key(
        "suggestions", "u1", b, {"limit": 10}, 1
    )


def test_cache_key_varies_with_inputs():
    pantry = PantrySnapshot.of("u1", ["rice"])
    base = make_cache_key("suggestions", "u1", pantry, {"limit": 10}, 1)
    assert base != make_cache_key("pantry", "u1", pantry, {"limit": 10}, 1)
    assert base != make_cache_key("suggestions", "u2", pantry, {"limit": 10}, 1)
    assert base != make_cache_key("suggestions", "u1", PantrySnapshot.of("u1", ["egg"]), {"limit": 10}, 1)
    assert base != make_cache_key("suggestions", "u1", pantry, {"limit": 5}, 1)
    assert base != make_cache_key("suggestions", "u1", pantry, {"limit": 10}, 2)


def test_get_or_compute_hits_after_first_call():
    cache = InMemorySuggestionCache(ttl_s=60, max_entries=10)
    calls = []

    def compute():
        calls.append(1)
        return value(len(calls))

    first, hit1 = cache.get_or_compute("u1", "fp", "k", CacheClearResponse, compute)
    second, hit2 = cache.get_or_compute("u1", "fp", "k", CacheClearResponse, compute)
    assert (hit1, hit2) == (False, True)
    assert first == second
    assert len(calls) == 1


def test_entries_expire_after_ttl():
    clock = Clock()
    cache = InMemorySuggestionCache(ttl_s=30, max_entries=10, clock=clock)
    cache.set("u1", "k", value(1))
    clock.now += 29
    assert cache.get("k", CacheClearResponse) == value(1)
    clock.now += 2
    assert cache.get("k", CacheClearResponse) is None


def test_lru_eviction():
    cache = InMemorySuggestionCache(ttl_s=60, max_entries=2)
    cache.set("u1", "a", value(1))
    cache.set("u1", "b", value(2))
    cache.get("a", CacheClearResponse)
    cache.set("u1", "c", value(3))
    assert cache.get("b", CacheClearResponse) is None
    assert cache.get("a", CacheClearResponse) is not None
    assert len(cache) == 2


def test_returned_values_are_copies():
    cache = InMemorySuggestionCache(ttl_s=60, max_entries=10)
    cache.set("u1", "k", value(1))
    got = cache.get("k", CacheClearResponse)
    got.cleared_keys = 99
    assert cache.get("k", CacheClearResponse).cleared_keys == 1


def test_pantry_change_drops_user_entries():
    cache = InMemorySuggestionCache(ttl_s=60, max_entries=10)
    cache.get_or_compute("u1", "fp-1", "k1", CacheClearResponse, lambda: value(1))
    cache.get_or_compute("u2", "fp-x", "k2", CacheClearResponse, lambda: value(2))
    assert cache.observe_pantry("u1", "fp-1") == 0
    assert cache.observe_pantry("u1", "fp-2") == 1
    assert cache.get("k1", CacheClearResponse) is None
    assert cache.get("k2", CacheClearResponse) is not None


def test_invalidate_user_and_clear():
    cache = InMemorySuggestionCache(ttl_s=60, max_entries=10)
    cache.set("u1", "a", value(1))
    cache.set("u1", "b", value(2))
    cache.set("u2", "c", value(3))
    assert cache.invalidate_user("u1") == 2
    assert cache.invalidate_user("u1") == 0
    cache.clear()
    assert len(cache) == 0


def test_single_flight_computes_once():
    cache = InMemorySuggestionCache(ttl_s=60, max_entries=10)
    calls = []
    lock = threading.Lock()
    start = threading.Barrier(6)

    def compute():
        with lock:
            calls.append(1)
        time.sleep(0.05)
        return value(7)

    results = []

    def worker():
        start.wait()
        results.append(cache.get_or_compute("u1", "fp", "k", CacheClearResponse, compute))

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(calls) == 1
    assert sorted(hit for _, hit in results) == [False, True, True, True, True, True]
    assert cache._key_locks == {}


def test_redis_cache_roundtrip_and_index():
    client = MagicMock()
    cache = RedisSuggestionCache(client, ttl_s=120)
    client.get.return_value = value(3).model_dump_json().encode()
    assert cache.get("k", CacheClearResponse) == value(3)

    pipe = client.pipeline.return_value
    cache.set("u1", "k", value(3))
    pipe.setex.assert_called_once_with("k", 120, value(3).model_dump_json())
    pipe.sadd.assert_called_once_with("suggest:user:u1:keys", "k")
    pipe.execute.assert_called_once()


def test_redis_pantry_change_invalidates():
    client = MagicMock()
    cache = RedisSuggestionCache(client, ttl_s=120)
    client.set.return_value = b"old"
    client.smembers.return_value = {b"k1", b"k2"}
    assert cache.observe_pantry("u1", "new") == 2
    client.set.assert_any_call("suggest:user:u1:pantry", "new", ex=120, get=True)
    client.delete.assert_any_call("suggest:user:u1:keys")

    client.reset_mock()
    client.set.return_value = b"same"
    assert cache.observe_pantry("u1", "same") == 0
    client.smembers.assert_not_called()


def test_redis_errors_degrade_to_compute():
    client = MagicMock()
    client.get.side_effect = RedisError("down")
    client.set.side_effect = RedisError("down")
    client.pipeline.side_effect = RedisError("down")
    cache = RedisSuggestionCache(client, ttl_s=120, lock_timeout_s=1)
    cache._single_flight = MagicMock()
    result, hit = cache.get_or_compute("u1", "fp", "k", CacheClearResponse, lambda: value(5))
    assert result == value(5)
    assert not hit


def test_redis_undecodable_entry_is_dropped_and_recomputed():
    client = MagicMock()
    client.get.return_value = b'{"user_id": "u1", "cleared_keys": "not-an-int"}'
    client.set.return_value = None
    cache = RedisSuggestionCache(client, ttl_s=120, lock_timeout_s=1)
    cache._single_flight = MagicMock()
    result, hit = cache.get_or_compute("u1", "fp", "k", CacheClearResponse, lambda: value(7))
    assert result == value(7)
    assert not hit
    client.delete.assert_any_call("k")
    client.pipeline.return_value.setex.assert_called_once_with("k", 120, value(7).model_dump_json())


def test_build_cache_backends():
    assert isinstance(build_cache(Settings(cache_backend="memory")), InMemorySuggestionCache)
    assert build_cache(Settings(cache_backend="none")) is None
    assert isinstance(build_cache(Settings(cache_backend="redis")), RedisSuggestionCache)
