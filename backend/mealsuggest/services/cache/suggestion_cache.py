"""
Suggestion cache.

Keys hash (namespace, user, pantry contents, request parameters, config version).
Each user's last seen pantry fingerprint is tracked: when a request arrives with a
different fingerprint, every cached entry for that user is dropped at once instead
of waiting for TTL expiry. Recompute is single-flight per key so concurrent misses
for the same key compute once.
"""

import hashlib
import json
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from redis import Redis, RedisError
from redis.lock import Lock

from mealsuggest.config import Settings, settings as default_settings
from mealsuggest.logging import get_logger
from mealsuggest.services.suggestion.types import PantrySnapshot

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

KEY_PREFIX = "suggest"


def make_cache_key(
    namespace: str,
    user_id: str,
    pantry: PantrySnapshot,
    params: dict[str, Any],
    config_version: int,
) -> str:
    payload = json.dumps(
        {
            "namespace": namespace,
            "user_id": user_id,
            "pantry": sorted(pantry.ingredient_ids),
            "params": params,
            "config_version": config_version,
        },
        sort_keys=True,
        default=str,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}:{namespace}:{user_id}:{digest}"


class SuggestionCache(ABC):
    @abstractmethod
    def get(self, key: str, model: type[M]) -> Optional[M]: ...

    @abstractmethod
    def set(self, user_id: str, key: str, value: BaseModel) -> None: ...

    @abstractmethod
    def observe_pantry(self, user_id: str, fingerprint: str) -> int:
        """Record the user's current pantry fingerprint; on change drop their entries. Returns entries dropped."""

    @abstractmethod
    def invalidate_user(self, user_id: str) -> int: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def _single_flight(self, key: str) -> Any:
        """Context manager held while recomputing `key`."""

    def close(self) -> None:
        return None

    def get_or_compute(
        self,
        user_id: str,
        fingerprint: str,
        key: str,
        model: type[M],
        compute: Callable[[], M],
    ) -> tuple[M, bool]:
        """Return (value, cache_hit)."""
        self.observe_pantry(user_id, fingerprint)
        cached = self.get(key, model)
        if cached is not None:
            logger.info("cache.hit key=%s", key)
            return cached, True
        with self._single_flight(key):
            cached = self.get(key, model)
            if cached is not None:
                logger.info("cache.hit_after_wait key=%s", key)
                return cached, True
            value = compute()
            self.set(user_id, key, value)
            logger.info("cache.miss_stored key=%s", key)
            return value, False


@dataclass
class _Entry:
    value: BaseModel
    user_id: str
    expires_at: float


class InMemorySuggestionCache(SuggestionCache):
    """Per-process LRU bounded by entry count, with TTL."""

    def __init__(self, ttl_s: float, max_entries: int, clock: Callable[[], float] = time.monotonic):
        self._ttl_s = ttl_s
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._fingerprints: dict[str, str] = {}
        # key -> (lock, holders); removed when the last holder leaves
        self._key_locks: dict[str, tuple[threading.Lock, int]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str, model: type[M]) -> Optional[M]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value.model_copy(deep=True)

    def set(self, user_id: str, key: str, value: BaseModel) -> None:
        with self._lock:
            self._entries[key] = _Entry(
                value=value.model_copy(deep=True),
                user_id=user_id,
                expires_at=self._clock() + self._ttl_s,
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.info("cache.evicted key=%s", evicted)

    def observe_pantry(self, user_id: str, fingerprint: str) -> int:
        with self._lock:
            previous = self._fingerprints.get(user_id)
            self._fingerprints[user_id] = fingerprint
            if previous is None or previous == fingerprint:
                return 0
            dropped = self._drop_user_locked(user_id)
        logger.info("cache.pantry_changed user_id=%s dropped=%s", user_id, dropped)
        return dropped

    def _drop_user_locked(self, user_id: str) -> int:
        keys = [k for k, e in self._entries.items() if e.user_id == user_id]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def invalidate_user(self, user_id: str) -> int:
        with self._lock:
            dropped = self._drop_user_locked(user_id)
        logger.info("cache.invalidate_user user_id=%s dropped=%s", user_id, dropped)
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._fingerprints.clear()

    @contextmanager
    def _single_flight(self, key: str) -> Iterator[None]:
        with self._lock:
            lock, holders = self._key_locks.get(key, (threading.Lock(), 0))
            self._key_locks[key] = (lock, holders + 1)
        try:
            with lock:
                yield
        finally:
            with self._lock:
                lock, holders = self._key_locks[key]
                if holders <= 1:
                    del self._key_locks[key]
                else:
                    self._key_locks[key] = (lock, holders - 1)

    def close(self) -> None:
        self.clear()


class RedisSuggestionCache(SuggestionCache):
    """Shared across workers. Redis failures degrade to recomputation, never to a failed request."""

    def __init__(self, client: Redis, ttl_s: int, lock_timeout_s: int = 30):
        self._redis = client
        self._ttl_s = ttl_s
        self._lock_timeout_s = lock_timeout_s

    @classmethod
    def from_url(cls, url: str, ttl_s: int, lock_timeout_s: int = 30) -> "RedisSuggestionCache":
        return cls(Redis.from_url(url), ttl_s=ttl_s, lock_timeout_s=lock_timeout_s)

    @staticmethod
    def _user_keys(user_id: str) -> str:
        return f"{KEY_PREFIX}:user:{user_id}:keys"

    @staticmethod
    def _user_fingerprint(user_id: str) -> str:
        return f"{KEY_PREFIX}:user:{user_id}:pantry"

    def get(self, key: str, model: type[M]) -> Optional[M]:
        try:
            raw = self._redis.get(key)
        except RedisError as e:
            logger.warning("cache.redis_read_failed key=%s error=%s", key, e)
            return None
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("cache.redis_decode_failed key=%s error=%s", key, e)
            self._discard(key)
            return None

    def _discard(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except RedisError as e:
            logger.warning("cache.redis_delete_failed key=%s error=%s", key, e)

    def set(self, user_id: str, key: str, value: BaseModel) -> None:
        index = self._user_keys(user_id)
        try:
            pipe = self._redis.pipeline()
            pipe.setex(key, self._ttl_s, value.model_dump_json())
            pipe.sadd(index, key)
            pipe.expire(index, self._ttl_s)
            pipe.execute()
        except RedisError as e:
            logger.warning("cache.redis_write_failed key=%s error=%s", key, e)

    def observe_pantry(self, user_id: str, fingerprint: str) -> int:
        fp_key = self._user_fingerprint(user_id)
        try:
            previous = self._redis.set(fp_key, fingerprint, ex=self._ttl_s, get=True)
        except RedisError as e:
            logger.warning("cache.redis_fingerprint_failed user_id=%s error=%s", user_id, e)
            return 0
        if previous is None or previous.decode("utf-8") == fingerprint:
            return 0
        dropped = self.invalidate_user(user_id)
        logger.info("cache.pantry_changed user_id=%s dropped=%s", user_id, dropped)
        return dropped

    def invalidate_user(self, user_id: str) -> int:
        index = self._user_keys(user_id)
        try:
            keys = list(self._redis.smembers(index))
            if keys:
                self._redis.delete(*keys)
            self._redis.delete(index)
        except RedisError as e:
            logger.warning("cache.redis_invalidate_failed user_id=%s error=%s", user_id, e)
            return 0
        logger.info("cache.invalidate_user user_id=%s dropped=%s", user_id, len(keys))
        return len(keys)

    def clear(self) -> None:
        for key in self._redis.scan_iter(match=f"{KEY_PREFIX}:*"):
            self._redis.delete(key)

    @contextmanager
    def _single_flight(self, key: str) -> Iterator[None]:
        lock = Lock(self._redis, f"{KEY_PREFIX}:lock:{key}", timeout=self._lock_timeout_s)
        try:
            acquired = lock.acquire(blocking=True, blocking_timeout=self._lock_timeout_s)
        except RedisError as e:
            logger.warning("cache.redis_lock_failed key=%s error=%s", key, e)
            acquired = False
        try:
            if not acquired:
                logger.warning("cache.lock_not_acquired key=%s (computing without lock)", key)
            yield
        finally:
            if acquired:
                try:
                    lock.release()
                except RedisError as e:
                    logger.warning("cache.redis_unlock_failed key=%s error=%s", key, e)

    def close(self) -> None:
        self._redis.close()


def build_cache(source: Optional[Settings] = None) -> Optional[SuggestionCache]:
    source = source or default_settings
    backend = source.cache_backend.strip().lower()
    if backend == "none":
        return None
    if backend == "redis":
        logger.info("cache.configured backend=redis url=%s ttl_s=%s", source.redis_url, source.cache_ttl_s)
        return RedisSuggestionCache.from_url(
            source.redis_url, ttl_s=source.cache_ttl_s, lock_timeout_s=source.cache_lock_timeout_s
        )
    logger.info(
        "cache.configured backend=memory ttl_s=%s max_entries=%s", source.cache_ttl_s, source.cache_max_entries
    )
    return InMemorySuggestionCache(ttl_s=source.cache_ttl_s, max_entries=source.cache_max_entries)
