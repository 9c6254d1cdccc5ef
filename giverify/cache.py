"""Result cache with an in-memory default and an optional Redis backend.

Entries never expire: a product identifier that reached a terminal
classification keeps its result for the life of the process (or of the Redis
keyspace when that backend is selected).
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import redis

from .config import settings

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, value: Dict[str, Any]) -> None: ...

    def size(self) -> int: ...


@dataclass
class RedisCache:
    client: redis.Redis
    prefix: str = ""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self.client.get(self.prefix + key)
        except redis.RedisError as exc:
            logger.warning("Redis get failed: %s", exc)
            return None
        if not data:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        try:
            self.client.set(self.prefix + key, json.dumps(value))
        except redis.RedisError as exc:
            logger.warning("Redis set failed: %s", exc)

    def size(self) -> int:
        try:
            return sum(1 for _ in self.client.scan_iter(match=f"{self.prefix}*"))
        except redis.RedisError as exc:
            logger.warning("Redis scan failed: %s", exc)
            return 0


class InMemoryCache:
    def __init__(self) -> None:
        self._store: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._store.get(key)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._store[key] = value

    def size(self) -> int:
        with self._lock:
            return len(self._store)


def create_cache(backend: str | None = None) -> CacheBackend:
    """Build the configured backend, falling back to memory when Redis is down."""
    backend = (backend or settings.cache_backend).lower()
    if backend != "redis":
        logger.info("Using in-memory result cache")
        return InMemoryCache()
    try:
        client = redis.Redis(host=settings.redis_host, port=settings.redis_port, decode_responses=False)
        client.ping()
        logger.info("Using Redis result cache at %s:%s", settings.redis_host, settings.redis_port)
        return RedisCache(client, prefix=settings.redis_key_prefix)
    except redis.RedisError:
        logger.warning("Redis not available, using in-memory cache")
        return InMemoryCache()
