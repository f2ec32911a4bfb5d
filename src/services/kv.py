import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.utils.logger import setup_logger

logger = setup_logger(__name__)


class KeyValueStoreError(Exception):
    """The key-value store could not be reached or returned an unreadable value."""


class KeyValueStore(ABC):
    """Get/put store with per-key expiry, holding the daily counter and the balance cache."""

    @abstractmethod
    async def get_json(self, key: str) -> dict[str, Any] | None:
        pass

    @abstractmethod
    async def put_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        pass

    async def close(self) -> None:
        pass


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 5.0) -> "RedisKeyValueStore":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        return cls(client)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            raise KeyValueStoreError(f"Error reading {key} from Redis: {str(e)}") from e

        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise KeyValueStoreError(f"Invalid JSON stored under {key}") from e
        if not isinstance(value, dict):
            raise KeyValueStoreError(f"Unexpected value stored under {key}")
        return value

    async def put_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self.client.set(key, json.dumps(value), ex=ttl_seconds)
        except RedisError as e:
            raise KeyValueStoreError(f"Error writing {key} to Redis: {str(e)}") from e

    async def close(self) -> None:
        await self.client.aclose()


class MemoryKeyValueStore(KeyValueStore):
    """In-process store, for tests and single-process deployments without Redis."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get_json(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return json.loads(raw)

    async def put_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self._entries[key] = (json.dumps(value), self._clock() + ttl_seconds)


def create_store(redis_url: str | None) -> KeyValueStore:
    if redis_url:
        logger.info("Using Redis key-value store")
        return RedisKeyValueStore.from_url(redis_url)
    logger.warning("REDIS_URL not configured, using in-memory key-value store")
    return MemoryKeyValueStore()
