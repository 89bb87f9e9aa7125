"""Access contract for the shared counter store, and its Redis implementation.

Every mutation goes through the store's atomic primitives (INCR, DEL, SADD);
callers never read-modify-write a counter locally.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

TOTAL_VISITS_KEY = "total_visits"
REGISTRY_KEY = "known_instances"

T = TypeVar("T")


def instance_key(instance_id: str) -> str:
    return f"instance_{instance_id}_visits"


class CounterStoreError(Exception):
    """The counter store is unreachable or rejected a command."""


class CounterStore(Protocol):
    async def incr(self, key: str) -> int: ...

    async def get(self, key: str) -> int: ...

    async def delete(self, *keys: str) -> int: ...

    async def register_instance(self, instance_id: str) -> None: ...

    async def registered_instances(self) -> set[str]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisCounterStore:
    """CounterStore backed by a redis.asyncio client.

    The client reconnects lazily, so a store that comes up after the
    instance is picked up on the next command.
    """

    def __init__(self, client: aioredis.Redis, url: str = "") -> None:
        self.client = client
        self.url = url

    @classmethod
    async def connect(cls, url: str, timeout_s: float = 2.0) -> RedisCounterStore:
        client = aioredis.Redis.from_url(
            url,
            socket_timeout=timeout_s,
            socket_connect_timeout=timeout_s,
            decode_responses=True,
        )
        store = cls(client, url)
        try:
            await store.ping()
            logger.info("Connected to Redis at %s", url)
        except CounterStoreError as e:
            logger.error("Redis connection error: %s", e)
        return store

    async def _call(self, op: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        except RedisError as e:
            raise CounterStoreError(f"{op} failed: {type(e).__name__}: {e}") from e

    async def incr(self, key: str) -> int:
        return int(await self._call("INCR", lambda: self.client.incr(key)))

    async def get(self, key: str) -> int:
        raw = await self._call("GET", lambda: self.client.get(key))
        return int(raw) if raw is not None else 0

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("DEL", lambda: self.client.delete(*keys)))

    async def register_instance(self, instance_id: str) -> None:
        await self._call("SADD", lambda: self.client.sadd(REGISTRY_KEY, instance_id))

    async def registered_instances(self) -> set[str]:
        members = await self._call("SMEMBERS", lambda: self.client.smembers(REGISTRY_KEY))
        return set(members)

    async def ping(self) -> bool:
        return bool(await self._call("PING", lambda: self.client.ping()))

    async def close(self) -> None:
        await self.client.aclose()
