"""
Best-effort Redis cache for read-heavy listings.

- If Redis is not configured or unreachable, every read goes straight to the loader.
- Concurrent identical reads share one in-flight load ("singleflight").
- Writes bump a version counter; read keys embed the version, so they go stale on bump.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import redis.asyncio as redis
import structlog
from pydantic import TypeAdapter

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class JsonCache:
    def __init__(self, url: str | None, ttl_seconds: int = 30, prefix: str = "vitalwatch") -> None:
        self._url = url
        self._ttl = ttl_seconds
        self._prefix = prefix
        self._client: redis.Redis | None = None
        # One task per cache key to prevent stampedes
        self._inflight: dict[str, asyncio.Task] = {}
        self._inflight_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def connect(self) -> redis.Redis | None:
        if not self._url:
            return None
        client = redis.from_url(self._url, decode_responses=False)
        try:
            await client.ping()
        except Exception as exc:
            logger.warning("cache_ping_failed", error=str(exc), url=self._url)
            await client.aclose()
            return None
        self._client = client
        return client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _version_key(self, scope: str) -> str:
        return f"{self._prefix}:version:{scope}"

    async def bump_version(self, scope: str) -> None:
        client = self._client
        if client is None:
            return
        try:
            await client.incr(self._version_key(scope))
        except Exception as exc:
            logger.warning("cache_invalidate_failed", scope=scope, error=str(exc))

    async def get_version(self, scope: str) -> int:
        client = self._client
        if client is None:
            return 0
        try:
            value = await client.get(self._version_key(scope))
        except Exception as exc:
            logger.warning("cache_version_read_failed", scope=scope, error=str(exc))
            return 0
        return int(value) if value is not None else 0

    async def cached_json(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        adapter: TypeAdapter[T],
        ttl_seconds: int | None = None,
    ) -> T:
        """Cached value if present; otherwise run `loader` once per key and store the result."""
        client = self._client
        if client is None:
            return await loader()

        cached = await self._read(client, key, adapter)
        if cached is not None:
            return cached

        async with self._inflight_lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.create_task(
                    self._fetch_and_store(client, key, loader, adapter, ttl_seconds)
                )
                self._inflight[key] = task

        try:
            return await task
        finally:
            async with self._inflight_lock:
                self._inflight.pop(key, None)

    async def _read(self, client: redis.Redis, key: str, adapter: TypeAdapter[T]) -> T | None:
        try:
            raw = await client.get(key)
        except Exception as exc:
            logger.warning("cache_read_failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return adapter.validate_json(raw)
        except Exception as exc:
            logger.warning("cache_deserialize_failed", key=key, error=str(exc))
            try:
                await client.delete(key)
            except Exception:
                pass
            return None

    async def _fetch_and_store(
        self,
        client: redis.Redis,
        key: str,
        loader: Callable[[], Awaitable[T]],
        adapter: TypeAdapter[T],
        ttl_seconds: int | None,
    ) -> T:
        result = await loader()
        try:
            await client.set(key, adapter.dump_json(result), ex=ttl_seconds or self._ttl)
        except Exception as exc:
            logger.warning("cache_write_failed", key=key, error=str(exc))
        return result
