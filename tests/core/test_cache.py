"""
Unit tests for the Redis cache helper.

These tests do not require a running Redis instance. We inject a tiny in-memory async fake
client that implements the subset of commands the cache layer uses.
"""

from __future__ import annotations

import asyncio

import pytest
from pydantic import TypeAdapter

from vitalwatch.core.cache import JsonCache


class _FakeRedis:
    """
    Minimal async Redis client used for tests.

    Stores values as bytes and supports only the commands our cache layer uses.
    """

    def __init__(self) -> None:
        self._store: dict[str, bytes] = {}
        self.closed = False

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True

    async def get(self, key: str) -> bytes | None:
        return self._store.get(key)

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        # TTL is ignored here
        self._store[key] = value
        return True

    async def incr(self, key: str) -> int:
        current = int(self._store.get(key, b"0").decode("utf-8")) + 1
        self._store[key] = str(current).encode("utf-8")
        return current

    async def delete(self, key: str) -> int:
        return 1 if self._store.pop(key, None) is not None else 0


class _BrokenRedis(_FakeRedis):
    async def get(self, key: str) -> bytes | None:
        raise ConnectionError("redis down")

    async def incr(self, key: str) -> int:
        raise ConnectionError("redis down")


@pytest.fixture
def fake_redis() -> _FakeRedis:
    return _FakeRedis()


@pytest.fixture
def cache(fake_redis: _FakeRedis) -> JsonCache:
    json_cache = JsonCache("redis://test", ttl_seconds=30)
    json_cache._client = fake_redis  # type: ignore[assignment]
    return json_cache


@pytest.mark.asyncio
async def test_cached_json_coalesces_inflight(cache: JsonCache) -> None:
    calls = 0

    async def loader() -> dict[str, int]:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return {"value": 123}

    adapter = TypeAdapter(dict[str, int])

    results = await asyncio.gather(
        *[cache.cached_json("key:1", loader=loader, adapter=adapter) for _ in range(10)]
    )

    assert calls == 1
    assert results == [{"value": 123}] * 10

    # Second read should be a cache hit and not invoke loader again.
    calls = 0
    hit = await cache.cached_json("key:1", loader=loader, adapter=adapter)
    assert calls == 0
    assert hit == {"value": 123}


@pytest.mark.asyncio
async def test_bump_version_and_get_version(cache: JsonCache) -> None:
    assert await cache.get_version("employees") == 0

    await cache.bump_version("employees")
    await cache.bump_version("employees")

    assert await cache.get_version("employees") == 2
    assert await cache.get_version("devices") == 0


@pytest.mark.asyncio
async def test_corrupt_entry_is_dropped_and_reloaded(cache: JsonCache, fake_redis: _FakeRedis) -> None:
    await fake_redis.set("key:bad", b"{not json")

    async def loader() -> list[int]:
        return [1, 2]

    result = await cache.cached_json("key:bad", loader=loader, adapter=TypeAdapter(list[int]))

    assert result == [1, 2]
    assert fake_redis._store["key:bad"] == b"[1,2]"


@pytest.mark.asyncio
async def test_disabled_cache_always_loads() -> None:
    cache = JsonCache(None)
    calls = 0

    async def loader() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await cache.connect() is None
    assert cache.enabled is False
    assert await cache.cached_json("k", loader=loader, adapter=TypeAdapter(int)) == 1
    assert await cache.cached_json("k", loader=loader, adapter=TypeAdapter(int)) == 2
    assert await cache.get_version("employees") == 0


@pytest.mark.asyncio
async def test_redis_errors_fall_back_to_loader() -> None:
    cache = JsonCache("redis://test")
    cache._client = _BrokenRedis()  # type: ignore[assignment]

    async def loader() -> str:
        return "fresh"

    assert await cache.cached_json("k", loader=loader, adapter=TypeAdapter(str)) == "fresh"
    await cache.bump_version("employees")
    assert await cache.get_version("employees") == 0


@pytest.mark.asyncio
async def test_close_releases_client(cache: JsonCache, fake_redis: _FakeRedis) -> None:
    await cache.close()

    assert fake_redis.closed is True
    assert cache.enabled is False
