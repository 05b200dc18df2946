"""Tests for the lock and queue store adapters."""

import json
from unittest.mock import AsyncMock

import pytest

from dataroom_rag.infrastructure.config.settings import Settings
from dataroom_rag.infrastructure.redis import MemoryKeyValueStore, ParsedValue, RawValue, RedisKeyValueStore, create_key_value_store
from dataroom_rag.infrastructure.redis.client import to_stored_value


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(clock):
    return MemoryKeyValueStore(clock=clock)


@pytest.mark.asyncio
async def test_set_if_not_exists(store: MemoryKeyValueStore, clock: Clock):
    assert await store.set("lock", "1", if_not_exists=True, ttl_seconds=10) is True
    assert await store.set("lock", "2", if_not_exists=True, ttl_seconds=10) is False

    clock.now += 10

    assert await store.exists("lock") is False
    assert await store.set("lock", "3", if_not_exists=True, ttl_seconds=10) is True


@pytest.mark.asyncio
async def test_plain_set_overwrites_and_clears_ttl(store: MemoryKeyValueStore, clock: Clock):
    await store.set("key", "1", ttl_seconds=5)
    await store.set("key", "2")

    clock.now += 60

    assert await store.exists("key") is True


@pytest.mark.asyncio
async def test_sorted_set_orders_by_score(store: MemoryKeyValueStore):
    await store.zadd("queue", 3, "c")
    await store.zadd("queue", 1, "a")
    await store.zadd("queue", 2, "b")

    assert await store.zrange("queue", 0, -1) == [RawValue("a"), RawValue("b"), RawValue("c")]
    assert await store.zrange("queue", 0, 0) == [RawValue("a")]
    assert await store.zcard("queue") == 3


@pytest.mark.asyncio
async def test_zrem_deletes_empty_set(store: MemoryKeyValueStore):
    await store.zadd("queue", 1, "a")

    assert await store.zrem("queue", "a") == 1
    assert await store.zrem("queue", "a") == 0
    assert await store.exists("queue") is False


@pytest.mark.asyncio
async def test_expire_applies_to_sorted_sets(store: MemoryKeyValueStore, clock: Clock):
    await store.zadd("queue", 1, "a")
    await store.expire("queue", 30)

    clock.now += 29
    assert await store.zcard("queue") == 1

    clock.now += 1
    assert await store.zcard("queue") == 0


@pytest.mark.asyncio
async def test_expire_on_missing_key_is_a_no_op(store: MemoryKeyValueStore, clock: Clock):
    await store.expire("missing", 30)
    await store.zadd("missing", 1, "a")

    clock.now += 60

    assert await store.zcard("missing") == 1


def test_stored_values_are_tagged():
    assert to_stored_value("text") == RawValue("text")
    assert to_stored_value(b"bytes") == RawValue("bytes")
    assert to_stored_value({"a": 1}) == ParsedValue({"a": 1})
    assert json.loads(ParsedValue({"a": 1}).serialize()) == {"a": 1}
    with pytest.raises(TypeError):
        to_stored_value(42)


@pytest.mark.asyncio
async def test_redis_store_maps_operations():
    client = AsyncMock()
    client.set.return_value = None
    client.exists.return_value = 1
    client.zrange.return_value = ["m1", {"dataroomId": "dr_1"}]
    client.zrem.return_value = 1
    client.zcard.return_value = 2
    store = RedisKeyValueStore(client)

    assert await store.set("lock", "123", if_not_exists=True, ttl_seconds=600) is False
    client.set.assert_awaited_once_with("lock", "123", nx=True, ex=600)

    assert await store.exists("lock") is True
    await store.zadd("queue", 5.0, "m1")
    client.zadd.assert_awaited_once_with("queue", {"m1": 5.0})

    assert await store.zrange("queue", 0, -1) == [RawValue("m1"), ParsedValue({"dataroomId": "dr_1"})]
    assert await store.zrem("queue", "m1") == 1
    assert await store.zcard("queue") == 2

    await store.expire("queue", 3600)
    client.expire.assert_awaited_once_with("queue", 3600)

    await store.close()
    client.aclose.assert_awaited_once()


def test_memory_url_selects_in_process_store():
    settings = Settings(REDIS_URL="memory://")

    assert isinstance(create_key_value_store(settings), MemoryKeyValueStore)


def test_redis_url_selects_redis_store():
    settings = Settings(REDIS_URL="redis://localhost:6379/0")

    assert isinstance(create_key_value_store(settings), RedisKeyValueStore)
