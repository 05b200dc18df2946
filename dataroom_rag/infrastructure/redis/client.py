"""Lock and queue store adapters.

The indexing queue needs a small subset of Redis: an atomic
set-if-not-exists with TTL for the per-dataroom lock, a TTL'd sorted set for
the per-dataroom request queue, and existence/length/delete operations.

Sorted-set members come back either as raw strings or, with clients that
deserialize JSON on their own, as already-parsed records. Both are
represented explicitly as ``RawValue`` / ``ParsedValue`` here so callers
normalize in one place.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

import redis.asyncio as aioredis

from ..config.settings import Settings
from ..logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RawValue:
    """A member returned as an undecoded string."""

    text: str


@dataclass(frozen=True)
class ParsedValue:
    """A member the client already decoded into a record."""

    record: Dict[str, Any]

    def serialize(self) -> str:
        return json.dumps(self.record, separators=(",", ":"))


StoredValue = Union[RawValue, ParsedValue]


def to_stored_value(value: Any) -> StoredValue:
    """Tag a value returned by a store client."""
    if isinstance(value, bytes):
        return RawValue(value.decode("utf-8"))
    if isinstance(value, str):
        return RawValue(value)
    if isinstance(value, dict):
        return ParsedValue(value)
    raise TypeError(f"Unsupported stored value type: {type(value).__name__}")


class KeyValueStore(Protocol):
    """Operations the queue manager needs from the shared store."""

    async def set(self, key: str, value: str, *, if_not_exists: bool = False, ttl_seconds: Optional[int] = None) -> bool: ...

    async def exists(self, key: str) -> bool: ...

    async def delete(self, key: str) -> None: ...

    async def zadd(self, key: str, score: float, member: str) -> None: ...

    async def zrange(self, key: str, start: int, end: int) -> List[StoredValue]: ...

    async def zrem(self, key: str, member: str) -> int: ...

    async def zcard(self, key: str) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> None: ...

    async def close(self) -> None: ...


class RedisKeyValueStore:
    """``KeyValueStore`` backed by ``redis.asyncio``."""

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str, max_connections: int = 20) -> "RedisKeyValueStore":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True, max_connections=max_connections)
        return cls(client)

    async def set(self, key: str, value: str, *, if_not_exists: bool = False, ttl_seconds: Optional[int] = None) -> bool:
        result = await self._client.set(key, value, nx=if_not_exists, ex=ttl_seconds)
        return bool(result)

    async def exists(self, key: str) -> bool:
        return bool(await self._client.exists(key))

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def zadd(self, key: str, score: float, member: str) -> None:
        await self._client.zadd(key, {member: score})

    async def zrange(self, key: str, start: int, end: int) -> List[StoredValue]:
        members = await self._client.zrange(key, start, end)
        return [to_stored_value(member) for member in members]

    async def zrem(self, key: str, member: str) -> int:
        return int(await self._client.zrem(key, member))

    async def zcard(self, key: str) -> int:
        return int(await self._client.zcard(key))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        await self._client.expire(key, ttl_seconds)

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis connection closed")


class MemoryKeyValueStore:
    """In-process ``KeyValueStore`` with Redis expiry semantics.

    Operations never await, so each one is atomic with respect to other
    coroutines on the same loop. ``clock`` returns seconds and can be replaced
    to simulate TTL expiry.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._strings: Dict[str, str] = {}
        self._sorted_sets: Dict[str, Dict[str, float]] = {}
        self._expiry: Dict[str, float] = {}

    def _purge_if_expired(self, key: str) -> None:
        expires_at = self._expiry.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._strings.pop(key, None)
            self._sorted_sets.pop(key, None)
            self._expiry.pop(key, None)

    def _has_key(self, key: str) -> bool:
        self._purge_if_expired(key)
        return key in self._strings or key in self._sorted_sets

    def _sorted_members(self, key: str) -> List[Tuple[str, float]]:
        members = self._sorted_sets.get(key, {})
        return sorted(members.items(), key=lambda item: (item[1], item[0]))

    async def set(self, key: str, value: str, *, if_not_exists: bool = False, ttl_seconds: Optional[int] = None) -> bool:
        if if_not_exists and self._has_key(key):
            return False
        self._sorted_sets.pop(key, None)
        self._strings[key] = value
        if ttl_seconds is not None:
            self._expiry[key] = self._clock() + ttl_seconds
        else:
            self._expiry.pop(key, None)
        return True

    async def exists(self, key: str) -> bool:
        return self._has_key(key)

    async def delete(self, key: str) -> None:
        self._strings.pop(key, None)
        self._sorted_sets.pop(key, None)
        self._expiry.pop(key, None)

    async def zadd(self, key: str, score: float, member: str) -> None:
        self._purge_if_expired(key)
        self._sorted_sets.setdefault(key, {})[member] = score

    async def zrange(self, key: str, start: int, end: int) -> List[StoredValue]:
        self._purge_if_expired(key)
        members = self._sorted_members(key)
        stop = len(members) if end == -1 else end + 1
        return [RawValue(member) for member, _ in members[start:stop]]

    async def zrem(self, key: str, member: str) -> int:
        self._purge_if_expired(key)
        members = self._sorted_sets.get(key)
        if not members or member not in members:
            return 0
        del members[member]
        if not members:
            await self.delete(key)
        return 1

    async def zcard(self, key: str) -> int:
        self._purge_if_expired(key)
        return len(self._sorted_sets.get(key, {}))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        if self._has_key(key):
            self._expiry[key] = self._clock() + ttl_seconds

    async def close(self) -> None:
        self._strings.clear()
        self._sorted_sets.clear()
        self._expiry.clear()


def create_key_value_store(settings: Settings) -> KeyValueStore:
    """Build the store selected by ``REDIS_URL``."""
    if settings.REDIS_URL.startswith("memory://"):
        logger.warning("Using in-process lock and queue store; workers in other processes are not coordinated")
        return MemoryKeyValueStore()
    return RedisKeyValueStore.from_url(settings.REDIS_URL, max_connections=settings.REDIS_MAX_CONNECTIONS)
