"""Expiring key-value stores for OTP records.

An OTP record is a flat mapping of string fields (``code``,
``attempts``, ``created_at``) kept under one key with a TTL.  The store
is the only shared mutable state of the OTP workflow, so every backend
exposes the two atomic primitives verification relies on:

* :meth:`OtpStore.increment` bumps a numeric field only if the record
  still exists and resets its TTL in the same step;
* :meth:`OtpStore.forget` reports whether *this* call removed the
  record, which makes a successful verification exactly-once.

Use :class:`RedisOtpStore` whenever more than one process verifies
codes; :class:`InMemoryOtpStore` is only consistent inside a single
process.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class OtpStore(Protocol):
    """Async expiring store interface."""

    async def get(self, key: str) -> dict[str, str] | None: ...

    async def put(self, key: str, record: Mapping[str, Any], ttl_seconds: int) -> None: ...

    async def forget(self, key: str) -> bool: ...

    async def has(self, key: str) -> bool: ...

    async def increment(self, key: str, field: str, ttl_seconds: int) -> int | None: ...


def _stringify(record: Mapping[str, Any]) -> dict[str, str]:
    return {name: str(value) for name, value in record.items()}


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------

# KEYS[1] = record key, ARGV[1] = field, ARGV[2] = ttl seconds.
# Returns the new value, or nil when the record no longer exists.
_INCREMENT_IF_EXISTS = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return false
end
local value = redis.call('HINCRBY', KEYS[1], ARGV[1], 1)
redis.call('EXPIRE', KEYS[1], ARGV[2])
return value
"""


class RedisOtpStore:
    """Redis-backed store: one hash per record, TTL via ``EXPIRE``."""

    __slots__ = ("_increment_script", "_namespace", "_redis")

    def __init__(self, redis: Any, *, namespace: str = "") -> None:
        self._redis = redis
        self._namespace = namespace
        self._increment_script = redis.register_script(_INCREMENT_IF_EXISTS)

    @classmethod
    def from_url(cls, url: str, *, namespace: str = "", max_connections: int = 20) -> RedisOtpStore:
        import redis.asyncio as aioredis

        pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        return cls(aioredis.Redis(connection_pool=pool), namespace=namespace)

    def _make_key(self, key: str) -> str:
        if self._namespace:
            return f"{self._namespace}{key}"
        return key

    # -- OtpStore interface ----------------------------------------------------

    async def get(self, key: str) -> dict[str, str] | None:
        raw = await self._redis.hgetall(self._make_key(key))
        if not raw:
            return None
        return {_text(name): _text(value) for name, value in raw.items()}

    async def put(self, key: str, record: Mapping[str, Any], ttl_seconds: int) -> None:
        full_key = self._make_key(key)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(full_key)
            pipe.hset(full_key, mapping=_stringify(record))
            pipe.expire(full_key, ttl_seconds)
            await pipe.execute()

    async def forget(self, key: str) -> bool:
        return bool(await self._redis.delete(self._make_key(key)))

    async def has(self, key: str) -> bool:
        return bool(await self._redis.exists(self._make_key(key)))

    async def increment(self, key: str, field: str, ttl_seconds: int) -> int | None:
        value = await self._increment_script(keys=[self._make_key(key)], args=[field, ttl_seconds])
        return int(value) if value is not None else None

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        await self._redis.aclose()

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False


def _text(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class _StoreEntry:
    """Single record with its absolute expiry on the monotonic clock."""

    __slots__ = ("expires_at", "record")

    def __init__(self, record: dict[str, str], ttl_seconds: int) -> None:
        self.record = record
        self.expires_at = time.monotonic() + ttl_seconds

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class InMemoryOtpStore:
    """Process-local store guarded by an :class:`asyncio.Lock`.

    Expired entries are evicted lazily on access.  Suitable for tests
    and single-process deployments only.
    """

    __slots__ = ("_data", "_lock", "_namespace")

    def __init__(self, *, namespace: str = "") -> None:
        self._namespace = namespace
        self._data: dict[str, _StoreEntry] = {}
        self._lock = asyncio.Lock()

    def _make_key(self, key: str) -> str:
        if self._namespace:
            return f"{self._namespace}{key}"
        return key

    def _live(self, full_key: str) -> _StoreEntry | None:
        entry = self._data.get(full_key)
        if entry is None:
            return None
        if entry.expired:
            del self._data[full_key]
            return None
        return entry

    # -- OtpStore interface ----------------------------------------------------

    async def get(self, key: str) -> dict[str, str] | None:
        async with self._lock:
            entry = self._live(self._make_key(key))
            return dict(entry.record) if entry is not None else None

    async def put(self, key: str, record: Mapping[str, Any], ttl_seconds: int) -> None:
        async with self._lock:
            self._data[self._make_key(key)] = _StoreEntry(_stringify(record), ttl_seconds)

    async def forget(self, key: str) -> bool:
        async with self._lock:
            entry = self._data.pop(self._make_key(key), None)
            return entry is not None and not entry.expired

    async def has(self, key: str) -> bool:
        async with self._lock:
            return self._live(self._make_key(key)) is not None

    async def increment(self, key: str, field: str, ttl_seconds: int) -> int | None:
        async with self._lock:
            full_key = self._make_key(key)
            entry = self._live(full_key)
            if entry is None:
                return None
            value = int(entry.record.get(field, "0")) + 1
            record = {**entry.record, field: str(value)}
            self._data[full_key] = _StoreEntry(record, ttl_seconds)
            return value

    @property
    def size(self) -> int:
        """Return the current number of (possibly expired) entries."""
        return len(self._data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_store(redis_url: str | None, *, namespace: str = "") -> OtpStore:
    """Build the store for *redis_url*, or an in-memory one when it is unset."""
    if redis_url:
        logger.info("otp_store.redis", namespace=namespace)
        return RedisOtpStore.from_url(redis_url, namespace=namespace)

    logger.warning("otp_store.inmemory_single_process_only", namespace=namespace)
    return InMemoryOtpStore(namespace=namespace)
