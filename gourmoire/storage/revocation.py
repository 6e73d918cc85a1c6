"""Key-value adapter for blacklist entries and logout watermarks.

Only ``get``/``put``/``delete`` with a TTL are required of a backend. No
multi-key transactions are assumed.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis import Redis, RedisError

from gourmoire.logging import get_logger
from gourmoire.service.errors import StoreUnavailable

logger = get_logger(__name__)

DAY_SECONDS = 24 * 60 * 60
ACCESS_BLACKLIST_TTL = DAY_SECONDS
REFRESH_BLACKLIST_TTL = 90 * DAY_SECONDS
LOGOUT_WATERMARK_TTL = 90 * DAY_SECONDS

BLACKLIST_SENTINEL = "true"


def blacklist_key(token: str) -> str:
    return f"blacklist:{token}"


def logout_key(user_id: str) -> str:
    return f"user_logout:{user_id}"


def refresh_record_key(user_id: str, minted_ms: int) -> str:
    return f"refresh_token:{user_id}:{minted_ms}"


class RevocationStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


class RedisRevocationStore:
    """Revocation state in Redis; every call failure surfaces as ``StoreUnavailable``."""

    backend = "redis"

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving traffic."""
        # Short-lived sync client so the async client is not bound to a startup loop
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    def _unavailable(self, op: str, key: str, exc: RedisError) -> StoreUnavailable:
        logger.error(
            "revocation_store_error",
            op=op,
            key_prefix=key.split(":", 1)[0],
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return StoreUnavailable(
            "Revocation store unavailable", detail={"op": op}
        )

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except RedisError as exc:
            raise self._unavailable("get", key, exc) from exc

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=max(1, int(ttl_seconds)))
        except RedisError as exc:
            raise self._unavailable("put", key, exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as exc:
            raise self._unavailable("delete", key, exc) from exc

    async def close(self) -> None:
        """Close the connection pool on shutdown or runtime reset."""
        await self.client.aclose()


class MemoryRevocationStore:
    """Process-local TTL map used when Redis is not available."""

    backend = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def _sweep(self, now: float) -> None:
        # Refresh records and unreplayed blacklist keys are never read back
        expired = [
            key for key, (_, expires_at) in self._entries.items() if expires_at <= now
        ]
        for key in expired:
            del self._entries[key]

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = (value, now + max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or None when absent."""
        with self._lock:
            if self._live(key) is None:
                return None
            return self._entries[key][1] - self._clock()

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [
                key
                for key in list(self._entries)
                if key.startswith(prefix) and self._live(key) is not None
            ]

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
