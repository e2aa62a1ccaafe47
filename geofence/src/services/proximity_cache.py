"""
Proximity verdict cache.

Maps a normalized client address to its cached "is near" verdict so that
recurring clients do not cost a provider call on every request.

Backends:
- InMemoryProximityCache: process-local, lazy expiry on read plus an
  optional background sweep
- RedisProximityCache: shared through Redis, expiry handled by Redis

Both are safe for concurrent readers and writers. Writes are single-key
overwrites (last write wins).
"""

import asyncio
import threading
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from geofence.src.config.validation import GeofenceConfig, RedisConfig
from geofence.src.services.exceptions import CacheBackendError
from geofence.src.utils.logging_config import get_logger


logger = get_logger("cache")

KEY_PREFIX = "geofence:"


class ProximityCache(ABC):
    """Key-value store of address -> is-near verdicts with expiration."""

    @abstractmethod
    async def get(self, address: str) -> Optional[bool]:
        """Return the cached verdict, or None if absent or expired."""

    @abstractmethod
    async def put(self, address: str, is_near: bool, ttl: Optional[timedelta]) -> None:
        """Store a verdict. A ttl of None keeps it until evicted externally."""

    async def aclose(self) -> None:
        """Release backend resources."""


class InMemoryProximityCache(ProximityCache):
    """
    Process-local verdict cache.

    Expired entries are dropped when read, and by ``sweep()`` which the
    optional background sweeper calls periodically.
    """

    def __init__(self, clock=time.monotonic):
        self._entries: Dict[str, Tuple[bool, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweeper: Optional[asyncio.Task] = None

    async def get(self, address: str) -> Optional[bool]:
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                return None
            is_near, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                del self._entries[address]
                return None
            return is_near

    async def put(self, address: str, is_near: bool, ttl: Optional[timedelta]) -> None:
        expires_at = None
        if ttl is not None and ttl > timedelta(0):
            expires_at = self._clock() + ttl.total_seconds()
        with self._lock:
            self._entries[address] = (is_near, expires_at)

    def sweep(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [
                address
                for address, (_, expires_at) in self._entries.items()
                if expires_at is not None and expires_at <= now
            ]
            for address in expired:
                del self._entries[address]
        if expired:
            logger.debug("Swept %d expired proximity cache entries", len(expired))
        return len(expired)

    def start_sweeper(self, interval: float = 60.0) -> asyncio.Task:
        """Start a background task calling ``sweep()`` every ``interval`` seconds."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    async def aclose(self) -> None:
        await self.stop_sweeper()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisProximityCache(ProximityCache):
    """
    Verdict cache shared through Redis.

    A failed read counts as a miss. A failed write raises CacheBackendError.
    """

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisProximityCache":
        client = aioredis.Redis(
            host=config.host,
            port=config.port,
            db=config.db_index,
            username=config.username or None,
            password=config.password or None,
            decode_responses=True,
        )
        return cls(client)

    async def get(self, address: str) -> Optional[bool]:
        try:
            value = await self._client.get(KEY_PREFIX + address)
        except (RedisError, OSError) as e:
            logger.warning("Proximity cache read failed for %s: %s", address, e)
            return None
        if value is None:
            return None
        return value in ("1", b"1")

    async def put(self, address: str, is_near: bool, ttl: Optional[timedelta]) -> None:
        px = None
        if ttl is not None and ttl > timedelta(0):
            px = max(1, int(ttl.total_seconds() * 1000))
        try:
            await self._client.set(KEY_PREFIX + address, "1" if is_near else "0", px=px)
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"proximity cache write failed: {e}", key=address) from e

    async def aclose(self) -> None:
        await self._client.aclose()


def build_cache(config: GeofenceConfig) -> ProximityCache:
    """Create the cache backend selected by the configuration."""
    if config.redis is not None:
        logger.info(
            "Using Redis proximity cache at %s (db %d)",
            config.redis.address,
            config.redis.db_index,
        )
        return RedisProximityCache.from_config(config.redis)
    return InMemoryProximityCache()
