"""Per-(tenant, platform) mutual exclusion around credential refresh."""

import asyncio
import logging
from contextlib import asynccontextmanager

from redis.exceptions import LockError

logger = logging.getLogger(__name__)


class CredentialLockTimeout(Exception):
    """Another worker held the credential lock for longer than the TTL."""


class CredentialLocks:
    """In-process asyncio locks, backed by Redis locks across processes.

    An asyncio lock exists only while someone holds or waits for it.
    """

    def __init__(self, redis=None, ttl_seconds: float = 60, poll_interval: float = 0.1):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.poll_interval = poll_interval
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, tenant_id: str, platform: str):
        key = f"{tenant_id}:{platform}"
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                if self.redis is None:
                    yield
                else:
                    async with self._redis_lock(f"postflow:credlock:{key}"):
                        yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def _redis_lock(self, name: str):
        # Token-checked release: an expired lock taken over elsewhere is left alone
        redis_lock = self.redis.lock(
            name,
            timeout=self.ttl_seconds,
            sleep=self.poll_interval,
            blocking_timeout=self.ttl_seconds,
        )
        if not await redis_lock.acquire():
            raise CredentialLockTimeout(f"credential lock {name} busy")
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError:
                logger.warning("Credential lock %s expired before it was released", name)
