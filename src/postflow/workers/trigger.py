"""At-time trigger backed by a Redis sorted set scored by due timestamp."""

import logging
from datetime import datetime

logger = logging.getLogger(__name__)


class RedisAtTimeTrigger:
    """Delivers job ids at or after their due time.

    Delivery is at-least-once across registrations but a single registration
    is handed to exactly one poller: only the caller whose ZREM removed the
    member gets it. The executor's claim makes early or repeated deliveries
    harmless either way.
    """

    def __init__(self, redis, key: str = "postflow:due"):
        self.redis = redis
        self.key = key

    async def register(self, job_id: str, due_at: datetime) -> str | None:
        """Schedule a delivery; returns the trigger reference or None if Redis failed."""
        try:
            await self.redis.zadd(self.key, {job_id: due_at.timestamp()})
        except Exception as exc:
            logger.warning("Failed to register trigger for job %s: %s", job_id, exc)
            return None
        return f"{self.key}:{job_id}"

    async def remove(self, job_id: str) -> None:
        try:
            await self.redis.zrem(self.key, job_id)
        except Exception as exc:
            logger.warning("Failed to remove trigger for job %s: %s", job_id, exc)

    async def pop_due(self, now: datetime, limit: int = 10) -> list[str]:
        """Take up to ``limit`` job ids whose due time has passed."""
        members = await self.redis.zrangebyscore(self.key, "-inf", now.timestamp(), start=0, num=limit)
        delivered = []
        for member in members:
            job_id = member.decode() if isinstance(member, bytes) else member
            if await self.redis.zrem(self.key, job_id):
                delivered.append(job_id)
        return delivered
