"""
Distributed class lock backed by Redis.
Implements ClassLock for deployments with several worker processes.

Failure policy:
  Unlike a cache, this lock is part of the correctness path, so a Redis
  outage fails CLOSED: acquisition errors surface as LockTimeout, the
  controller retries, and the caller finally sees TransientConflict.
  The database row lock and unique constraint stay authoritative; the Redis
  lock keeps contending workers from piling onto the same class row.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

import redis.asyncio as redis
from redis.exceptions import LockError, LockNotOwnedError, RedisError

from enrollment.core.exceptions import LockTimeout
from enrollment.core.logging import get_logger
from enrollment.infrastructure.redis_client import close_redis
from enrollment.services.interfaces.class_lock import ClassLock

logger = get_logger(__name__)


class RedisClassLock(ClassLock):
    """
    Redis lock per class, named `enrollment:class-lock:<class_id>`.

    `ttl` bounds how long a crashed holder can block a class; it must be
    longer than the slowest admission transaction.
    """

    key_prefix = "enrollment:class-lock:"

    def __init__(self, client: redis.Redis, timeout: Optional[float] = 10.0, ttl: float = 30.0):
        self.redis = client
        self.timeout = timeout
        self.ttl = ttl

    def key(self, class_id: UUID) -> str:
        return f"{self.key_prefix}{class_id}"

    @asynccontextmanager
    async def hold(self, class_id: UUID) -> AsyncIterator[None]:
        lock = self.redis.lock(
            self.key(class_id),
            timeout=self.ttl,
            blocking=True,
            blocking_timeout=self.timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error("class_lock_unavailable", class_id=str(class_id), error=str(e))
            raise LockTimeout(class_id, self.timeout) from e
        if not acquired:
            raise LockTimeout(class_id, self.timeout)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockNotOwnedError:
                # TTL expired while we held it; the transaction already finished
                logger.warning("class_lock_expired", class_id=str(class_id), ttl=self.ttl)
            except (LockError, RedisError) as e:
                logger.error("class_lock_release_failed", class_id=str(class_id), error=str(e))

    async def close(self) -> None:
        await close_redis(self.redis)
