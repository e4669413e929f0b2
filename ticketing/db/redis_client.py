"""
Redis client for Ticketing Service.
Handles availability caching, distributed locking and domain-event publishing.
Every operation degrades to a logged no-op when Redis is unreachable, except
lock acquisition, which fails loudly.
"""

import asyncio
import json
import time
import uuid
from typing import Optional, Dict, Any
import redis.asyncio as redis
from redis.asyncio import Redis
import logging

from ticketing.core.config import config
from ticketing.core.errors import LockUnavailableError

logger = logging.getLogger(__name__)

# Delete the key only while it still holds our token
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisManager:
    """
    Redis manager for caching, locking and pub/sub.
    """

    def __init__(self):
        self.redis_client: Optional[Redis] = None
        self._initialized = False

    async def initialize(self):
        """Initialize Redis connection."""
        if self._initialized:
            return

        try:
            redis_url = await config.get_redis_url()
            self.redis_client = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

            await self.redis_client.ping()
            self._initialized = True
            logger.info("Redis client initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis client: {e}")
            raise

    async def close(self):
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
        self._initialized = False
        logger.info("Redis connection closed")

    # Cache Operations
    async def get(self, key: str) -> Optional[str]:
        """Get value from cache."""
        try:
            await self.initialize()
            return await self.redis_client.get(key)
        except Exception as e:
            logger.error(f"Redis get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set value in cache with optional TTL."""
        try:
            await self.initialize()
            if ttl:
                return bool(await self.redis_client.setex(key, ttl, value))
            return bool(await self.redis_client.set(key, value))
        except Exception as e:
            logger.error(f"Redis set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            await self.initialize()
            result = await self.redis_client.delete(key)
            return result > 0
        except Exception as e:
            logger.error(f"Redis delete error for key {key}: {e}")
            return False

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Get JSON value from cache."""
        value = await self.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                logger.error(f"JSON decode error for key {key}: {e}")
        return None

    async def set_json(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """Set JSON value in cache."""
        try:
            json_value = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"JSON encode error for key {key}: {e}")
            return False
        return await self.set(key, json_value, ttl)

    # Pub/Sub
    async def publish(self, channel: str, message: str) -> int:
        """Publish a message; returns the number of receivers."""
        try:
            await self.initialize()
            return await self.redis_client.publish(channel, message)
        except Exception as e:
            logger.error(f"Redis publish error on channel {channel}: {e}")
            return 0

    # Distributed Locking
    async def acquire_lock(self, lock_key: str, timeout: int = 30, blocking_timeout: int = 10) -> Optional[str]:
        """
        Acquire a distributed lock.

        Args:
            lock_key: Unique key for the lock
            timeout: Lock timeout in seconds
            blocking_timeout: Maximum time to wait for lock acquisition

        Returns:
            The owner token to pass to release_lock, or None if not acquired
        """
        try:
            await self.initialize()
        except Exception:
            return None

        task = asyncio.current_task()
        lock_value = f"{uuid.uuid4().hex}:{task.get_name() if task else 'main'}"
        end_time = time.time() + blocking_timeout

        while time.time() < end_time:
            try:
                result = await self.redis_client.set(lock_key, lock_value, nx=True, ex=timeout)
                if result:
                    logger.debug(f"Distributed lock acquired: {lock_key}")
                    return lock_value

                await asyncio.sleep(0.1)

            except Exception as e:
                logger.error(f"Error acquiring lock {lock_key}: {e}")
                return None

        logger.warning(f"Failed to acquire lock {lock_key} within {blocking_timeout}s")
        return None

    async def release_lock(self, lock_key: str, lock_value: str) -> bool:
        """
        Release a distributed lock held under lock_value.
        A lock that expired and was taken by another owner is left alone.
        """
        try:
            result = await self.redis_client.eval(RELEASE_LOCK_SCRIPT, 1, lock_key, lock_value)
            if result:
                logger.debug(f"Distributed lock released: {lock_key}")
                return True
            logger.warning(f"Lock {lock_key} was no longer held by this owner")
            return False
        except Exception as e:
            logger.error(f"Error releasing lock {lock_key}: {e}")
            return False

    async def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            await self.initialize()
            return await self.redis_client.ping() is True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False


# Global Redis manager instance
redis_manager = RedisManager()


class DistributedLock:
    """
    Context manager for distributed locks with automatic cleanup.
    """

    def __init__(self, redis_manager: RedisManager, lock_key: str, timeout: int = 30, blocking_timeout: int = 10):
        self.redis_manager = redis_manager
        self.lock_key = lock_key
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self.lock_value: Optional[str] = None

    @property
    def acquired(self) -> bool:
        return self.lock_value is not None

    async def __aenter__(self):
        self.lock_value = await self.redis_manager.acquire_lock(
            self.lock_key,
            self.timeout,
            self.blocking_timeout
        )
        if not self.acquired:
            raise LockUnavailableError(self.lock_key)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.acquired:
            await self.redis_manager.release_lock(self.lock_key, self.lock_value)
            self.lock_value = None


def get_distributed_lock(lock_key: str, timeout: int = 30, blocking_timeout: int = 10) -> DistributedLock:
    """Get a distributed lock context manager."""
    return DistributedLock(redis_manager, lock_key, timeout, blocking_timeout)
