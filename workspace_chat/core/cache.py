"""
Redis caching layer for user directory lookups.

Provides graceful degradation: when REDIS_URL is empty or Redis is down,
every call behaves like a cache miss instead of failing the request.

Usage:
    from workspace_chat.core.cache import cache

    name = await cache.get("user:123:name")
    if name is None:
        name = await load_name()
        await cache.set("user:123:name", name, ttl=300)
"""

from typing import Optional, Any

from redis import asyncio as aioredis

from workspace_chat.config import settings
from workspace_chat.core.logging_config import get_logger

logger = get_logger(__name__)


class CacheBackend:
    """Cache interface with graceful Redis fallback."""

    def __init__(self):
        self.redis: Optional[Any] = None
        self.enabled = False

    async def initialize(self):
        """Connect to Redis if REDIS_URL is configured."""
        if not settings.REDIS_URL:
            logger.info("cache_disabled", reason="no_redis_url_configured")
            return

        try:
            self.redis = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=2,  # Fast timeout to avoid blocking requests
                socket_connect_timeout=2
            )
            await self.redis.ping()
            self.enabled = True
            logger.info("cache_enabled")
        except Exception as e:
            logger.warning("cache_initialization_failed", error=str(e))
            self.enabled = False

    async def close(self):
        if self.redis:
            try:
                await self.redis.aclose()
            except Exception as e:
                logger.error("cache_close_error", error=str(e))

    async def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None when disabled, missing or on Redis errors."""
        if not self.enabled or not self.redis:
            return None

        try:
            value = await self.redis.get(key)
            logger.debug("cache_hit" if value else "cache_miss", key=key)
            return value
        except Exception as e:
            logger.error("cache_get_error", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        if not self.enabled or not self.redis:
            return False

        try:
            await self.redis.setex(key, ttl, value)
            logger.debug("cache_set", key=key, ttl=ttl)
            return True
        except Exception as e:
            logger.error("cache_set_error", key=key, error=str(e))
            return False

    async def ping(self) -> bool:
        if not self.enabled or not self.redis:
            return False
        try:
            await self.redis.ping()
            return True
        except Exception as e:
            logger.warning("cache_ping_failed", error=str(e))
            return False


cache = CacheBackend()
