"""Redis client wrapper used for the alert side channel."""

from typing import Optional
import redis

from accademia.core.config import settings


class CacheService:
    """Redis-backed pub/sub helper. Every failure is non-fatal."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._client

    def publish(self, channel: str, message: str) -> bool:
        """Publish a message to a Redis channel. Returns False when Redis is down."""
        try:
            self.client.publish(channel, message)
            return True
        except redis.RedisError:
            return False

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


cache_service = CacheService()
