"""
Redis Connection Manager
Owns the async connection pool behind the Redis job table.
"""

import logging
from typing import Optional
from urllib.parse import urlsplit

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError, TimeoutError

logger = logging.getLogger(__name__)


def masked_url(url: str) -> str:
    """Redis URL with any credentials replaced, for logs and health output."""
    parts = urlsplit(url)
    if not parts.password and not parts.username:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://***@{host}{parts.path}"


class RedisManager:
    """
    Lazily creates one pooled `redis.asyncio.Redis` client.

    Jobs are stored as JSON text, so the pool decodes responses to str.
    """

    def __init__(self, url: str, max_connections: int = 10):
        self.url = url
        self.max_connections = max_connections
        self._client: Optional[Redis] = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            pool = ConnectionPool.from_url(
                self.url,
                max_connections=self.max_connections,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                decode_responses=True,
            )
            self._client = Redis(connection_pool=pool)
            logger.info(f"Created Redis connection pool for {masked_url(self.url)}")
        return self._client

    async def ping(self) -> bool:
        """True when the server answers; failures are logged, not raised."""
        try:
            return bool(await self.client.ping())
        except (ConnectionError, TimeoutError, OSError) as e:
            logger.error(f"Redis ping to {masked_url(self.url)} failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.aclose()
        await client.connection_pool.disconnect()
        logger.info("Redis connection pool closed")


__all__ = ["RedisManager", "masked_url"]
