"""
Redis client with connection pooling for dashboard aggregate caching.

The cache is optional: callers treat every RedisError or ConnectionError as
a miss and fall back to computing the value.
"""

import json
from typing import Any, Optional, Union

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from brokerage.core.config import get_settings
from brokerage.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Async Redis client with connection pooling and retry logic.

    Values are stored as JSON strings.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        health_check_interval: int = 30,
    ):
        settings = get_settings()
        self._url = url or settings.redis_url
        self._max_connections = max_connections or settings.redis_max_connections
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._health_check_interval = health_check_interval

        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._is_connected = False

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """
        Strip credentials from a Redis URL for logging.

        >>> RedisClient._sanitize_url("redis://:pw@cache:6379/0")
        'redis://***@cache:6379/0'
        """
        if "@" in url:
            protocol, rest = url.split("://", 1)
            if "@" in rest:
                _, host_part = rest.split("@", 1)
                return f"{protocol}://***@{host_part}"
        return url

    async def connect(self) -> None:
        """
        Create the pool and verify connectivity with PING.

        Raises:
            ConnectionError: If the server cannot be reached
        """
        if self._is_connected:
            logger.warning("Redis client already connected")
            return

        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
                retry_on_timeout=True,
                health_check_interval=self._health_check_interval,
                retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
            self._is_connected = True
            logger.info(
                "Redis connection established",
                url=self._sanitize_url(self._url),
                pool_size=self._max_connections,
            )
        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Failed to connect to Redis",
                error=str(e),
                url=self._sanitize_url(self._url),
            )
            await self._release()
            raise ConnectionError(f"Redis connection failed: {e}") from e

    async def _release(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        self._is_connected = False

    async def disconnect(self) -> None:
        if not self._is_connected:
            return
        await self._release()
        logger.info("Redis connection closed")

    async def health_check(self) -> bool:
        if not self._is_connected or not self._client:
            logger.warning("Redis health check failed: not connected")
            return False
        try:
            await self._client.ping()
            return True
        except RedisError as e:
            logger.error("Redis health check failed", error=str(e), error_type=type(e).__name__)
            return False

    def _ensure_connected(self) -> Redis:
        if not self._is_connected or not self._client:
            raise ConnectionError("Redis client is not connected")
        return self._client

    async def get_json(self, key: str) -> Optional[Any]:
        """
        Cached JSON value, None on a miss.

        Raises:
            ConnectionError: If Redis is not connected
            RedisError: If the GET fails
        """
        client = self._ensure_connected()
        value = await client.get(key)
        logger.debug("Redis GET", key=key, found=value is not None)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry", key=key)
            return None

    async def set_json(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        """
        Raises:
            ConnectionError: If Redis is not connected
            RedisError: If the SET fails
        """
        client = self._ensure_connected()
        result = await client.set(key, json.dumps(value, default=str), ex=ex)
        logger.debug("Redis SET", key=key, ex=ex)
        return bool(result)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``; returns the count."""
        client = self._ensure_connected()
        keys = [key async for key in client.scan_iter(match=pattern)]
        if not keys:
            return 0
        count = await client.delete(*keys)
        logger.debug("Redis DELETE pattern", pattern=pattern, count=count)
        return count


class CacheKeyManager:
    """Namespaced cache keys."""

    def __init__(self, namespace: str = "brokerage"):
        self.namespace = namespace

    def make_key(self, *parts: Union[str, int]) -> str:
        """
        >>> CacheKeyManager("app").make_key("dashboard", "kpi")
        'app:dashboard:kpi'
        """
        key_parts = [str(part) for part in parts if part]
        return ":".join([self.namespace] + key_parts)

    def dashboard_key(self, metric: str, params: Optional[dict[str, Any]] = None) -> str:
        """Key of one dashboard aggregate; parameters are sorted into the key."""
        parts = ["dashboard", metric]
        if params:
            parts.append(
                ":".join(f"{k}={v}" for k, v in sorted(params.items()) if v is not None)
            )
        return self.make_key(*parts)

    def dashboard_pattern(self) -> str:
        return self.make_key("dashboard", "*")


_redis_client: Optional[RedisClient] = None
_cache_key_manager: Optional[CacheKeyManager] = None


async def get_redis_client() -> RedisClient:
    """
    Get or create the global client.

    Raises:
        ConnectionError: If Redis connection fails
    """
    global _redis_client

    if _redis_client is None:
        client = RedisClient()
        await client.connect()
        _redis_client = client

    return _redis_client


def get_cache_key_manager() -> CacheKeyManager:
    global _cache_key_manager

    if _cache_key_manager is None:
        _cache_key_manager = CacheKeyManager()

    return _cache_key_manager


async def close_redis_client() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
