"""
ExamKit - Cache Infrastructure
Redis client guarded by a circuit breaker, with JSON helpers for the
published-test cache
"""

import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pybreaker import CircuitBreaker, CircuitBreakerError
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from examkit.core.config import Settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Failures a Redis command may raise; builtin TimeoutError is an OSError
CACHE_ERRORS = (RedisError, OSError)


class CacheManager:
    """
    Redis cache behind a circuit breaker.

    Every command runs inside the breaker, so repeated Redis failures open
    the circuit and later commands skip Redis until the reset timeout
    passes. A failing or skipped command never fails the request: reads
    miss and writes report False.
    """

    def __init__(
        self,
        settings: Settings,
        prefix: str = "examkit:",
        breaker: Optional[CircuitBreaker] = None,
    ):
        self._settings = settings
        self._prefix = prefix
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._breaker = breaker or CircuitBreaker(
            fail_max=settings.cache_breaker_fail_max,
            reset_timeout=settings.cache_breaker_reset_timeout,
            name="redis",
        )

    async def connect(self) -> None:
        """Open the pool and ping once; a failed ping aborts startup."""
        logger.info("Connecting to Redis", host=self._settings.redis_url.split("@")[-1])

        self._pool = ConnectionPool.from_url(
            self._settings.redis_url,
            password=self._settings.redis_password or None,
            max_connections=self._settings.redis_pool_size,
            decode_responses=True,
        )
        self._client = Redis(connection_pool=self._pool)
        await self._client.ping()

        logger.info("Redis connection established")

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Cache not connected")
        return self._client

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def key(self, *parts: object) -> str:
        return self._prefix + ":".join(str(p) for p in parts)

    async def _guarded(
        self,
        operation: str,
        key: str,
        command: Callable[[], Awaitable[T]],
        fallback: T,
    ) -> T:
        try:
            with self._breaker.calling():
                return await command()
        except CircuitBreakerError:
            logger.warning("Redis circuit open", operation=operation, key=key)
        except CACHE_ERRORS as e:
            logger.error("Redis command failed", operation=operation, key=key, error=str(e))
        return fallback

    async def get(self, key: str) -> Optional[str]:
        return await self._guarded("get", key, lambda: self.client.get(key), None)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        async def command() -> bool:
            await self.client.set(key, value, ex=ttl)
            return True

        return await self._guarded("set", key, command, False)

    async def delete(self, key: str) -> bool:
        async def command() -> bool:
            return await self.client.delete(key) > 0

        return await self._guarded("delete", key, command, False)

    async def get_json(self, key: str) -> Optional[Any]:
        value = await self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.error("Invalid JSON in cache", key=key)
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error("JSON serialization error", key=key, error=str(e))
            return False
        return await self.set(key, serialized, ttl)

    async def health_check(self) -> dict:
        circuit = self._breaker.current_state
        try:
            await self.client.ping()
            info = await self.client.info("memory")
        except CACHE_ERRORS as e:
            logger.error("Redis health check failed", error=str(e))
            return {"status": "unhealthy", "circuit": circuit, "error": str(e)}
        return {
            "status": "healthy",
            "circuit": circuit,
            "used_memory": info.get("used_memory_human", "unknown"),
        }
