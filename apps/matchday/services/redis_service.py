"""
Shared Redis connection for cross-instance store change fan-out.

A single API instance does not need Redis at all: store notifications are
delivered in-process. With several instances behind a load balancer, set
``REDIS_ENABLED=true`` so ``pubsub_broker`` relays every commit to the other
instances through a Redis channel.

Usage:
    client = await get_redis_client()
    if client:
        await client.publish(STORE_CHANNEL, payload)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


def get_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse a boolean environment variable ("true", "1" or "yes" are true).

    Args:
        key: Environment variable name
        default: Value when the variable is not set
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class RedisSettings:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    connect_timeout: float = 2.0

    @classmethod
    def from_env(cls) -> "RedisSettings":
        return cls(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            db=int(os.getenv("REDIS_DB", "0")),
            password=os.getenv("REDIS_PASSWORD") or None,
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}/{self.db}"


_redis_client: Optional[Redis] = None


def is_redis_enabled() -> bool:
    """Whether store changes are fanned out through Redis."""
    return get_bool_env("REDIS_ENABLED", default=False)


def _create_client(settings: RedisSettings) -> Redis:
    # No socket read timeout: the change listener blocks while the channel is quiet
    return Redis(
        host=settings.host,
        port=settings.port,
        db=settings.db,
        password=settings.password,
        decode_responses=True,
        socket_connect_timeout=settings.connect_timeout,
        retry_on_timeout=True,
    )


async def get_redis_client() -> Optional[Redis]:
    """
    Shared client, created and pinged on first use.

    A client that stops answering pings is dropped and replaced.

    Returns:
        Redis client, or None when Redis is disabled or unreachable
    """
    global _redis_client

    if not is_redis_enabled():
        return None

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection lost, reconnecting: {e}")
            await close_redis_connection()

    settings = RedisSettings.from_env()
    client = _create_client(settings)
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Redis unavailable at {settings.address}, store changes stay local: {e}")
        await client.aclose()
        return None

    _redis_client = client
    logger.info(f"Connected to Redis at {settings.address}")
    return _redis_client


async def close_redis_connection() -> None:
    """Close the shared client (application shutdown)."""
    global _redis_client

    client, _redis_client = _redis_client, None
    if client is None:
        return
    try:
        await client.aclose()
        logger.info("Closed Redis connection")
    except Exception as e:
        logger.warning(f"Error closing Redis connection: {e}")
