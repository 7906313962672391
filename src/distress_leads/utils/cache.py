"""
Redis Cache

Shared Redis client. Every caller treats the cache as optional: when Redis
is not configured or unreachable, get_redis_client() returns None and the
caller goes straight to the database.
"""
import json
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from config.settings import settings
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get Redis client instance.

    Returns:
        Redis client if available, None if connection fails
    """
    global redis_client

    if redis_client is None:
        if not settings.redis_url:
            logger.debug("redis_skipped", reason="redis_url not configured")
            return None

        try:
            client = redis.Redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            client.ping()
            redis_client = client
        except RedisError as e:
            logger.warning("redis_connection_failed", error=str(e))
            redis_client = None

    return redis_client


def cache_get_json(client: Optional[redis.Redis], key: str) -> Optional[Any]:
    """Read a JSON value; cache errors count as a miss."""
    if client is None:
        return None
    try:
        cached = client.get(key)
    except RedisError as e:
        logger.warning("cache_read_error", key=key, error=str(e))
        return None
    return json.loads(cached) if cached is not None else None


def cache_set_json(client: Optional[redis.Redis], key: str, value: Any, ttl: int) -> None:
    if client is None:
        return
    try:
        client.setex(key, ttl, json.dumps(value, default=str))
    except RedisError as e:
        logger.warning("cache_write_error", key=key, error=str(e))


def cache_delete(client: Optional[redis.Redis], key: str) -> None:
    if client is None:
        return
    try:
        client.delete(key)
    except RedisError as e:
        logger.warning("cache_delete_error", key=key, error=str(e))
