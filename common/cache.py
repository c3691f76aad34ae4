# common/cache.py
"""Optional Redis JSON cache.

Every helper degrades to "no cache" when REDIS_URL is unset or Redis stops
answering, so a cache outage never fails a request.
"""
import json
import logging
import os
from typing import Any, Optional

import redis


logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None

ROOMS_PREFIX = "rooms:list:"
REVENUE_PREFIX = "bookings:revenue:"


def get_redis_client() -> Optional[redis.Redis]:
    """
    Return a Redis client if REDIS_URL is configured and answers a ping,
    otherwise None.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable at %s, caching disabled: %s", redis_url, exc)
        return None

    _redis_client = client
    return _redis_client


def _drop_client(operation: str, exc: redis.RedisError) -> None:
    # Forget the broken client; the next call reconnects through get_redis_client.
    global _redis_client
    logger.warning("Redis %s failed, continuing without cache: %s", operation, exc)
    _redis_client = None


def get_cached_json(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None

    try:
        raw = client.get(key)
    except redis.RedisError as exc:
        _drop_client(f"GET {key}", exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


def set_cached_json(key: str, value: Any, ttl_seconds: int = 60) -> None:
    client = get_redis_client()
    if client is None:
        return

    try:
        client.setex(key, ttl_seconds, json.dumps(value, default=str))
    except redis.RedisError as exc:
        _drop_client(f"SETEX {key}", exc)


def delete_prefix(prefix: str) -> None:
    """
    Invalidate every key under a prefix, e.g. ROOMS_PREFIX after a room
    write. Entries left behind by a Redis outage expire with their TTL.
    """
    client = get_redis_client()
    if client is None:
        return

    try:
        for key in client.scan_iter(match=prefix + "*"):
            client.delete(key)
    except redis.RedisError as exc:
        _drop_client(f"invalidation of {prefix}*", exc)
