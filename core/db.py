"""
Redis Module - Upstash Redis client

Provides the singleton async Upstash Redis client used for live order-status
streams. Supabase access goes through core.services.database.
"""

import os
from typing import Optional

from upstash_redis.asyncio import Redis as AsyncRedis

# Upstash Redis - standard env var names per docs
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")


_redis_client: Optional[AsyncRedis] = None


def get_redis() -> AsyncRedis:
    """
    Get async Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN

    Raises:
        ValueError: If Redis is not configured
    """
    global _redis_client

    if _redis_client is None:
        if not UPSTASH_REDIS_REST_URL or not UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = AsyncRedis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN)

    return _redis_client


class RedisKeys:
    """Redis key prefixes for different data types."""

    # Live order status, one stream per order
    ORDER_STREAM = "stream:orders:"  # stream:orders:{external_reference}

    # Admin feed of every transition
    ADMIN_ORDERS_STREAM = "stream:admin:orders"

    @staticmethod
    def order_stream(external_reference: str) -> str:
        return f"{RedisKeys.ORDER_STREAM}{external_reference}"


class TTL:
    """Time-to-live constants for Redis keys (seconds)."""

    ORDER_STREAM = 86400 * 7  # 7 days
