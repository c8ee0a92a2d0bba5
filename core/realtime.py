"""Upstash Realtime Module - live order status events.

Emits events via Redis Streams for the storefront "order status" page and the
admin feed. Best effort: a failed emit is logged, never raised.

Note: Using Redis Streams (XADD/XREAD) instead of Pub/Sub for better
compatibility with Upstash REST API and history/replay support.
"""

import json
from typing import Any

from core.db import TTL, RedisKeys, get_redis
from core.logging import get_logger

logger = get_logger(__name__)


async def _xadd(stream_key: str, payload: dict[str, Any], ttl: int | None = None) -> None:
    redis = get_redis()
    await redis.xadd(stream_key, "*", {"data": json.dumps(payload)})
    if ttl:
        await redis.expire(stream_key, ttl)


async def emit_order_status_change(
    external_reference: str, status_label: str, internal_status: str
) -> None:
    """Emit order.status.changed to the customer stream (coarse label only)
    and to the admin stream (internal status).
    """
    try:
        await _xadd(
            RedisKeys.order_stream(external_reference),
            {
                "event": "order.status.changed",
                "external_reference": external_reference,
                "status": status_label,
            },
            ttl=TTL.ORDER_STREAM,
        )
        await _xadd(
            RedisKeys.ADMIN_ORDERS_STREAM,
            {
                "event": "admin.order.transition",
                "external_reference": external_reference,
                "status": internal_status,
            },
        )
        logger.debug(f"Emitted order.status.changed for {external_reference}")
    except Exception as e:
        logger.warning(f"Failed to emit order.status.changed: {e}", exc_info=True)


async def emit_admin_risk_flag(external_reference: str, risk_score: int, flags: list[str]) -> None:
    """Emit admin.order.risk_flagged (broadcast to all admins)."""
    try:
        await _xadd(
            RedisKeys.ADMIN_ORDERS_STREAM,
            {
                "event": "admin.order.risk_flagged",
                "external_reference": external_reference,
                "risk_score": risk_score,
                "flags": flags,
            },
        )
    except Exception as e:
        logger.warning(f"Failed to emit admin.order.risk_flagged: {e}", exc_info=True)
