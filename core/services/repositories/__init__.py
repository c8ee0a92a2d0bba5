"""
Repository Pattern for Database Operations

Provides clean separation of concerns:
- OrderRepository: orders, items, conditional writes, transitions
- TransitionLogRepository: append-only audit trail (read side)
- WebhookEventRepository: gateway notification dedup
- ProductRepository: catalog reads for checkout
- CouponRepository: coupon lookup
"""
from .coupon_repo import CouponRepository
from .order_repo import OrderRepository
from .product_repo import ProductRepository
from .transition_log_repo import TransitionLogRepository
from .webhook_event_repo import WebhookEventRepository, WebhookEventStatus

__all__ = [
    "CouponRepository",
    "OrderRepository",
    "ProductRepository",
    "TransitionLogRepository",
    "WebhookEventRepository",
    "WebhookEventStatus",
]
