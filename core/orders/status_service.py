"""
Order Status Management Service

Single entry point for every order status change. Checks the edge against the
lifecycle table, applies it through the version-checked store function (status,
version bump, log append and coupon release happen in one DB transaction),
then fires best-effort notifications.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional, TypeVar

from core.errors import (
    DuplicatePaymentAttemptError,
    InvalidTransitionError,
    OrderNotFoundError,
    StaleWriteError,
)
from core.logging import format_fields, get_logger
from core.orders.constants import (
    PAID_OR_LATER_STATES,
    OrderStatus,
    TransitionActor,
    is_transition_allowed,
)
from core.services.models import Order, OrderItem
from core.services.notifications import OrderNotifier, get_notifier

logger = get_logger(__name__)

DEFAULT_STALE_RETRIES = 3

T = TypeVar("T")


@dataclass
class TransitionResult:
    """Outcome of a transition request. `applied=False` means a no-op (idempotent replay)."""

    order: Order
    applied: bool
    from_status: OrderStatus
    to_status: OrderStatus
    note: Optional[str] = None


def readiness_problems(order: Order, items: list[OrderItem]) -> list[str]:
    """What keeps a paid order from being handed to fulfillment. Empty list means ready."""
    problems = []
    if not items:
        problems.append("no_items")
    if not (order.shipping_cep or "").strip():
        problems.append("missing_cep")
    if not (order.shipping_state or "").strip():
        problems.append("missing_state")
    if not (order.shipping_address1 or "").strip():
        problems.append("missing_address")
    return problems


class OrderStatusService:
    """Centralized service for order status management."""

    def __init__(self, db, notifier: Optional[OrderNotifier] = None):
        self.db = db
        self.notifier = notifier or get_notifier()

    async def transition(
        self,
        order: Order,
        to_status: OrderStatus | str,
        actor: TransitionActor | str,
        reason: Optional[str] = None,
        *,
        gateway_payment_id: Optional[str] = None,
        gateway_status: Optional[str] = None,
        snapshot: Optional[dict[str, Any]] = None,
        fulfillment_order_id: Optional[str] = None,
        fulfillment_status: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move `order` to `to_status`, conditional on `order.version`.

        Raises:
            InvalidTransitionError: edge not in the lifecycle table
            StaleWriteError: stored version differs from `order.version`
        """
        target = OrderStatus(to_status)
        actor_value = actor.value if isinstance(actor, TransitionActor) else actor

        if not is_transition_allowed(order.status, target):
            logger.error(
                "Rejected order transition "
                + format_fields(
                    order_id=order.id,
                    from_status=order.status,
                    to_status=target,
                    actor=actor_value,
                    reason=reason,
                )
            )
            raise InvalidTransitionError(order.status.value, target.value, order_id=order.id)

        updated = await self.db.orders.apply_transition(
            order.id,
            order.version,
            order.status,
            target,
            actor_value,
            reason=reason,
            snapshot=snapshot,
            gateway_payment_id=gateway_payment_id,
            gateway_status=gateway_status,
            fulfillment_order_id=fulfillment_order_id,
            fulfillment_status=fulfillment_status,
        )
        if updated is None:
            logger.info(
                "Stale write on order transition "
                + format_fields(order_id=order.id, version=order.version, to_status=target)
            )
            raise StaleWriteError(
                "Order was modified concurrently", order_id=order.id, version=order.version
            )

        logger.info(
            "Order transitioned "
            + format_fields(
                order_id=order.id,
                from_status=order.status,
                to_status=target,
                actor=actor_value,
                payment_id=gateway_payment_id,
                version=updated.version,
            )
        )
        await self.notifier.order_transitioned(updated, order.status, actor_value)
        return TransitionResult(order=updated, applied=True, from_status=order.status, to_status=target)

    async def mark_payment_confirmed(
        self,
        order: Order,
        payment_id: str,
        actor: TransitionActor | str,
        *,
        gateway_status: Optional[str] = "approved",
        snapshot: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """
        Mark order as paid by `payment_id`.

        IDEMPOTENT: an order already PAID (or later) with the same payment id
        returns `applied=False` without touching the store.

        Raises:
            DuplicatePaymentAttemptError: a different payment id is attached
        """
        payment_id = str(payment_id)

        if order.gateway_payment_id and order.gateway_payment_id != payment_id:
            raise DuplicatePaymentAttemptError(
                "Order already has a different payment attached",
                order_id=order.id,
                attached_payment_id=order.gateway_payment_id,
                payment_id=payment_id,
            )

        if order.status in PAID_OR_LATER_STATES:
            logger.info(
                "Payment already confirmed, skipping "
                + format_fields(order_id=order.id, status=order.status, payment_id=payment_id)
            )
            return TransitionResult(
                order=order,
                applied=False,
                from_status=order.status,
                to_status=order.status,
                note="already_paid",
            )

        return await self.transition(
            order,
            OrderStatus.PAID,
            actor,
            reason or "payment approved",
            gateway_payment_id=payment_id,
            gateway_status=gateway_status,
            snapshot=snapshot,
        )

    async def ensure_ready_for_fulfillment(
        self, order: Order, actor: TransitionActor | str
    ) -> TransitionResult:
        """
        PAID -> READY_FOR_FULFILLMENT when the order has items and a usable address.

        Not ready: stays PAID, logged for manual review.
        """
        if order.status != OrderStatus.PAID:
            return TransitionResult(
                order=order,
                applied=False,
                from_status=order.status,
                to_status=order.status,
                note="not_paid",
            )

        items = await self.db.orders.get_items(order.id)
        problems = readiness_problems(order, items)
        if problems:
            logger.warning(
                "Paid order not ready for fulfillment, needs manual review "
                + format_fields(order_id=order.id, problems=",".join(problems))
            )
            return TransitionResult(
                order=order,
                applied=False,
                from_status=order.status,
                to_status=order.status,
                note=",".join(problems),
            )

        return await self.transition(
            order, OrderStatus.READY_FOR_FULFILLMENT, actor, "readiness check passed"
        )


async def run_with_stale_retry(
    load: Callable[[], Awaitable[Optional[Order]]],
    apply: Callable[[Order], Awaitable[T]],
    attempts: int = DEFAULT_STALE_RETRIES,
) -> T:
    """
    Bounded read-modify-write loop: reload the order and re-apply on STALE_WRITE.

    Raises:
        OrderNotFoundError: `load` returned None
        StaleWriteError: still stale after `attempts` tries
    """
    attempts = max(attempts, 1)
    last_error: Optional[StaleWriteError] = None
    for attempt in range(1, attempts + 1):
        order = await load()
        if order is None:
            raise OrderNotFoundError("Order disappeared during retry")
        try:
            return await apply(order)
        except StaleWriteError as e:
            last_error = e
            logger.info(f"Stale write, reloading order (attempt {attempt}/{attempts})")
    raise last_error or StaleWriteError("Order still stale after retries")
