"""Customer-facing order access: lookup and self-service cancel.

Customers prove ownership with the payer e-mail. A wrong e-mail and an
unknown reference produce the same ORDER_NOT_FOUND.
"""

from typing import Optional

from core.errors import OrderNotCancelableError, OrderNotFoundError
from core.logging import get_logger, sanitize_id_for_logging
from core.orders.constants import OrderStatus, TransitionActor
from core.orders.status_service import OrderStatusService
from core.services.models import Order

logger = get_logger(__name__)


def email_matches(order: Order, email: Optional[str]) -> bool:
    expected = (order.payer_email or "").strip().lower()
    given = (email or "").strip().lower()
    return bool(expected) and expected == given


async def find_customer_order(db, external_reference: str, email: Optional[str]) -> Order:
    order = await db.orders.get_by_external_reference(external_reference)
    if order is None or not email_matches(order, email):
        logger.info(f"Customer lookup miss for {sanitize_id_for_logging(external_reference)}")
        raise OrderNotFoundError(external_reference=external_reference)
    return order


async def cancel_customer_order(
    db, external_reference: str, email: Optional[str], status_service: Optional[OrderStatusService] = None
) -> Order:
    """
    PENDING -> CANCELED on the customer's request.

    Refused once a payment was started: a PIX or boleto may still be paid, and
    the abandonment job settles those against the gateway instead.
    """
    order = await find_customer_order(db, external_reference, email)
    if order.status != OrderStatus.PENDING:
        raise OrderNotCancelableError("Order can no longer be canceled", status=order.status.value)
    if order.payment_attempt_key or order.gateway_payment_id:
        raise OrderNotCancelableError("A payment is in progress for this order")

    service = status_service or OrderStatusService(db)
    result = await service.transition(
        order, OrderStatus.CANCELED, TransitionActor.CUSTOMER, "canceled by customer"
    )
    return result.order
