"""Gateway payment status -> order transition.

Single source of truth; used by webhook ingestion, reconciliation,
abandonment and synchronous payment creation.
"""

from typing import Optional

from core.logging import get_logger, sanitize_string_for_logging
from core.orders.constants import OrderStatus
from core.payments.constants import IN_FLIGHT_STATUSES, GatewayPaymentStatus

logger = get_logger(__name__)

_STATUS_TO_TARGET: dict[str, OrderStatus] = {
    GatewayPaymentStatus.APPROVED.value: OrderStatus.PAID,
    GatewayPaymentStatus.REJECTED.value: OrderStatus.FAILED,
    GatewayPaymentStatus.CANCELLED.value: OrderStatus.CANCELED,
    GatewayPaymentStatus.REFUNDED.value: OrderStatus.REFUNDED,
    GatewayPaymentStatus.CHARGED_BACK.value: OrderStatus.REFUNDED,
}


def map_gateway_status(status: Optional[str]) -> Optional[OrderStatus]:
    """
    Target order status for a gateway status, or None when no transition applies.

    Example:
        map_gateway_status("approved") -> OrderStatus.PAID
        map_gateway_status("in_process") -> None
    """
    normalized = (status or "").strip().lower()
    target = _STATUS_TO_TARGET.get(normalized)
    if target is None and normalized not in IN_FLIGHT_STATUSES:
        logger.warning(f"Unknown gateway status '{sanitize_string_for_logging(normalized)}', no transition")
    return target


def is_in_flight(status: Optional[str]) -> bool:
    """Payment still open on the gateway side."""
    return (status or "").strip().lower() in IN_FLIGHT_STATUSES
