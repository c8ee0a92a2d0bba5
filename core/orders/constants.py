"""Order status lifecycle, actors and transition table."""

from enum import Enum


class OrderStatus(str, Enum):
    """
    Order status lifecycle.

    Flow:
        PENDING -> PAID -> READY_FOR_FULFILLMENT -> SENT_TO_FULFILLMENT
                                                -> FAILED_FULFILLMENT -> SENT_TO_FULFILLMENT
                -> CANCELED
                -> FAILED
        PAID / SENT_TO_FULFILLMENT -> REFUNDED

    - PENDING: created by checkout, awaiting payment
    - PAID: gateway confirmed an approved payment
    - READY_FOR_FULFILLMENT: address and items checked, can be handed off
    - SENT_TO_FULFILLMENT: accepted by the fulfillment partner
    - FAILED_FULFILLMENT: handoff failed, can be retried
    - CANCELED: abandoned or canceled before payment (final)
    - FAILED: gateway rejected the payment (final)
    - REFUNDED: gateway reported a refund or chargeback (final)
    """

    PENDING = "PENDING"
    PAID = "PAID"
    READY_FOR_FULFILLMENT = "READY_FOR_FULFILLMENT"
    SENT_TO_FULFILLMENT = "SENT_TO_FULFILLMENT"
    FAILED_FULFILLMENT = "FAILED_FULFILLMENT"
    CANCELED = "CANCELED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class TransitionActor(str, Enum):
    """Who asked for a transition. Recorded on every log entry."""

    CHECKOUT = "checkout"
    WEBHOOK = "webhook"
    RECONCILIATION_JOB = "reconciliation-job"
    ABANDONMENT_JOB = "abandonment-job"
    ADMIN = "admin"
    FULFILLMENT_WORKER = "fulfillment-worker"
    CUSTOMER = "customer"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELED, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset({OrderStatus.READY_FOR_FULFILLMENT, OrderStatus.REFUNDED}),
    OrderStatus.READY_FOR_FULFILLMENT: frozenset(
        {OrderStatus.SENT_TO_FULFILLMENT, OrderStatus.FAILED_FULFILLMENT}
    ),
    OrderStatus.FAILED_FULFILLMENT: frozenset({OrderStatus.SENT_TO_FULFILLMENT}),
    OrderStatus.SENT_TO_FULFILLMENT: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELED: frozenset(),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Statuses reachable only after a confirmed payment
PAID_OR_LATER_STATES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.PAID,
        OrderStatus.READY_FOR_FULFILLMENT,
        OrderStatus.SENT_TO_FULFILLMENT,
        OrderStatus.FAILED_FULFILLMENT,
        OrderStatus.REFUNDED,
    }
)

# Retained forever for audit, no outgoing edges except the refund edge of SENT
TERMINAL_STATES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.CANCELED,
        OrderStatus.FAILED,
        OrderStatus.REFUNDED,
        OrderStatus.SENT_TO_FULFILLMENT,
    }
)

# Coarse labels shown to customers. Internal fulfillment failures stay hidden.
CUSTOMER_STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "awaiting_payment",
    OrderStatus.PAID: "payment_confirmed",
    OrderStatus.READY_FOR_FULFILLMENT: "in_production",
    OrderStatus.FAILED_FULFILLMENT: "in_production",
    OrderStatus.SENT_TO_FULFILLMENT: "in_production",
    OrderStatus.CANCELED: "canceled",
    OrderStatus.FAILED: "payment_failed",
    OrderStatus.REFUNDED: "refunded",
}


def is_transition_allowed(from_status: OrderStatus | str, to_status: OrderStatus | str) -> bool:
    """Check an edge against the lifecycle table. Unknown statuses are never allowed."""
    try:
        source = OrderStatus(from_status)
        target = OrderStatus(to_status)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[source]
