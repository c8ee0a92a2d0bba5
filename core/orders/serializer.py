"""Order response serializers for customers and admins."""

from typing import Any, Optional

from core.orders.constants import CUSTOMER_STATUS_LABELS
from core.services.models import Order, OrderItem, TransitionLogEntry


def mask_email(email: Optional[str]) -> Optional[str]:
    """
    Hide most of the local part.

    Example:
        mask_email("maria.silva@example.com") -> "m***a@example.com"
    """
    if not email or "@" not in email:
        return None
    local, _, domain = email.partition("@")
    if len(local) <= 2:
        return f"{local[:1]}***@{domain}"
    return f"{local[0]}***{local[-1]}@{domain}"


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def build_item_payload(item: OrderItem) -> dict[str, Any]:
    return {
        "productId": item.product_id,
        "productName": item.product_name,
        "quantity": item.quantity,
        "unitPrice": item.unit_price,
        "size": item.size,
        "color": item.color,
    }


def build_customer_order(order: Order, items: list[OrderItem]) -> dict[str, Any]:
    """
    Customer view: coarse status label and masked payer data.

    No internal ids, gateway codes or fulfillment errors.
    """
    return {
        "externalReference": order.external_reference,
        "status": CUSTOMER_STATUS_LABELS[order.status],
        "payerEmail": mask_email(order.payer_email),
        "totals": {
            "subtotal": order.subtotal,
            "discountTotal": order.discount_total,
            "shippingCost": order.shipping_cost,
            "total": order.total,
        },
        "items": [build_item_payload(item) for item in items],
        "shipping": {
            "city": order.shipping_city,
            "state": order.shipping_state,
            "service": order.shipping_service,
            "deadline": order.shipping_deadline,
        },
        "createdAt": _isoformat(order.created_at),
    }


def build_log_payload(entry: TransitionLogEntry) -> dict[str, Any]:
    return {
        "from": entry.from_status.value if entry.from_status else None,
        "to": entry.to_status.value,
        "actor": entry.actor,
        "reason": entry.reason,
        "gatewayPaymentId": entry.gateway_payment_id,
        "gatewaySnapshot": entry.gateway_status_snapshot,
        "createdAt": _isoformat(entry.created_at),
    }


def build_admin_order(
    order: Order, items: list[OrderItem], history: list[TransitionLogEntry]
) -> dict[str, Any]:
    """Admin view: the full record plus the transition log with raw gateway snapshots."""
    data = order.model_dump(mode="json")
    data["items"] = [build_item_payload(item) for item in items]
    data["history"] = [build_log_payload(entry) for entry in history]
    return data


def build_risk_review_row(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "externalReference": order.external_reference,
        "status": order.status.value,
        "riskScore": order.risk_score,
        "riskFlags": order.risk_flags,
        "total": order.total,
        "createdAt": _isoformat(order.created_at),
    }
