"""Tests for money helpers, models and serializers"""
from decimal import Decimal

from core.errors import InvalidTransitionError, OrderNotFoundError
from core.orders.serializer import build_customer_order, mask_email
from core.services.models import Order, OrderItem
from core.services.money import format_brl, from_minor_units, percent_of, to_minor_units


def test_minor_units():
    assert to_minor_units("100.50") == 10050
    assert to_minor_units(0.1 + 0.2) == 30
    assert to_minor_units(Decimal("19.995")) == 2000
    assert to_minor_units(None) == 0
    assert to_minor_units("abc") == 0
    assert from_minor_units(10050) == Decimal("100.50")


def test_percent_and_format():
    assert percent_of(10000, 15) == 1500
    assert percent_of(999, 5) == 50
    assert format_brl(123456) == "R$ 1.234,56"


def test_order_model_normalizes_db_row():
    order = Order(
        id="o1",
        external_reference="order_1",
        status="PAID",
        gateway_payment_id=123456,
        risk_flags=None,
        unknown_column="ignored",
    )
    assert order.gateway_payment_id == "123456"
    assert order.risk_flags == []


def test_mask_email():
    assert mask_email("maria.silva@example.com") == "m***a@example.com"
    assert mask_email("jo@example.com") == "j***@example.com"
    assert mask_email("no-at-sign") is None
    assert mask_email(None) is None


def test_customer_view_has_no_internal_fields():
    order = Order(
        id="o1",
        external_reference="order_1",
        status="SENT_TO_FULFILLMENT",
        total=9500,
        payer_email="maria@example.com",
        gateway_payment_id="55",
        fulfillment_order_id="mk-1",
        risk_score=80,
    )
    items = [OrderItem(product_id="p1", product_name="Camiseta", quantity=1, unit_price=9000)]

    data = build_customer_order(order, items)

    assert data["status"] == "in_production"
    assert data["totals"]["total"] == 9500
    flat = str(data)
    for secret in ("o1", "mk-1", "'55'", "risk"):
        assert secret not in flat


def test_error_payloads():
    error = InvalidTransitionError("CANCELED", "PAID", order_id="o1")
    assert error.to_dict() == {
        "ok": False,
        "error": "INVALID_TRANSITION",
        "message": "Cannot transition from CANCELED to PAID",
        "details": {"from_status": "CANCELED", "to_status": "PAID", "order_id": "o1"},
    }
    assert OrderNotFoundError().to_dict() == {
        "ok": False,
        "error": "ORDER_NOT_FOUND",
        "message": "ORDER_NOT_FOUND",
    }
