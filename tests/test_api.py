"""Tests for API endpoints"""
from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from core.orders.constants import OrderStatus
from core.services.fulfillment import FulfillmentClient

ADMIN_HEADERS = {"Authorization": "Bearer test_admin_key"}
CRON_HEADERS = {"Authorization": "Bearer test_cron_secret"}

CHECKOUT_BODY = {
    "payer": {"name": "Maria Silva", "email": "maria@example.com", "cpf": "12345678909"},
    "shipping": {
        "cep": "01310-100",
        "address1": "Av. Paulista",
        "number": "1000",
        "city": "Sao Paulo",
        "state": "SP",
        "cost": "12.50",
    },
    "items": [{"productId": "prod-mug", "quantity": 3, "color": "branco"}],
}


@pytest.fixture(autouse=True)
def _secrets(monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", "test_admin_key")
    monkeypatch.setenv("CRON_SECRET", "test_cron_secret")


def test_health_check(api_client):
    """Test health check endpoint"""
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "stampshop-orders", "scheduler": False}


# ==================== STOREFRONT ====================


def test_checkout_creates_order(api_client, supabase, sample_products):
    response = api_client.post(
        "/api/checkout/orders",
        json=CHECKOUT_BODY,
        headers={"User-Agent": "Mozilla/5.0 (Macintosh)", "X-Forwarded-For": "200.10.0.1, 10.0.0.1"},
    )

    assert response.status_code == 201
    data = response.json()
    # 3 x 25.00 with 5% off, plus 12.50 shipping
    assert data["totals"] == {
        "subtotal": 7500,
        "discountTotal": 375,
        "couponDiscount": 0,
        "shippingCost": 1250,
        "total": 8375,
    }
    stored = supabase.find("orders", external_reference=data["externalReference"])[0]
    assert stored["ip_address"] == "200.10.0.1"
    assert stored["user_agent"] == "Mozilla/5.0 (Macintosh)"


def test_checkout_validation_error_shape(api_client, sample_products):
    response = api_client.post("/api/checkout/orders", json={**CHECKOUT_BODY, "items": []})

    assert response.status_code == 400
    data = response.json()
    assert data["ok"] is False
    assert data["error"] == "VALIDATION_ERROR"
    assert data["details"]


def test_checkout_unknown_product(api_client, sample_products):
    response = api_client.post(
        "/api/checkout/orders", json={**CHECKOUT_BODY, "items": [{"productId": "nope", "quantity": 1}]}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "PRODUCT_NOT_FOUND"


def test_payment_endpoint_returns_pix_data(api_client, make_order, mp):
    order = make_order()

    response = api_client.post(
        f"/api/checkout/orders/{order.external_reference}/payments",
        json={"method": "pix"},
        headers={"X-Idempotency-Key": "client-key-1"},
    )
    retry = api_client.post(
        f"/api/checkout/orders/{order.external_reference}/payments",
        json={"method": "pix"},
        headers={"X-Idempotency-Key": "client-key-2"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["idempotencyKey"] == "client-key-1"
    assert data["pix"]["copyPaste"] == "00020126-pix"
    assert retry.status_code == 409
    assert retry.json()["error"] == "DUPLICATE_PAYMENT_ATTEMPT"


def test_payment_for_unknown_order_is_404(api_client):
    response = api_client.post("/api/checkout/orders/order_missing/payments", json={"method": "pix"})
    assert response.status_code == 404
    assert response.json()["error"] == "ORDER_NOT_FOUND"


def test_card_payment_gateway_down_is_503(api_client, make_order, mp):
    order = make_order(total=5000)
    mp.fail_with = httpx.ConnectError("down")

    response = api_client.post(
        f"/api/checkout/orders/{order.external_reference}/card-payment",
        json={"token": "tok", "paymentMethodId": "visa", "installments": 1, "transactionAmount": 50},
    )

    assert response.status_code == 503
    assert response.json()["error"] == "GATEWAY_UNAVAILABLE"


def test_customer_lookup_requires_matching_email(api_client, make_order):
    order = make_order()

    ok = api_client.get(f"/api/orders/{order.external_reference}", params={"email": "MARIA@example.com"})
    wrong = api_client.get(f"/api/orders/{order.external_reference}", params={"email": "eve@example.com"})
    missing = api_client.get("/api/orders/order_missing", params={"email": "maria@example.com"})

    assert ok.status_code == 200
    data = ok.json()
    assert data["status"] == "awaiting_payment"
    assert data["payerEmail"] == "m***a@example.com"
    assert "id" not in data
    assert wrong.status_code == 404
    assert missing.status_code == 404
    assert wrong.json() == missing.json()


def test_customer_lookup_hides_fulfillment_failures(api_client, make_order):
    order = make_order(status=OrderStatus.FAILED_FULFILLMENT, fulfillment_status="Partner API error (500)")

    data = api_client.get(f"/api/orders/{order.external_reference}", params={"email": "maria@example.com"}).json()

    assert data["status"] == "in_production"
    assert "Partner" not in str(data)


def test_customer_cancel(api_client, supabase, make_order):
    order = make_order()
    started = make_order(payment_attempt_key="pay-key")

    ok = api_client.post(f"/api/orders/{order.external_reference}/cancel", json={"email": "maria@example.com"})
    refused = api_client.post(
        f"/api/orders/{started.external_reference}/cancel", json={"email": "maria@example.com"}
    )

    assert ok.status_code == 200
    assert ok.json()["order"]["status"] == "canceled"
    assert supabase.find("orders", id=order.id)[0]["status"] == "CANCELED"
    assert refused.status_code == 409
    assert refused.json()["error"] == "ORDER_NOT_CANCELABLE"


# ==================== ADMIN ====================


def test_admin_requires_api_key(api_client, make_order):
    order = make_order()

    assert api_client.get(f"/api/admin/orders/{order.id}").status_code == 401
    assert (
        api_client.get(f"/api/admin/orders/{order.id}", headers={"Authorization": "Bearer nope"}).status_code
        == 401
    )


def test_admin_order_detail_includes_history(api_client, make_order):
    order = make_order()
    api_client.post(f"/api/admin/orders/{order.id}/cancel", json={"reason": "fraud"}, headers=ADMIN_HEADERS)

    response = api_client.get(f"/api/admin/orders/{order.id}", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "CANCELED"
    assert [(h["from"], h["to"], h["actor"]) for h in data["history"]] == [
        (None, "PENDING", "checkout"),
        ("PENDING", "CANCELED", "admin"),
    ]
    assert data["history"][1]["reason"] == "fraud"
    assert data["items"][0]["productId"] == "prod-shirt"


def test_admin_illegal_cancel_is_409(api_client, make_order):
    order = make_order(status=OrderStatus.PAID)

    response = api_client.post(f"/api/admin/orders/{order.id}/cancel", headers=ADMIN_HEADERS)

    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_TRANSITION"


def test_admin_risk_review_lists_flagged_orders(api_client, make_order):
    flagged = make_order(risk_flagged=True, risk_score=75, risk_flags=["MISSING_IP", "IP_BURST_10M"])
    make_order()

    response = api_client.get("/api/admin/orders/risk-review", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    rows = response.json()["orders"]
    assert [r["id"] for r in rows] == [flagged.id]
    assert rows[0]["riskFlags"] == ["MISSING_IP", "IP_BURST_10M"]


def test_admin_mark_sent_and_retry(api_client, make_order):
    from api.index import app
    from core.routers.deps import get_fulfillment

    partner = httpx.MockTransport(lambda request: httpx.Response(201, json={"id": "mk-55"}))
    client = FulfillmentClient(
        base_url="https://partner.test",
        api_token="partner-token",
        enabled=True,
        http_client=httpx.AsyncClient(transport=partner),
    )
    app.dependency_overrides[get_fulfillment] = lambda: client

    ready = make_order(status=OrderStatus.READY_FOR_FULFILLMENT)
    paid = make_order(status=OrderStatus.PAID)

    marked = api_client.post(
        f"/api/admin/orders/{ready.id}/mark-sent-to-fulfillment",
        json={"fulfillmentOrderId": "manual-1"},
        headers=ADMIN_HEADERS,
    )
    retried = api_client.post(f"/api/admin/orders/{paid.id}/retry-fulfillment", headers=ADMIN_HEADERS)

    assert marked.status_code == 200
    assert marked.json()["status"] == "SENT_TO_FULFILLMENT"
    assert retried.status_code == 200
    assert retried.json()["ok"] is True
    assert retried.json()["status"] == "SENT_TO_FULFILLMENT"
    assert retried.json()["fulfillment_order_id"] == "mk-55"


# ==================== WORKERS ====================


def test_fulfillment_worker_unknown_order(api_client):
    response = api_client.post("/api/workers/fulfill-order", json={"order_id": "missing"})

    assert response.status_code == 200
    assert response.json() == {"ok": False, "error": "ORDER_NOT_FOUND"}


def test_fulfillment_worker_requires_order_id(api_client):
    response = api_client.post("/api/workers/fulfill-order", json={})
    assert response.json()["ok"] is False


# ==================== CRON ====================


def test_cron_requires_secret(db):
    from api.cron.reconcile_pending import app

    client = TestClient(app)
    assert client.get("/api/cron/reconcile_pending").status_code == 401
    assert (
        client.get("/api/cron/reconcile_pending", headers={"Authorization": "Bearer wrong"}).status_code
        == 401
    )


def test_cron_reconcile_runs_with_secret(db):
    from api.cron.reconcile_pending import app

    response = TestClient(app).get("/api/cron/reconcile_pending", headers=CRON_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["checked"] == 0


def test_cron_cancel_abandoned_dry_run(db, make_order):
    from api.cron.cancel_abandoned import app

    order = make_order(age=timedelta(hours=2))

    response = TestClient(app).get("/api/cron/cancel_abandoned?dry_run=1", headers=CRON_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["dry_run"] is True
    assert data["would_cancel"] == [order.external_reference]
