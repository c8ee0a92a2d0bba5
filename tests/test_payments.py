"""Tests for the Mercado Pago client, status mapping, signatures and payment creation"""
import asyncio

import httpx
import pytest

from core.errors import (
    AmountMismatchError,
    DuplicatePaymentAttemptError,
    GatewayRejectedError,
    GatewayUnavailableError,
    OrderNotFoundError,
    OrderNotPayableError,
)
from core.orders.constants import OrderStatus
from core.payments.creation import CardPaymentInput, PayerInfo, PaymentCreationService
from core.payments.signature import build_manifest, sign_manifest, verify_webhook_signature
from core.payments.status_mapper import is_in_flight, map_gateway_status


@pytest.fixture
def creation(db, gateway, ingestion, status_service):
    return PaymentCreationService(db, gateway, ingestion=ingestion, status_service=status_service)


# ==================== STATUS MAPPING ====================


def test_status_mapping():
    assert map_gateway_status("approved") == OrderStatus.PAID
    assert map_gateway_status("REJECTED") == OrderStatus.FAILED
    assert map_gateway_status("cancelled") == OrderStatus.CANCELED
    assert map_gateway_status("refunded") == OrderStatus.REFUNDED
    assert map_gateway_status("charged_back") == OrderStatus.REFUNDED
    for status in ("pending", "in_process", "authorized", "in_mediation", "something_new", None):
        assert map_gateway_status(status) is None
    assert is_in_flight("in_process")
    assert not is_in_flight("something_new")


# ==================== SIGNATURE ====================


def test_signature_roundtrip_and_tampering():
    secret = "test_webhook_secret"
    manifest = build_manifest("ABC123", "req-1", "1700000000")
    assert manifest == "id:abc123;request-id:req-1;ts:1700000000;"
    header = f"ts=1700000000,v1={sign_manifest(secret, manifest)}"

    assert verify_webhook_signature(secret, header, "req-1", "ABC123")
    assert not verify_webhook_signature(secret, header, "req-2", "ABC123")
    assert not verify_webhook_signature("other", header, "req-1", "ABC123")
    assert not verify_webhook_signature("", header, "req-1", "ABC123")
    assert not verify_webhook_signature(secret, "v1=abc", "req-1", "ABC123")
    assert not verify_webhook_signature(secret, None, "req-1", "ABC123")


def test_manifest_omits_missing_parts():
    assert build_manifest(None, None, "1") == "ts:1;"
    assert build_manifest("pay-1", None, "1") == "id:pay-1;ts:1;"


# ==================== GATEWAY CLIENT ====================


@pytest.mark.asyncio
async def test_fetch_payment_parses_amount_and_pix(gateway, mp):
    created = mp.add_payment(
        "approved",
        "order_1",
        transaction_amount=99.9,
        point_of_interaction={"transaction_data": {"qr_code": "pix-code"}},
    )

    payment = await gateway.fetch_payment_status(created["id"])

    assert payment.id == str(created["id"])
    assert payment.status == "approved"
    assert payment.amount == 9990
    assert payment.pix_qr_code == "pix-code"
    assert mp.requests[0].headers["Authorization"] == "Bearer TEST-access-token"


@pytest.mark.asyncio
async def test_timeout_is_unavailable(gateway, mp):
    mp.fail_with = httpx.ReadTimeout("slow")

    with pytest.raises(GatewayUnavailableError):
        await gateway.fetch_payment_status("1")


@pytest.mark.asyncio
async def test_server_error_is_unavailable(gateway, mp):
    mp.respond_with = httpx.Response(502, text="bad gateway")

    with pytest.raises(GatewayUnavailableError) as exc:
        await gateway.fetch_payment_status("1")
    assert exc.value.retryable


@pytest.mark.asyncio
async def test_client_error_is_rejected(gateway, mp):
    with pytest.raises(GatewayRejectedError) as exc:
        await gateway.fetch_payment_status("does-not-exist")
    assert exc.value.status_code == 404
    assert not exc.value.retryable


@pytest.mark.asyncio
async def test_search_prefers_approved_payment(gateway, mp):
    approved = mp.add_payment("approved", "order_9")
    mp.add_payment("rejected", "order_9")

    payment = await gateway.search_payment_by_reference("order_9")

    assert payment.id == str(approved["id"])
    assert await gateway.search_payment_by_reference("order_none") is None


# ==================== PAYMENT CREATION ====================


@pytest.mark.asyncio
async def test_pix_payment_is_attached_and_order_stays_pending(db, creation, make_order, mp):
    order = make_order(total=12345)

    result = await creation.create_payment(
        order.external_reference, "pix", PayerInfo(name="Maria da Silva", cpf="123.456.789-09")
    )

    data = result.to_dict()
    assert data["status"] == "pending"
    assert data["pix"] == {"qrCode": "aW1hZ2U=", "copyPaste": "00020126-pix"}
    stored = await db.get_order_by_id(order.id)
    assert stored.status == OrderStatus.PENDING
    assert stored.gateway_payment_id == result.payment.id
    assert stored.payment_attempt_key == result.idempotency_key
    assert stored.payment_method == "pix"

    body = mp.payments[result.payment.id]
    assert body["transaction_amount"] == 123.45
    assert mp.requests[-1].headers["X-Idempotency-Key"] == result.idempotency_key


@pytest.mark.asyncio
async def test_concurrent_payment_requests_create_one_payment(db, creation, make_order, mp):
    order = make_order()

    results = await asyncio.gather(
        creation.create_payment(order.external_reference, "pix", idempotency_key="key-a"),
        creation.create_payment(order.external_reference, "pix", idempotency_key="key-b"),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], DuplicatePaymentAttemptError)
    assert mp.count("POST", "/v1/payments") == 1
    assert len(mp.payments) == 1


@pytest.mark.asyncio
async def test_retry_with_same_key_reuses_payment(db, creation, make_order, mp):
    order = make_order()

    first = await creation.create_payment(order.external_reference, "pix", idempotency_key="retry-key")
    second = await creation.create_payment(order.external_reference, "pix", idempotency_key="retry-key")

    assert first.payment.id == second.payment.id
    assert len(mp.payments) == 1


@pytest.mark.asyncio
async def test_retry_without_key_replays_same_payment(creation, make_order, mp):
    order = make_order()
    first = await creation.create_payment(order.external_reference, "bolbradesco")
    second = await creation.create_payment(order.external_reference, "bolbradesco")

    assert second.payment.id == first.payment.id
    assert first.idempotency_key == second.idempotency_key == f"pay-{order.id}"
    assert len(mp.payments) == 1

    with pytest.raises(DuplicatePaymentAttemptError):
        await creation.create_payment(order.external_reference, "pix")


@pytest.mark.asyncio
async def test_retry_after_gateway_timeout_can_still_pay(db, creation, make_order, mp):
    order = make_order()
    mp.fail_with = httpx.ReadTimeout("timed out")

    with pytest.raises(GatewayUnavailableError):
        await creation.create_payment(order.external_reference, "pix")
    assert mp.payments == {}

    mp.fail_with = None
    result = await creation.create_payment(order.external_reference, "pix")

    assert result.payment.id in mp.payments
    stored = await db.get_order_by_id(order.id)
    assert stored.gateway_payment_id == result.payment.id
    assert stored.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_gateway_rejection_fails_the_order(db, creation, make_order, mp):
    order = make_order()
    mp.respond_with = httpx.Response(400, json={"message": "invalid payer"})

    with pytest.raises(GatewayRejectedError):
        await creation.create_payment(order.external_reference, "pix")

    stored = await db.get_order_by_id(order.id)
    assert stored.status == OrderStatus.FAILED
    history = await db.get_order_history(order.id)
    assert history[-1].actor == "checkout"


@pytest.mark.asyncio
async def test_approved_card_payment_marks_order_paid_and_ready(db, creation, make_order, mp, enqueuer):
    order = make_order(total=10000)
    mp.create_status = "approved"
    mp.create_status_detail = "accredited"

    result = await creation.create_card_payment(
        order.external_reference,
        CardPaymentInput(token="tok", payment_method_id="visa", installments=1, transaction_amount="100.00"),
        idempotency_key="card-1",
    )

    assert result.to_dict()["status"] == "approved"
    stored = await db.get_order_by_id(order.id)
    assert stored.status == OrderStatus.READY_FOR_FULFILLMENT
    statuses = [e.to_status for e in await db.get_order_history(order.id)]
    assert statuses == [OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.READY_FOR_FULFILLMENT]
    assert [o.id for o in enqueuer.orders] == [order.id]


@pytest.mark.asyncio
async def test_card_amount_must_match_total(creation, make_order, mp):
    order = make_order(total=10000)

    with pytest.raises(AmountMismatchError):
        await creation.create_card_payment(
            order.external_reference,
            CardPaymentInput(token="tok", payment_method_id="visa", installments=1, transaction_amount=1),
        )
    assert mp.requests == []


@pytest.mark.asyncio
async def test_payment_refused_for_unknown_or_settled_orders(creation, make_order):
    with pytest.raises(OrderNotFoundError):
        await creation.create_payment("order_missing", "pix")

    paid = make_order(status=OrderStatus.PAID)
    with pytest.raises(OrderNotPayableError):
        await creation.create_payment(paid.external_reference, "pix")

    pending = make_order()
    with pytest.raises(OrderNotPayableError):
        await creation.create_payment(pending.external_reference, "bitcoin")
