"""
Payment Endpoints

PIX / boleto and card payment creation for a PENDING order.
Clients send `X-Idempotency-Key` so a retried request reuses the same
gateway payment instead of creating a second one.
"""

from fastapi import APIRouter, Depends, Header

from core.payments.creation import CardPaymentInput, PayerInfo, PaymentCreationService
from core.routers.deps import get_db, get_gateway

from ..models import CardPaymentRequest, CreatePaymentRequest

payments_router = APIRouter()


@payments_router.post("/api/checkout/orders/{external_reference}/payments")
async def create_order_payment(
    external_reference: str,
    body: CreatePaymentRequest,
    idempotency_key: str | None = Header(None, alias="X-Idempotency-Key"),
    db=Depends(get_db),
    gateway=Depends(get_gateway),
):
    payer = PayerInfo(**body.payer.model_dump()) if body.payer else None
    service = PaymentCreationService(db, gateway)
    result = await service.create_payment(external_reference, body.method, payer, idempotency_key)
    return {"ok": True, **result.to_dict()}


@payments_router.post("/api/checkout/orders/{external_reference}/card-payment")
async def create_order_card_payment(
    external_reference: str,
    body: CardPaymentRequest,
    idempotency_key: str | None = Header(None, alias="X-Idempotency-Key"),
    db=Depends(get_db),
    gateway=Depends(get_gateway),
):
    card = CardPaymentInput(**body.model_dump())
    service = PaymentCreationService(db, gateway)
    result = await service.create_card_payment(external_reference, card, idempotency_key)
    return {"ok": True, **result.to_dict()}
