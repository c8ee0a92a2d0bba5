"""
Webhooks Router

Mercado Pago payment notifications. The signature is checked before anything
is recorded; the rest of the pipeline lives in PaymentIngestionService.
"""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.errors import ERROR_INVALID_SIGNATURE, SignatureInvalidError
from core.logging import get_logger, sanitize_id_for_logging
from core.payments.config import get_gateway_config
from core.payments.ingestion import PaymentIngestionService, WebhookNotification
from core.payments.signature import verify_webhook_signature
from core.routers.deps import get_db, get_gateway

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


# ==================== MERCADO PAGO WEBHOOK ====================

@router.post("/api/webhook/mercadopago")
async def mercadopago_webhook(request: Request, db=Depends(get_db), gateway=Depends(get_gateway)):
    """
    Handle Mercado Pago notification.

    401 on a bad signature, 503 when the event could not be stored,
    200 otherwise (including duplicates and processing failures).
    """
    raw_body = await request.body()
    try:
        body = json.loads(raw_body.decode("utf-8")) if raw_body else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = {}
    if not isinstance(body, dict):
        body = {}

    notification = WebhookNotification(
        body=body,
        request_id=request.headers.get("x-request-id"),
        query_data_id=request.query_params.get("data.id") or request.query_params.get("id"),
        query_type=request.query_params.get("type") or request.query_params.get("topic"),
    )

    secret = get_gateway_config().webhook_secret
    if not verify_webhook_signature(
        secret, request.headers.get("x-signature"), notification.request_id, notification.data_id
    ):
        logger.warning(
            f"Mercado Pago webhook rejected: invalid signature "
            f"(data_id={sanitize_id_for_logging(notification.data_id)}, secret_set={bool(secret)})"
        )
        raise SignatureInvalidError(ERROR_INVALID_SIGNATURE)

    service = PaymentIngestionService(db, gateway)
    outcome = await service.ingest_notification(notification)
    return JSONResponse(outcome.body, status_code=outcome.status_code)
