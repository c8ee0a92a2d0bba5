"""
Payment creation for checkout: PIX / boleto and tokenized card.

An order has a single payment slot. The slot is claimed with a conditional
update on `payment_attempt_key` before the gateway is called, so two
concurrent requests can never create two gateway payments. A retry with the
same idempotency key reuses the slot and the gateway dedups the call.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from core.errors import (
    AmountMismatchError,
    DuplicatePaymentAttemptError,
    GatewayRejectedError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderNotPayableError,
    StaleWriteError,
)
from core.logging import format_fields, get_logger
from core.orders.constants import OrderStatus, TransitionActor
from core.orders.status_service import OrderStatusService, run_with_stale_retry
from core.payments.constants import BOLETO_EXPIRATION_DAYS, PaymentMethod, normalize_method
from core.payments.ingestion import IngestionResult, PaymentIngestionService
from core.payments.status_mapper import map_gateway_status
from core.services.models import Order
from core.services.money import from_minor_units, to_minor_units
from core.services.payments import GatewayPayment, PaymentGatewayClient, get_gateway_client

logger = get_logger(__name__)


@dataclass
class PayerInfo:
    email: Optional[str] = None
    name: Optional[str] = None
    cpf: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class CardPaymentInput:
    """Card data tokenized by the gateway's browser SDK. Raw card numbers never reach us."""

    token: str
    payment_method_id: str
    installments: int
    transaction_amount: Any  # major units as sent by the SDK
    issuer_id: Optional[str] = None
    payer_email: Optional[str] = None
    identification_type: Optional[str] = None
    identification_number: Optional[str] = None
    device_id: Optional[str] = None


@dataclass
class PaymentAttemptResult:
    order: Order
    payment: GatewayPayment
    idempotency_key: str
    ingestion: Optional[IngestionResult] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "externalReference": self.order.external_reference,
            "paymentId": self.payment.id,
            "status": self.payment.status,
            "statusDetail": self.payment.status_detail,
            "idempotencyKey": self.idempotency_key,
        }
        if self.payment.pix_qr_code:
            data["pix"] = {
                "qrCode": self.payment.pix_qr_code_base64 or self.payment.pix_qr_code,
                "copyPaste": self.payment.pix_qr_code,
            }
        if self.payment.ticket_url and not self.payment.pix_qr_code:
            data["boleto"] = {"url": self.payment.ticket_url}
        return data


def _digits(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


class PaymentCreationService:
    """Creates gateway payments for PENDING orders."""

    def __init__(
        self,
        db,
        gateway: Optional[PaymentGatewayClient] = None,
        ingestion: Optional[PaymentIngestionService] = None,
        status_service: Optional[OrderStatusService] = None,
    ):
        self.db = db
        self.gateway = gateway or get_gateway_client()
        self.status_service = status_service or OrderStatusService(db)
        self.ingestion = ingestion or PaymentIngestionService(
            db, self.gateway, status_service=self.status_service
        )

    async def create_payment(
        self,
        external_reference: str,
        method: str,
        payer: Optional[PayerInfo] = None,
        idempotency_key: Optional[str] = None,
    ) -> PaymentAttemptResult:
        """PIX or boleto payment for an order."""
        method = normalize_method(method)
        if method not in (PaymentMethod.PIX.value, PaymentMethod.BOLETO.value):
            raise OrderNotPayableError(f"Unsupported payment method: {method}")

        order = await self._load_payable(external_reference)
        body = self._build_ticket_body(order, method, payer or PayerInfo())
        return await self._create(order, method, body, idempotency_key)

    async def create_card_payment(
        self,
        external_reference: str,
        card: CardPaymentInput,
        idempotency_key: Optional[str] = None,
    ) -> PaymentAttemptResult:
        """Card payment from a gateway token. The amount must match the order total."""
        order = await self._load_payable(external_reference)
        if to_minor_units(card.transaction_amount) != order.total:
            logger.warning(
                "Card payment amount mismatch "
                + format_fields(order_id=order.id, total=order.total, requested=card.transaction_amount)
            )
            raise AmountMismatchError("Payment amount does not match the order total")
        body = self._build_card_body(order, card)
        return await self._create(order, PaymentMethod.CARD.value, body, idempotency_key)

    # ==================== INTERNALS ====================

    async def _load_payable(self, external_reference: str) -> Order:
        order = await self.db.orders.get_by_external_reference(external_reference)
        if order is None:
            raise OrderNotFoundError(external_reference=external_reference)
        if order.status != OrderStatus.PENDING:
            raise OrderNotPayableError("Order is not awaiting payment", status=order.status.value)
        return order

    async def _create(
        self, order: Order, method: str, body: dict[str, Any], idempotency_key: Optional[str]
    ) -> PaymentAttemptResult:
        # Without a client key, retries of the same order replay the same gateway request
        key = idempotency_key or f"pay-{order.id}"
        order = await self._claim_slot(order.id, key, method)

        try:
            payment = await self.gateway.create_payment(body, key)
        except GatewayRejectedError:
            await self._fail_order(order.id)
            raise

        order = await self._attach(order.id, payment)

        ingestion = None
        if map_gateway_status(payment.status) is not None:
            ingestion = await self.ingestion.ingest_payment(payment, TransitionActor.CHECKOUT, order=order)
            if ingestion.order is not None:
                order = ingestion.order

        logger.info(
            "Payment attempt created "
            + format_fields(order_id=order.id, method=method, payment_id=payment.id, status=payment.status)
        )
        return PaymentAttemptResult(order, payment, key, ingestion)

    async def _claim_slot(self, order_id: str, key: str, method: str) -> Order:
        """Take the payment slot or confirm it is ours already."""

        async def apply(current: Order) -> Order:
            if current.payment_attempt_key:
                if current.payment_attempt_key != key or current.payment_method != method:
                    raise DuplicatePaymentAttemptError(order_id=current.id)
                return current
            if current.status != OrderStatus.PENDING:
                raise OrderNotPayableError("Order is not awaiting payment", status=current.status.value)
            claimed = await self.db.orders.claim_payment_attempt(current.id, current.version, key, method)
            if claimed is None:
                raise StaleWriteError(order_id=current.id)
            return claimed

        return await run_with_stale_retry(lambda: self.db.orders.get_by_id(order_id), apply)

    async def _attach(self, order_id: str, payment: GatewayPayment) -> Order:
        """Set gateway_payment_id once."""

        async def apply(current: Order) -> Order:
            if current.gateway_payment_id == payment.id:
                return current
            if current.gateway_payment_id:
                logger.error(
                    "Gateway returned a second payment for a claimed order "
                    + format_fields(order_id=current.id, attached=current.gateway_payment_id, new=payment.id)
                )
                raise DuplicatePaymentAttemptError(order_id=current.id)
            attached = await self.db.orders.attach_gateway_payment(
                current.id, current.version, payment.id, payment.status
            )
            if attached is None:
                raise StaleWriteError(order_id=current.id)
            return attached

        return await run_with_stale_retry(lambda: self.db.orders.get_by_id(order_id), apply)

    async def _fail_order(self, order_id: str) -> None:
        """Gateway refused the payment request: the order cannot be paid anymore."""

        async def apply(current: Order):
            if current.status != OrderStatus.PENDING:
                return None
            return await self.status_service.transition(
                current, OrderStatus.FAILED, TransitionActor.CHECKOUT, "gateway rejected payment creation"
            )

        try:
            await run_with_stale_retry(lambda: self.db.orders.get_by_id(order_id), apply)
        except (StaleWriteError, InvalidTransitionError) as e:
            logger.warning(f"Could not mark order {order_id} FAILED after gateway rejection: {e.code}")

    def _base_body(self, order: Order) -> dict[str, Any]:
        config = self.gateway.config
        body: dict[str, Any] = {
            "transaction_amount": float(from_minor_units(order.total)),
            "description": f"Pedido {order.external_reference}",
            "external_reference": order.external_reference,
            "statement_descriptor": config.statement_descriptor,
        }
        if config.notification_url:
            body["notification_url"] = config.notification_url
        return body

    def _build_ticket_body(self, order: Order, method: str, payer: PayerInfo) -> dict[str, Any]:
        body = self._base_body(order)
        body["payment_method_id"] = method

        name = payer.name or order.payer_name or ""
        first, _, last = name.partition(" ")
        payer_body: dict[str, Any] = {"email": payer.email or order.payer_email}
        if first:
            payer_body["first_name"] = first
            payer_body["last_name"] = last
        document = _digits(payer.cpf or order.payer_cpf)
        if document:
            payer_body["identification"] = {
                "type": "CPF" if len(document) == 11 else "CNPJ",
                "number": document,
            }
        body["payer"] = payer_body

        if method == PaymentMethod.BOLETO.value:
            expires = datetime.now(UTC) + timedelta(days=BOLETO_EXPIRATION_DAYS)
            body["date_of_expiration"] = expires.isoformat(timespec="milliseconds")
        return body

    def _build_card_body(self, order: Order, card: CardPaymentInput) -> dict[str, Any]:
        body = self._base_body(order)
        body.update(
            {
                "token": card.token,
                "payment_method_id": card.payment_method_id,
                "installments": card.installments,
            }
        )
        if card.issuer_id:
            body["issuer_id"] = card.issuer_id
        if card.device_id:
            body["device_id"] = card.device_id
        payer_body: dict[str, Any] = {"email": card.payer_email or order.payer_email}
        if card.identification_type and card.identification_number:
            payer_body["identification"] = {
                "type": card.identification_type,
                "number": _digits(card.identification_number),
            }
        body["payer"] = payer_body
        return body
