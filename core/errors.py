"""
Error taxonomy for the order engine.

Every exception carries a stable `code` that routers return to callers and
jobs write to logs. Message constants keep user-facing strings in one place.
"""

from typing import Any

# User-facing messages
ERROR_ORDER_NOT_FOUND = "Order not found"
ERROR_UNAUTHORIZED = "Unauthorized"
ERROR_INVALID_SIGNATURE = "Invalid signature"
ERROR_INVALID_REQUEST = "Invalid request"
ERROR_PAYMENT_ALREADY_ATTEMPTED = "Order already has a payment attempt"
ERROR_GATEWAY_UNAVAILABLE = "Payment gateway unavailable, try again later"
ERROR_INTERNAL = "Internal server error"


class OrderEngineError(Exception):
    """Base class for all domain errors."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": False, "error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(OrderEngineError):
    """Bad input. Never retried."""

    code = "VALIDATION_ERROR"


class ProductNotFoundError(ValidationError):
    code = "PRODUCT_NOT_FOUND"


class OutOfStockVariantError(ValidationError):
    code = "OUT_OF_STOCK_VARIANT"


class OrderNotFoundError(OrderEngineError):
    code = "ORDER_NOT_FOUND"


class InvalidTransitionError(OrderEngineError):
    """A (from, to) pair outside the lifecycle table. Indicates a logic bug."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, order_id: str | None = None) -> None:
        super().__init__(
            f"Cannot transition from {from_status} to {to_status}",
            from_status=from_status,
            to_status=to_status,
            order_id=order_id,
        )
        self.from_status = from_status
        self.to_status = to_status


class StaleWriteError(OrderEngineError):
    """The stored version moved on. Caller must reload and decide."""

    code = "STALE_WRITE"
    retryable = True


class GatewayUnavailableError(OrderEngineError):
    """Timeout, network failure or 5xx from the gateway. Retried by the scheduler only."""

    code = "GATEWAY_UNAVAILABLE"
    retryable = True


class GatewayRejectedError(OrderEngineError):
    """Gateway answered 4xx. Non-retryable."""

    code = "GATEWAY_REJECTED"

    def __init__(self, status_code: int, message: str = "", body: str | None = None) -> None:
        super().__init__(message or f"Gateway rejected request: {status_code}", status_code=status_code)
        self.status_code = status_code
        # No PII from gateway bodies in logs
        self.body = body[:500] if body else None


class DuplicatePaymentAttemptError(OrderEngineError):
    """Order already holds a different payment claim."""

    code = "DUPLICATE_PAYMENT_ATTEMPT"


class SignatureInvalidError(OrderEngineError):
    code = "SIGNATURE_INVALID"


class FulfillmentError(OrderEngineError):
    """Fulfillment partner refused or failed the handoff."""

    code = "FULFILLMENT_FAILED"


class OrderNotPayableError(ValidationError):
    """Payment requested for an order that is no longer awaiting payment."""

    code = "ORDER_NOT_PAYABLE"


class AmountMismatchError(ValidationError):
    code = "AMOUNT_MISMATCH"


class OrderNotCancelableError(ValidationError):
    """Customer cancel of an order that is paid or has a payment in flight."""

    code = "ORDER_NOT_CANCELABLE"
