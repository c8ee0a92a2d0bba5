"""Translate domain errors into `{"ok": false, "error": <code>}` responses."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.errors import (
    ERROR_INVALID_REQUEST,
    ERROR_ORDER_NOT_FOUND,
    OrderEngineError,
    ValidationError,
)
from core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE: dict[str, int] = {
    "ORDER_NOT_FOUND": 404,
    "ORDER_NOT_PAYABLE": 409,
    "ORDER_NOT_CANCELABLE": 409,
    "INVALID_TRANSITION": 409,
    "STALE_WRITE": 409,
    "DUPLICATE_PAYMENT_ATTEMPT": 409,
    "GATEWAY_REJECTED": 502,
    "FULFILLMENT_FAILED": 502,
    "GATEWAY_UNAVAILABLE": 503,
    "SIGNATURE_INVALID": 401,
}


def status_for(error: OrderEngineError) -> int:
    if error.code in STATUS_BY_CODE:
        return STATUS_BY_CODE[error.code]
    if isinstance(error, ValidationError):
        return 400
    return 500


def error_response(error: OrderEngineError) -> JSONResponse:
    status_code = status_for(error)
    if error.code == "ORDER_NOT_FOUND":
        # Never confirm which references exist
        return JSONResponse(
            {"ok": False, "error": error.code, "message": ERROR_ORDER_NOT_FOUND}, status_code=404
        )
    if status_code >= 500:
        logger.error(f"Request failed with {error.code}: {error.message}")
    return JSONResponse(error.to_dict(), status_code=status_code)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderEngineError)
    async def _order_engine_error(request: Request, exc: OrderEngineError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(
            {"ok": False, "error": "VALIDATION_ERROR", "message": ERROR_INVALID_REQUEST, "details": details},
            status_code=400,
        )
