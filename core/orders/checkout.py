"""
Checkout Intake - order creation.

The backend is the source of truth for every amount: unit prices come from
the catalog and discounts are recomputed here. Order, items, creation log
entry and coupon reservation are written by one DB function, so a failed
checkout never leaves a partial order behind.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Optional

from postgrest.exceptions import APIError
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.errors import OutOfStockVariantError, ProductNotFoundError, ValidationError
from core.logging import format_fields, get_logger
from core.orders.stock import find_stock_violations
from core.services.models import Coupon, Order, OrderTotals
from core.services.money import percent_of, to_minor_units
from core.services.notifications import OrderNotifier, get_notifier
from core.services.risk import RiskInput, compute_order_risk, truncate_for_db

logger = get_logger(__name__)

TEST_PRODUCT_CATEGORY = "TESTES"
COUPON_PERCENTAGE = "PERCENTAGE"
COUPON_UNAVAILABLE = "COUPON_UNAVAILABLE"
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ==================== REQUEST MODELS ====================


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CheckoutItem(_CamelModel):
    product_id: str
    quantity: int = Field(gt=0)
    unit_price: Optional[Decimal] = None  # client's view, informational only
    size: Optional[str] = None
    color: Optional[str] = None


class ShippingInfo(_CamelModel):
    cep: Optional[str] = None
    address1: Optional[str] = None
    number: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    complement: Optional[str] = None
    service: Optional[str] = None
    deadline: Optional[int] = Field(default=None, ge=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)  # quoted by the shipping calculator


class PayerData(_CamelModel):
    name: str = Field(min_length=3)
    email: str
    cpf: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not EMAIL_RE.match(v):
            raise ValueError("invalid e-mail")
        return v


class CheckoutRequest(_CamelModel):
    payer: PayerData
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    items: list[CheckoutItem] = Field(min_length=1)
    coupon_code: Optional[str] = None

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v):
        v = (v or "").strip().upper()
        return v or None


@dataclass
class RequestContext:
    """Telemetry taken from the HTTP request."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


# ==================== TOTALS ====================


def quantity_discount_percent(item_count: int) -> int:
    """3 items 5%, 4 items 10%, 5 or more 15%."""
    if item_count >= 5:
        return 15
    if item_count == 4:
        return 10
    if item_count == 3:
        return 5
    return 0


def coupon_is_usable(coupon: Optional[Coupon], now: datetime) -> bool:
    if coupon is None or not coupon.is_active:
        return False
    expires_at = coupon.expires_at
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if now > expires_at:
            return False
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        return False
    return True


def calculate_totals(
    lines: list[tuple[int, int]],
    coupon: Optional[Coupon] = None,
    shipping_cost: int = 0,
) -> OrderTotals:
    """
    Totals in centavos from (unit_price, quantity) lines.

    Quantity discount first, then the coupon, capped at what is left.
    """
    subtotal = sum(price * qty for price, qty in lines)
    item_count = sum(qty for _, qty in lines)

    quantity_discount = percent_of(subtotal, quantity_discount_percent(item_count))
    after_quantity = subtotal - quantity_discount

    coupon_discount = 0
    if coupon is not None:
        if coupon.type.upper() == COUPON_PERCENTAGE:
            coupon_discount = percent_of(after_quantity, coupon.value)
        else:
            coupon_discount = to_minor_units(coupon.value)
        coupon_discount = max(0, min(coupon_discount, after_quantity))

    total = after_quantity - coupon_discount + shipping_cost
    return OrderTotals(
        subtotal=subtotal,
        quantity_discount=quantity_discount,
        coupon_discount=coupon_discount,
        discount_total=quantity_discount + coupon_discount,
        shipping_cost=shipping_cost,
        total=total,
        item_count=item_count,
    )


# ==================== SERVICE ====================


class CheckoutService:
    """createOrder: validate, price, persist atomically."""

    def __init__(self, db, notifier: Optional[OrderNotifier] = None):
        self.db = db
        self.notifier = notifier or get_notifier()

    async def create_order(
        self, request: CheckoutRequest, context: Optional[RequestContext] = None
    ) -> dict[str, Any]:
        """
        Create a PENDING order.

        Raises:
            ProductNotFoundError: unknown product id
            OutOfStockVariantError: color/size combination not sellable
            ValidationError: coupon ran out between validation and reservation
        """
        context = context or RequestContext()
        now = datetime.now(UTC)

        product_ids = list(dict.fromkeys(item.product_id for item in request.items))
        products = await self.db.products.get_by_ids(product_ids)
        missing = [pid for pid in product_ids if pid not in products or not products[pid].is_active]
        if missing:
            raise ProductNotFoundError(
                "One or more products were not found",
                products=[{"productId": pid} for pid in missing],
            )

        violations = find_stock_violations(
            [(item.product_id, item.color, item.size) for item in request.items], products
        )
        if violations:
            logger.warning(f"Stock validation failed: {[v.to_dict() for v in violations]}")
            raise OutOfStockVariantError(
                "One or more color/size combinations are unavailable",
                violations=[v.to_dict() for v in violations],
            )

        coupon = None
        if request.coupon_code:
            candidate = await self.db.coupons.get_by_code(request.coupon_code)
            if coupon_is_usable(candidate, now):
                coupon = candidate
            else:
                logger.info(f"Coupon {request.coupon_code} not usable, ignoring")

        has_test_products = any(products[pid].category == TEST_PRODUCT_CATEGORY for pid in product_ids)
        shipping_cost = 0 if has_test_products else to_minor_units(request.shipping.cost)
        totals = calculate_totals(
            [(to_minor_units(products[i.product_id].price), i.quantity) for i in request.items],
            coupon,
            shipping_cost,
        )
        if totals.coupon_discount == 0:
            coupon = None

        shipping = request.shipping
        risk = await compute_order_risk(
            self.db,
            RiskInput(
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                email=str(request.payer.email),
                cpf=request.payer.cpf,
                cep=shipping.cep,
                state=shipping.state,
            ),
            now,
        )

        external_reference = f"order_{uuid.uuid4()}"
        order_row = {
            "external_reference": external_reference,
            "subtotal": totals.subtotal,
            "discount_total": totals.discount_total,
            "coupon_discount": totals.coupon_discount,
            "shipping_cost": totals.shipping_cost,
            "total": totals.total,
            "coupon_code": coupon.code if coupon else None,
            "payer_name": request.payer.name.strip(),
            "payer_email": str(request.payer.email),
            "payer_cpf": request.payer.cpf,
            "payer_phone": request.payer.phone,
            "shipping_cep": shipping.cep,
            "shipping_address1": shipping.address1,
            "shipping_number": shipping.number,
            "shipping_district": shipping.district,
            "shipping_city": shipping.city,
            "shipping_state": shipping.state,
            "shipping_complement": shipping.complement,
            "shipping_service": shipping.service,
            "shipping_deadline": shipping.deadline,
            "risk_score": risk.score,
            "risk_flags": risk.reasons,
            "risk_flagged": risk.flagged,
            "ip_address": truncate_for_db(context.ip_address),
            "user_agent": truncate_for_db(context.user_agent),
        }
        item_rows = [
            {
                "product_id": item.product_id,
                "product_name": products[item.product_id].name,
                "quantity": item.quantity,
                "unit_price": to_minor_units(products[item.product_id].price),
                "size": item.size,
                "color": item.color,
            }
            for item in request.items
        ]

        order = await self._persist(order_row, item_rows)
        logger.info(
            "Order created "
            + format_fields(
                order_id=order.id,
                external_reference=external_reference,
                total=totals.total,
                risk_score=risk.score,
            )
        )
        if order.risk_flagged:
            await self.notifier.order_created(order)

        return {
            "orderId": order.id,
            "externalReference": order.external_reference,
            "totals": {
                "subtotal": totals.subtotal,
                "discountTotal": totals.discount_total,
                "couponDiscount": totals.coupon_discount,
                "shippingCost": totals.shipping_cost,
                "total": totals.total,
            },
        }

    async def _persist(self, order_row: dict[str, Any], item_rows: list[dict[str, Any]]) -> Order:
        try:
            return await self.db.orders.create_with_items(order_row, item_rows)
        except APIError as e:
            if COUPON_UNAVAILABLE in (e.message or ""):
                raise ValidationError("Coupon is no longer available", coupon=order_row["coupon_code"]) from e
            raise
