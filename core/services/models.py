"""Database Models - Pydantic models for all entities."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.orders.constants import OrderStatus
from core.services.money import to_decimal as _to_decimal


class Order(BaseModel):
    """Order aggregate. All amounts are integer centavos."""

    model_config = ConfigDict(extra="ignore")  # Ignore unknown fields from DB

    id: str
    external_reference: str
    status: OrderStatus = OrderStatus.PENDING
    version: int = 1

    # Totals, fixed at creation
    subtotal: int = 0
    discount_total: int = 0
    coupon_discount: int = 0
    shipping_cost: int = 0
    total: int = 0
    coupon_code: Optional[str] = None

    # Payer snapshot
    payer_name: Optional[str] = None
    payer_email: Optional[str] = None
    payer_cpf: Optional[str] = None
    payer_phone: Optional[str] = None

    # Shipping snapshot
    shipping_cep: Optional[str] = None
    shipping_address1: Optional[str] = None
    shipping_number: Optional[str] = None
    shipping_district: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_complement: Optional[str] = None
    shipping_service: Optional[str] = None
    shipping_deadline: Optional[int] = None

    # Payment
    payment_method: Optional[str] = None
    payment_attempt_key: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_status: Optional[str] = None

    # Fulfillment
    fulfillment_order_id: Optional[str] = None
    fulfillment_status: Optional[str] = None

    # Risk (immutable after creation)
    risk_score: int = 0
    risk_flags: list[str] = Field(default_factory=list)
    risk_flagged: bool = False
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("risk_flags", mode="before")
    @classmethod
    def default_flags(cls, v):
        return v or []

    @field_validator("gateway_payment_id", mode="before")
    @classmethod
    def payment_id_to_str(cls, v):
        # Gateway ids are numeric in JSON
        return str(v) if v is not None else None


class OrderItem(BaseModel):
    """Immutable item snapshot taken from the catalog at creation."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    order_id: Optional[str] = None
    product_id: str
    product_name: Optional[str] = None
    quantity: int
    unit_price: int
    size: Optional[str] = None
    color: Optional[str] = None


class TransitionLogEntry(BaseModel):
    """Append-only audit record of one status change."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    order_id: str
    from_status: Optional[OrderStatus] = None
    to_status: OrderStatus
    actor: str
    reason: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_status_snapshot: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class ProcessedWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    event_id: str
    provider: str
    event_type: Optional[str] = None
    payment_id: Optional[str] = None
    status: str = "received"
    error_message: Optional[str] = None
    payload: Optional[dict[str, Any]] = None
    received_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class Product(BaseModel):
    """Catalog product as read by checkout. Prices are in major units in the catalog."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    price: Decimal
    category: Optional[str] = None
    is_active: bool = True
    colors: list[str] = Field(default_factory=list)
    sizes: list[str] = Field(default_factory=list)
    color_stock: Optional[Any] = None

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)

    @field_validator("colors", "sizes", mode="before")
    @classmethod
    def default_list(cls, v):
        return v or []


class Coupon(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str
    type: str  # PERCENTAGE | FIXED
    value: Decimal
    is_active: bool = True
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    used_count: int = 0

    @field_validator("value", mode="before")
    @classmethod
    def convert_value_to_decimal(cls, v):
        return _to_decimal(v)


class OrderTotals(BaseModel):
    """Server-computed totals in centavos."""

    subtotal: int
    quantity_discount: int = 0
    coupon_discount: int = 0
    discount_total: int = 0
    shipping_cost: int = 0
    total: int
    item_count: int = 0
