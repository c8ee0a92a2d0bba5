"""Pytest configuration and fixtures"""
import os
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx
import pytest

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")
os.environ.setdefault("ADMIN_API_KEY", "test_admin_key")
os.environ.setdefault("CRON_SECRET", "test_cron_secret")
os.environ.setdefault("MP_ACCESS_TOKEN", "TEST-access-token")
os.environ.setdefault("MP_WEBHOOK_SECRET", "test_webhook_secret")

from fakes import FakeSupabaseClient, MercadoPagoStub  # noqa: E402

from core.orders.constants import OrderStatus  # noqa: E402
from core.orders.status_service import OrderStatusService  # noqa: E402
from core.payments.config import GatewayConfig  # noqa: E402
from core.payments.ingestion import PaymentIngestionService  # noqa: E402
from core.services import notifications as notifications_module  # noqa: E402
from core.services.database import Database  # noqa: E402
from core.services.models import Order  # noqa: E402
from core.services.notifications import OrderNotifier  # noqa: E402
from core.services.payments import PaymentGatewayClient  # noqa: E402


class RecordingNotifier(OrderNotifier):
    """Keeps notifications in memory instead of sending them."""

    def __init__(self):
        super().__init__(email_webhook_url="", alert_webhook_url="")
        self.transitions: List[tuple] = []
        self.created: List[Order] = []
        self.alerts: List[Dict[str, Any]] = []

    async def order_transitioned(self, order, from_status, actor):
        self.transitions.append((order.id, from_status, order.status, actor))

    async def order_created(self, order):
        self.created.append(order)

    async def alert_admins(self, title, severity="error", **fields):
        self.alerts.append({"title": title, "severity": severity, **fields})


class RecordingEnqueuer:
    """Stands in for the QStash fulfillment handoff."""

    def __init__(self):
        self.orders: List[Order] = []

    async def __call__(self, order: Order) -> dict:
        self.orders.append(order)
        return {"queued": True, "message_id": f"msg-{order.id}"}


@pytest.fixture(autouse=True)
def _isolate_side_effects(monkeypatch):
    """No QStash, no Redis, and a recording notifier singleton for every test."""
    from core import queue
    from core.services import fulfillment as fulfillment_module

    monkeypatch.setattr(queue, "QSTASH_TOKEN", "")
    monkeypatch.setattr(queue, "QSTASH_CURRENT_SIGNING_KEY", "")
    monkeypatch.delenv("VERCEL_ENV", raising=False)
    monkeypatch.delenv("SCHEDULER_ENABLED", raising=False)
    monkeypatch.delenv("FULFILLMENT_CREATE_ORDER_ENABLED", raising=False)
    monkeypatch.setattr(fulfillment_module, "_fulfillment_client", None)
    recorder = RecordingNotifier()
    monkeypatch.setattr(notifications_module, "_notifier", recorder)
    return recorder


@pytest.fixture
def notifier(_isolate_side_effects) -> RecordingNotifier:
    return _isolate_side_effects


@pytest.fixture
def supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def db(supabase, monkeypatch) -> Database:
    """Database facade over the in-memory client, also installed as the singleton."""
    from core.services import database as database_module

    database = Database(supabase)
    monkeypatch.setattr(database_module, "_db", database)
    return database


@pytest.fixture
def mp() -> MercadoPagoStub:
    return MercadoPagoStub()


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        access_token="TEST-access-token",
        api_url="https://api.mercadopago.test",
        webhook_secret="test_webhook_secret",
        notification_url="https://orders.test/api/webhook/mercadopago",
        statement_descriptor="STAMPSHOP",
        timeout_seconds=1.0,
        connect_timeout_seconds=1.0,
    )


@pytest.fixture
def gateway(mp, gateway_config) -> PaymentGatewayClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(mp.handler))
    return PaymentGatewayClient(config=gateway_config, http_client=http_client)


@pytest.fixture
def enqueuer() -> RecordingEnqueuer:
    return RecordingEnqueuer()


@pytest.fixture
def status_service(db, notifier) -> OrderStatusService:
    return OrderStatusService(db, notifier)


@pytest.fixture
def ingestion(db, gateway, status_service, enqueuer) -> PaymentIngestionService:
    return PaymentIngestionService(db, gateway, status_service=status_service, fulfillment_enqueuer=enqueuer)


@pytest.fixture
def sample_products(supabase) -> List[Dict[str, Any]]:
    """Catalog: one shirt with variant stock, one legacy mug, one test product."""
    products = [
        {
            "id": "prod-shirt",
            "name": "Camiseta Carimbo",
            "price": "50.00",
            "category": "CAMISETAS",
            "is_active": True,
            "colors": [],
            "sizes": [],
            "color_stock": [
                {
                    "id": "preto",
                    "stock": {
                        "feminino": {"available": True, "sizes": ["P", "M"]},
                        "masculino": {"available": False, "sizes": ["G"]},
                    },
                }
            ],
        },
        {
            "id": "prod-mug",
            "name": "Caneca",
            "price": "25.00",
            "category": "CANECAS",
            "is_active": True,
            "colors": ["branco"],
            "sizes": [],
            "color_stock": None,
        },
        {
            "id": "prod-test",
            "name": "Produto de teste",
            "price": "1.00",
            "category": "TESTES",
            "is_active": True,
        },
    ]
    supabase.seed("products", products)
    return products


@pytest.fixture
def make_order(supabase):
    """Insert an order straight into the fake store, bypassing checkout."""

    def _make(
        status: OrderStatus = OrderStatus.PENDING,
        total: int = 10000,
        age: Optional[timedelta] = None,
        **fields: Any,
    ) -> Order:
        row = supabase._rpc_create_checkout_order(
            {
                "external_reference": fields.pop("external_reference", None)
                or f"order_test-{len(supabase.tables['orders']) + 1}",
                "subtotal": total,
                "total": total,
                "payer_name": "Maria Silva",
                "payer_email": "maria@example.com",
                "payer_cpf": "12345678909",
                "shipping_cep": "01310-100",
                "shipping_address1": "Av. Paulista",
                "shipping_number": "1000",
                "shipping_city": "Sao Paulo",
                "shipping_state": "SP",
            },
            [
                {
                    "product_id": "prod-shirt",
                    "product_name": "Camiseta Carimbo",
                    "quantity": 2,
                    "unit_price": total // 2,
                    "size": "M",
                    "color": "preto",
                }
            ],
        )[0]
        stored = supabase.find("orders", id=row["id"])[0]
        stored["status"] = OrderStatus(status).value
        stored.update(fields)
        if age is not None:
            supabase.set_created_at(stored["id"], datetime.now(UTC) - age)
        return Order(**stored)

    return _make


@pytest.fixture
def api_client(db, gateway):
    """TestClient for the main app with the in-memory DB and stubbed gateway."""
    from fastapi.testclient import TestClient

    from api.index import app
    from core.routers.deps import get_db, get_gateway

    async def _get_db():
        return db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

