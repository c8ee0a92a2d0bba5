"""Tests for database operations"""
from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock

import pytest
from postgrest.exceptions import APIError

from core.orders.constants import OrderStatus
from core.services.database import Database
from core.services.repositories.base import is_duplicate_key_error


@pytest.fixture
def mock_supabase_client():
    """Chainable mock Supabase client; every query ends in an awaited execute()."""
    client = Mock()
    table_mock = Mock()
    for method in ("select", "insert", "update", "eq", "is_", "in_", "ilike", "lt", "gt", "gte", "order", "limit"):
        getattr(table_mock, method).return_value = table_mock
    table_mock.execute = AsyncMock(return_value=Mock(data=[], count=0))
    client.table.return_value = table_mock
    client.rpc.return_value = table_mock
    return client


@pytest.fixture
def mock_database(mock_supabase_client):
    """Mock database instance"""
    return Database(mock_supabase_client)


def test_duplicate_key_detection():
    assert is_duplicate_key_error(APIError({"code": "23505", "message": "duplicate key value"}))
    assert is_duplicate_key_error(Exception('duplicate key value violates unique constraint "x"'))
    assert not is_duplicate_key_error(APIError({"code": "P0001", "message": "COUPON_UNAVAILABLE"}))
    assert not is_duplicate_key_error(RuntimeError("timeout"))


@pytest.mark.asyncio
async def test_get_order_not_found(mock_database):
    assert await mock_database.get_order_by_reference("order_missing") is None


@pytest.mark.asyncio
async def test_claim_payment_attempt_is_conditional(mock_database, mock_supabase_client):
    table = mock_supabase_client.table.return_value

    claimed = await mock_database.orders.claim_payment_attempt("o1", 3, "key-1", "pix")

    assert claimed is None
    update = table.update.call_args.args[0]
    assert update["payment_attempt_key"] == "key-1"
    assert update["version"] == 4
    table.eq.assert_any_call("id", "o1")
    table.eq.assert_any_call("version", 3)
    table.eq.assert_any_call("status", OrderStatus.PENDING.value)
    table.is_.assert_called_once_with("payment_attempt_key", "null")


@pytest.mark.asyncio
async def test_apply_transition_calls_db_function(mock_database, mock_supabase_client):
    table = mock_supabase_client.rpc.return_value
    table.execute.return_value = Mock(
        data=[{"id": "o1", "external_reference": "order_1", "status": "PAID", "version": 2}]
    )

    order = await mock_database.orders.apply_transition(
        "o1", 1, OrderStatus.PENDING, OrderStatus.PAID, "webhook", gateway_payment_id="55"
    )

    assert order.status == OrderStatus.PAID
    name, params = mock_supabase_client.rpc.call_args.args
    assert name == "apply_order_transition"
    assert params["p_expected_version"] == 1
    assert params["p_from"] == "PENDING"
    assert params["p_to"] == "PAID"
    assert params["p_gateway_payment_id"] == "55"


@pytest.mark.asyncio
async def test_count_queries_use_exact_count(mock_database, mock_supabase_client):
    table = mock_supabase_client.table.return_value
    table.execute.return_value = Mock(data=[], count=4)
    since = datetime(2026, 1, 1, tzinfo=UTC)

    assert await mock_database.orders.count_by_ip_since("1.2.3.4", since) == 4
    table.select.assert_called_with("id", count="exact")
    table.gte.assert_called_with("created_at", since.isoformat())


@pytest.mark.asyncio
async def test_webhook_event_dedup(db):
    assert await db.webhook_events.record_received("evt-1", "mercadopago", "payment", "55", {"id": "evt-1"})
    assert not await db.webhook_events.record_received("evt-1", "mercadopago", "payment", "55")

    await db.webhook_events.mark("evt-1", "processed", payment_id="55")
    event = await db.webhook_events.get("evt-1")
    assert event.status == "processed"
    assert event.processed_at is not None


@pytest.mark.asyncio
async def test_webhook_event_storage_error_propagates(db, supabase):
    supabase.failures[("processed_webhook_events", "insert")] = RuntimeError("connection reset")

    with pytest.raises(RuntimeError):
        await db.webhook_events.record_received("evt-2", "mercadopago", "payment", "56")


@pytest.mark.asyncio
async def test_products_by_ids(db, sample_products):
    products = await db.products.get_by_ids(["prod-mug", "ghost"])

    assert list(products) == ["prod-mug"]
    assert products["prod-mug"].price == 25
    assert await db.products.get_by_ids([]) == {}
