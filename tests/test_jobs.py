"""Tests for the reconciliation and abandonment jobs and the in-process scheduler"""
import asyncio
from datetime import timedelta

import httpx
import pytest

from core.jobs.abandonment import AbandonmentJob
from core.jobs.config import (
    AbandonmentSettings,
    ReconciliationSettings,
    get_abandon_after_minutes,
    get_job_intervals,
)
from core.jobs.reconciliation import ReconciliationJob
from core.jobs.scheduler import PeriodicJob, PeriodicJobRunner
from core.orders.constants import OrderStatus

FAST_RECONCILE = ReconciliationSettings(grace_minutes=5, outer_bound_minutes=60, batch_limit=2, rate_delay=0)
FAST_ABANDON = AbandonmentSettings(after_minutes=60, batch_limit=50, rate_delay=0)


@pytest.fixture
def reconciliation(db, gateway, ingestion):
    return ReconciliationJob(db, gateway, ingestion, settings=FAST_RECONCILE)


@pytest.fixture
def abandonment(db, gateway, ingestion, status_service):
    return AbandonmentJob(db, gateway, ingestion, status_service, settings=FAST_ABANDON)


# ==================== CONFIG ====================


def test_settings_read_and_clamp_env(monkeypatch):
    monkeypatch.setenv("RECONCILE_BATCH_LIMIT", "500")
    monkeypatch.setenv("RECONCILE_GRACE_MINUTES", "not-a-number")
    monkeypatch.setenv("ABANDON_AFTER_MINUTES", "5")
    monkeypatch.setenv("RECONCILE_INTERVAL_SECONDS", "1")

    settings = ReconciliationSettings.from_env()

    assert settings.batch_limit == 50
    assert settings.grace_minutes == 5
    assert settings.outer_bound_minutes == 15
    assert get_abandon_after_minutes() == 15
    assert get_job_intervals() == (30, 600)


# ==================== RECONCILIATION ====================


@pytest.mark.asyncio
async def test_dropped_webhook_converges_in_one_run(db, reconciliation, make_order, mp):
    order = make_order(age=timedelta(minutes=10))
    mp.add_payment("approved", order.external_reference)

    summary = await reconciliation.run_once()

    assert summary.checked == 1
    assert summary.updated == 1
    stored = await db.get_order_by_id(order.id)
    assert stored.status == OrderStatus.READY_FOR_FULFILLMENT
    history = await db.get_order_history(order.id)
    assert history[1].actor == "reconciliation-job"


@pytest.mark.asyncio
async def test_reconciliation_window_and_batches(db, reconciliation, make_order, mp):
    fresh = make_order(age=timedelta(minutes=1))
    stale = [make_order(age=timedelta(minutes=10 + i)) for i in range(3)]
    expired = make_order(age=timedelta(minutes=90))
    paid = make_order(status=OrderStatus.PAID, age=timedelta(minutes=10))

    summary = await reconciliation.run_once()

    assert summary.checked == 3
    assert summary.skipped == 3
    assert summary.batches == 2
    searched = {r.url.params.get("external_reference") for r in mp.requests}
    assert searched == {o.external_reference for o in stale}
    assert fresh.external_reference not in searched
    assert expired.external_reference not in searched
    assert paid.external_reference not in searched


@pytest.mark.asyncio
async def test_reconciliation_uses_attached_payment_id(db, reconciliation, make_order, mp):
    order = make_order(age=timedelta(minutes=10))
    payment = mp.add_payment("rejected", order.external_reference)
    await db.orders.attach_gateway_payment(order.id, order.version, str(payment["id"]), "pending")

    summary = await reconciliation.run_once()

    assert summary.updated == 1
    assert mp.count("GET", "/v1/payments/search") == 0
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.FAILED


@pytest.mark.asyncio
async def test_reconciliation_counts_gateway_errors_and_continues(db, reconciliation, make_order, mp):
    make_order(age=timedelta(minutes=10))
    make_order(age=timedelta(minutes=11))
    mp.respond_with = httpx.Response(503, text="unavailable")

    summary = await reconciliation.run_once()

    assert summary.checked == 2
    assert summary.errors == 2
    assert summary.examples[0]["error"] == "GATEWAY_UNAVAILABLE"


@pytest.mark.asyncio
async def test_reconciliation_stops_between_batches(db, gateway, ingestion, make_order):
    make_order(age=timedelta(minutes=10))
    stop_event = asyncio.Event()
    stop_event.set()

    summary = await ReconciliationJob(
        db, gateway, ingestion, settings=FAST_RECONCILE, stop_event=stop_event
    ).run_once()

    assert summary.stopped
    assert summary.checked == 0


# ==================== ABANDONMENT ====================


@pytest.mark.asyncio
async def test_abandoned_order_is_canceled_and_coupon_released(db, supabase, abandonment, make_order):
    supabase.seed("coupons", [{"code": "PROMO", "type": "FIXED", "value": 5, "used_count": 1}])
    order = make_order(age=timedelta(minutes=61), coupon_code="PROMO")
    recent = make_order(age=timedelta(minutes=30))

    summary = await abandonment.run_once()

    assert summary.canceled == 1
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.CANCELED
    assert (await db.get_order_by_id(recent.id)).status == OrderStatus.PENDING
    assert supabase.find("coupons", code="PROMO")[0]["used_count"] == 0
    history = await db.get_order_history(order.id)
    assert history[-1].actor == "abandonment-job"
    assert history[-1].reason == "payment window expired"


@pytest.mark.asyncio
async def test_order_paid_before_deadline_is_not_canceled(db, abandonment, make_order, mp):
    order = make_order(age=timedelta(minutes=61), payment_attempt_key="key-1")
    mp.add_payment("approved", order.external_reference)

    summary = await abandonment.run_once()

    assert summary.canceled == 0
    assert summary.ingested == 1
    stored = await db.get_order_by_id(order.id)
    assert stored.status == OrderStatus.READY_FOR_FULFILLMENT
    assert await db.transition_log.count_for_order(order.id, "CANCELED") == 0


@pytest.mark.asyncio
async def test_expired_gateway_payment_cancels_order_and_releases_coupon(db, supabase, abandonment, make_order, mp):
    supabase.seed("coupons", [{"code": "PROMO", "type": "FIXED", "value": 5, "used_count": 1}])
    order = make_order(age=timedelta(minutes=61), coupon_code="PROMO", payment_attempt_key="key-1")
    mp.add_payment("cancelled", order.external_reference)

    summary = await abandonment.run_once()

    assert summary.ingested == 1
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.CANCELED
    assert supabase.find("coupons", code="PROMO")[0]["used_count"] == 0


@pytest.mark.asyncio
async def test_rejected_payment_fails_order_and_releases_coupon(db, supabase, abandonment, make_order, mp):
    supabase.seed("coupons", [{"code": "PROMO", "type": "FIXED", "value": 5, "used_count": 1}])
    order = make_order(age=timedelta(minutes=61), coupon_code="PROMO", payment_attempt_key="key-1")
    mp.add_payment("rejected", order.external_reference)

    await abandonment.run_once()

    assert (await db.get_order_by_id(order.id)).status == OrderStatus.FAILED
    assert supabase.find("coupons", code="PROMO")[0]["used_count"] == 0


@pytest.mark.asyncio
async def test_open_payment_defers_abandonment(db, abandonment, make_order, mp):
    order = make_order(age=timedelta(minutes=61), payment_attempt_key="key-1")
    mp.add_payment("pending", order.external_reference)

    summary = await abandonment.run_once()

    assert summary.deferred == 1
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_claimed_order_without_gateway_payment_is_canceled(db, abandonment, make_order):
    order = make_order(age=timedelta(minutes=61), payment_attempt_key="key-1")

    summary = await abandonment.run_once()

    assert summary.canceled == 1
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.CANCELED


@pytest.mark.asyncio
async def test_unreachable_gateway_never_cancels(db, abandonment, make_order, mp):
    order = make_order(age=timedelta(minutes=61), payment_attempt_key="key-1")
    mp.fail_with = httpx.ConnectTimeout("down")

    summary = await abandonment.run_once()

    assert summary.errors == 1
    assert summary.canceled == 0
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_abandonment_dry_run_writes_nothing(db, abandonment, make_order):
    order = make_order(age=timedelta(minutes=61))

    summary = await abandonment.run_once(dry_run=True)

    assert summary.would_cancel == [order.external_reference]
    assert summary.canceled == 0
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_concurrent_payment_wins_over_abandonment(db, abandonment, make_order, status_service, monkeypatch):
    order = make_order(age=timedelta(minutes=61))
    original = db.orders.list_pending_older_than

    async def list_then_pay(cutoff, limit):
        orders = await original(cutoff, limit)
        # Webhook lands between the listing and the cancel
        await status_service.mark_payment_confirmed(orders[0], "999", "webhook")
        return orders

    monkeypatch.setattr(db.orders, "list_pending_older_than", list_then_pay)

    summary = await abandonment.run_once()

    assert summary.already_handled == 1
    assert (await db.get_order_by_id(order.id)).status == OrderStatus.PAID


# ==================== SCHEDULER ====================


@pytest.mark.asyncio
async def test_runner_runs_jobs_until_stopped():
    runs = []

    async def job(stop_event):
        runs.append(stop_event.is_set())

    runner = PeriodicJobRunner([PeriodicJob("heartbeat", 60, job)])
    runner.start()
    await asyncio.sleep(0.05)
    assert runner.running
    await runner.stop(timeout=1)

    assert runs == [False]
    assert not runner.running


@pytest.mark.asyncio
async def test_runner_survives_job_failure():
    calls = []

    async def flaky(stop_event):
        calls.append(1)
        raise RuntimeError("boom")

    runner = PeriodicJobRunner([PeriodicJob("flaky", 0.01, flaky)])
    runner.start()
    await asyncio.sleep(0.1)
    await runner.stop(timeout=1)

    assert len(calls) >= 2
