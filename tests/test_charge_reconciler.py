from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.charges.model import ChargeStatus
from app.errors import GatewayErrorKind, NotFound
from app.payouts.model import PayoutStatus
from app.workers.charge_worker import ChargeReconciler


def _reconciler(store, gateway) -> ChargeReconciler:
    return ChargeReconciler(store, gateway, fee_rate=Decimal("0.05"), base_backoff_seconds=30, max_backoff_seconds=300)


def _load(store, charge_id):
    with store.unit_of_work() as uow:
        return uow.get_charge(charge_id), uow.get_order_by_charge(charge_id), uow.get_payout_by_charge(charge_id)


def _make_due(store, charge_id):
    # Skip the scheduled wait so the next pass polls again
    with store.unit_of_work() as uow:
        uow.schedule_next_poll(
            charge_id,
            next_poll_at=datetime.now(timezone.utc) - timedelta(seconds=1),
            last_error=None,
            count_attempt=False,
        )


def test_end_to_end_200_becomes_190_payout(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()), price="200.00", quantity=4)
    charge = seed_charge(p, str(uuid.uuid4()))
    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)

    summary = _reconciler(store, gateway).process_once(batch_size=10)

    assert summary.claimed == 1 and summary.settled == 1 and summary.payouts_submitted == 1
    local, order, payout = _load(store, charge.id)
    assert local.status is ChargeStatus.COMPLETED
    assert order.price == Decimal("200.00")
    assert payout.net_amount == Decimal("190.00")
    assert payout.provider_ref is not None
    with store.unit_of_work() as uow:
        assert uow.get_product(p.id).quantity == 3

    sent = gateway.calls_for("create_payout")
    assert len(sent) == 1
    assert sent[0]["net_amount"] == Decimal("190.00")
    assert sent[0]["beneficiary_key"] == "seller@mail.com"
    assert sent[0]["description"] == "Repasse Nexus Market"


def test_pending_then_active_then_completed(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()))
    charge = seed_charge(p, str(uuid.uuid4()))
    r = _reconciler(store, gateway)

    r.process_once()
    assert _load(store, charge.id)[0].status is ChargeStatus.PENDING

    gateway.set_charge_status(charge.external_id, ChargeStatus.ACTIVE)
    _make_due(store, charge.id)
    r.process_once()
    assert _load(store, charge.id)[0].status is ChargeStatus.ACTIVE

    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)
    r.process_once()
    local, order, payout = _load(store, charge.id)
    assert local.status is ChargeStatus.COMPLETED
    assert order is not None and payout is not None


def test_repeated_observation_settles_once(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()), quantity=10)
    charge = seed_charge(p, str(uuid.uuid4()))
    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)
    r = _reconciler(store, gateway)

    for _ in range(5):
        r.process_once()
        r.reconcile_charge(charge.id)

    with store.unit_of_work() as uow:
        assert len(uow.list_orders(buyer_id=charge.buyer_id)) == 1
        assert uow.get_product(p.id).quantity == 9
    assert len(gateway.calls_for("create_payout")) == 1


def test_concurrent_pollers_settle_once(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()), quantity=10)
    charge = seed_charge(p, str(uuid.uuid4()))
    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)

    barrier = threading.Barrier(6)

    def worker():
        r = _reconciler(store, gateway)
        barrier.wait()
        r.reconcile_charge(charge.id)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    with store.unit_of_work() as uow:
        assert len(uow.list_orders(buyer_id=charge.buyer_id)) == 1
        assert uow.get_product(p.id).quantity == 9
    assert len(gateway.calls_for("create_payout")) == 1


def test_failed_charge_creates_nothing(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()), quantity=2)
    charge = seed_charge(p, str(uuid.uuid4()))
    gateway.set_charge_status(charge.external_id, ChargeStatus.FAILED)

    summary = _reconciler(store, gateway).process_once()

    assert summary.failed == 1
    local, order, payout = _load(store, charge.id)
    assert local.status is ChargeStatus.FAILED
    assert order is None and payout is None
    with store.unit_of_work() as uow:
        assert uow.get_product(p.id).quantity == 2


def test_gateway_error_schedules_backoff_without_advancing(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()))
    charge = seed_charge(p, str(uuid.uuid4()))
    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)
    gateway.fail_next("get_charge_status", GatewayErrorKind.UNREACHABLE, "timeout")

    before = datetime.now(timezone.utc)
    summary = _reconciler(store, gateway).process_once()

    assert summary.poll_errors == 1 and summary.settled == 0
    local, order, _ = _load(store, charge.id)
    assert local.status is ChargeStatus.PENDING
    assert order is None
    assert local.poll_attempts == 1
    assert "timeout" in local.last_error
    assert local.next_poll_at >= before + timedelta(seconds=29)

    # Not due yet: nothing claimed
    assert _reconciler(store, gateway).process_once().claimed == 0


def test_backoff_doubles_and_caps():
    r = ChargeReconciler(None, None, base_backoff_seconds=30, max_backoff_seconds=200)
    assert [r.backoff_delay(n) for n in range(1, 6)] == [30, 60, 120, 200, 200]


def test_provider_regression_is_ignored(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()))
    charge = seed_charge(p, str(uuid.uuid4()), status=ChargeStatus.ACTIVE)
    gateway.set_charge_status(charge.external_id, ChargeStatus.PENDING)

    summary = _reconciler(store, gateway).process_once()

    assert summary.ignored_regressions == 1
    assert _load(store, charge.id)[0].status is ChargeStatus.ACTIVE


def test_amount_mismatch_does_not_settle(store, gateway, seed_product, seed_charge, caplog):
    p = seed_product(str(uuid.uuid4()), price="200.00")
    charge = seed_charge(p, str(uuid.uuid4()))
    gateway.charges[charge.external_id]["amount"] = Decimal("2.00")
    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)

    caplog.set_level(logging.ERROR, logger="nexus.worker.charges")
    summary = _reconciler(store, gateway).process_once()

    assert summary.poll_errors == 1
    local, order, _ = _load(store, charge.id)
    assert local.status is ChargeStatus.PENDING
    assert order is None
    assert any("does not match" in r.getMessage() for r in caplog.records)


def test_insufficient_stock_flags_refund_and_skips_payout(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()), quantity=1)
    first = seed_charge(p, str(uuid.uuid4()))
    second = seed_charge(p, str(uuid.uuid4()))
    gateway.set_charge_status(first.external_id, ChargeStatus.COMPLETED)
    gateway.set_charge_status(second.external_id, ChargeStatus.COMPLETED)

    summary = _reconciler(store, gateway).process_once()

    assert summary.settled == 2
    assert summary.refunds_flagged == 1
    assert summary.payouts_submitted == 1
    with store.unit_of_work() as uow:
        assert uow.get_product(p.id).quantity == 0
        refunds = uow.list_manual_refunds()
    assert len(refunds) == 1
    assert len(gateway.calls_for("create_payout")) == 1


def test_duplicate_settlement_is_logged_as_defect(store, gateway, seed_product, seed_charge, caplog):
    from dataclasses import replace

    from app.orders.service import build_order_from_charge

    p = seed_product(str(uuid.uuid4()))
    charge = seed_charge(p, str(uuid.uuid4()), status=ChargeStatus.ACTIVE)
    with store.unit_of_work() as uow:
        uow.insert_order(build_order_from_charge(replace(charge, status=ChargeStatus.COMPLETED)))
    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)

    caplog.set_level(logging.ERROR, logger="nexus.worker.charges")
    summary = _reconciler(store, gateway).process_once()

    assert summary.duplicates == 1
    assert _load(store, charge.id)[0].status is ChargeStatus.ACTIVE
    assert any("DEFECT" in r.getMessage() for r in caplog.records)


def test_payout_transient_failure_stays_pending(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()))
    charge = seed_charge(p, str(uuid.uuid4()))
    gateway.set_charge_status(charge.external_id, ChargeStatus.COMPLETED)
    gateway.fail_next("create_payout", GatewayErrorKind.UNREACHABLE, "read timeout")

    _reconciler(store, gateway).process_once()

    local, order, payout = _load(store, charge.id)
    assert local.status is ChargeStatus.COMPLETED
    assert order is not None
    assert payout.status is PayoutStatus.PENDING
    assert payout.provider_ref is None
    assert payout.attempt_count == 1
    assert payout.next_retry_at is not None
    assert payout.last_error.startswith("could not process payout")


def test_reconcile_charge_unknown(store, gateway):
    with pytest.raises(NotFound):
        _reconciler(store, gateway).reconcile_charge(str(uuid.uuid4()))


def test_reconcile_charge_terminal_is_not_polled(store, gateway, seed_product, seed_charge):
    p = seed_product(str(uuid.uuid4()))
    charge = seed_charge(p, str(uuid.uuid4()), status=ChargeStatus.FAILED)

    got = _reconciler(store, gateway).reconcile_charge(charge.id)

    assert got.status is ChargeStatus.FAILED
    assert gateway.calls_for("get_charge_status") == []

