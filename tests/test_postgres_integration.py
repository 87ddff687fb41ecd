from __future__ import annotations

import os
import uuid
from decimal import Decimal

import pytest

from app.charges.model import Charge, ChargeStatus
from app.errors import InsufficientStock
from app.inventory.model import Product
from app.orders.service import settle_charge
from app.payouts.keys import KeyKind
from app.payouts.model import PayoutStatus

# Needs a migrated database: TEST_DATABASE_URL=... alembic upgrade head
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set")


@pytest.fixture
def pg_store(monkeypatch):
    import db
    from app.store.postgres import PostgresStore
    from settings import settings

    db.close_pool()
    monkeypatch.setattr(settings, "DATABASE_URL", TEST_DATABASE_URL, raising=False)
    yield PostgresStore()
    db.close_pool()


def _seed(store, *, quantity=2, status=ChargeStatus.ACTIVE):
    seller_id = str(uuid.uuid4())
    product = Product(
        id=str(uuid.uuid4()),
        seller_id=seller_id,
        title="Cadeira gamer",
        price=Decimal("200.00"),
        quantity=quantity,
        beneficiary_key="12345678909",
        beneficiary_key_kind=KeyKind.CPF,
    )
    charge = Charge(
        id=str(uuid.uuid4()),
        buyer_id=str(uuid.uuid4()),
        seller_id=seller_id,
        product_id=product.id,
        product_title=product.title,
        quantity=1,
        gross_amount=Decimal("200.00"),
        status=status,
        external_id=f"it-{uuid.uuid4()}",
    )
    with store.unit_of_work() as uow:
        uow.insert_product(product)
        uow.insert_charge(charge)
    return product, charge


def test_settlement_writes_order_and_payout_once(pg_store):
    product, charge = _seed(pg_store)

    first = settle_charge(pg_store, charge.id, fee_rate=Decimal("0.05"))
    second = settle_charge(pg_store, charge.id, fee_rate=Decimal("0.05"))

    assert second is None
    assert first.payout.net_amount == Decimal("190.00")
    with pg_store.unit_of_work() as uow:
        assert uow.get_charge(charge.id).status is ChargeStatus.COMPLETED
        assert uow.get_order_by_charge(charge.id).id == first.order.id
        assert uow.get_payout_by_charge(charge.id).status is PayoutStatus.PENDING
        assert uow.get_product(product.id).quantity == 1


def test_conditional_decrement_never_goes_negative(pg_store):
    product, _ = _seed(pg_store, quantity=1)

    with pg_store.unit_of_work() as uow:
        assert uow.decrement_stock(product.id, 1) == 0
    with pytest.raises(InsufficientStock):
        with pg_store.unit_of_work() as uow:
            uow.decrement_stock(product.id, 1)
    with pg_store.unit_of_work() as uow:
        assert uow.get_product(product.id).quantity == 0


def test_short_stock_flags_refund(pg_store):
    product, charge = _seed(pg_store, quantity=0)

    result = settle_charge(pg_store, charge.id)

    assert result.refund_flagged is True
    with pg_store.unit_of_work() as uow:
        assert uow.get_charge(charge.id).status is ChargeStatus.COMPLETED
        assert uow.get_order_by_charge(charge.id) is None
        assert any(r["charge_id"] == charge.id for r in uow.list_manual_refunds(limit=1000))


def test_payout_completed_requires_provider_ref_in_db(pg_store):
    import psycopg2

    _, charge = _seed(pg_store)
    result = settle_charge(pg_store, charge.id)

    with pytest.raises(psycopg2.IntegrityError):
        with pg_store.unit_of_work() as uow:
            uow.update_payout(result.payout.id, new_status=PayoutStatus.COMPLETED)


def test_purge_pending_survives_until_cleared(pg_store):
    _, charge = _seed(pg_store)
    order = settle_charge(pg_store, charge.id).order

    with pg_store.unit_of_work() as uow:
        assert uow.mark_order_delivered(order.id) is True
        assert uow.get_order(order.id).purge_pending is True
    with pg_store.unit_of_work() as uow:
        assert uow.clear_purge_pending(order.id) is True
        assert uow.clear_purge_pending(order.id) is False
        assert uow.get_order(order.id).purge_pending is False
