

# app/store/memory.py
from __future__ import annotations

import copy
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterator, Optional

from app.charges.model import OUTSTANDING_STATUSES, Charge, ChargeStatus
from app.errors import DuplicateReconciliation, InsufficientStock, InvalidAmount
from app.inventory.model import Product
from app.orders.model import Order, OrderState
from app.payouts.model import Payout, PayoutStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _State:
    products: dict[str, Product] = field(default_factory=dict)
    charges: dict[str, Charge] = field(default_factory=dict)
    orders: dict[str, Order] = field(default_factory=dict)
    payouts: dict[str, Payout] = field(default_factory=dict)
    refunds: dict[str, dict[str, Any]] = field(default_factory=dict)
    reports: list[dict[str, Any]] = field(default_factory=list)


class InMemoryUnitOfWork:
    """
    Runs with the store lock held, so every method sees a serialized view.
    Rollback restores the snapshot taken when the unit of work started.
    """

    def __init__(self, state: _State):
        self.s = state

    # products
    def insert_product(self, product: Product) -> None:
        self.s.products[product.id] = product

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.s.products.get(product_id)

    def decrement_stock(self, product_id: str, quantity: int) -> int:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise InvalidAmount(f"Quantity must be a positive integer, got {quantity!r}")
        product = self.s.products.get(product_id)
        if product is None or product.quantity < quantity:
            raise InsufficientStock(product_id, quantity)
        self.s.products[product_id] = replace(product, quantity=product.quantity - quantity)
        return product.quantity - quantity

    # charges
    def insert_charge(self, charge: Charge) -> None:
        self.s.charges[charge.id] = charge

    def get_charge(self, charge_id: str) -> Optional[Charge]:
        return self.s.charges.get(charge_id)

    def claim_outstanding_charges(self, *, batch_size: int, lease_seconds: int) -> list[Charge]:
        now = _utcnow()
        due = [
            c
            for c in self.s.charges.values()
            if c.status in OUTSTANDING_STATUSES and (c.next_poll_at is None or c.next_poll_at <= now)
        ]
        due.sort(key=lambda c: (c.next_poll_at is not None, c.next_poll_at or now, c.created_at))
        claimed = []
        for c in due[:batch_size]:
            self.s.charges[c.id] = replace(c, next_poll_at=now + timedelta(seconds=lease_seconds))
            claimed.append(self.s.charges[c.id])
        return claimed

    def transition_charge(
        self,
        charge_id: str,
        from_status: ChargeStatus,
        to_status: ChargeStatus,
        *,
        last_error: Optional[str] = None,
    ) -> bool:
        c = self.s.charges.get(charge_id)
        if c is None or c.status is not from_status:
            return False
        self.s.charges[charge_id] = replace(
            c,
            status=to_status,
            next_poll_at=None,
            last_error=last_error if last_error is not None else c.last_error,
            updated_at=_utcnow(),
        )
        return True

    def schedule_next_poll(
        self,
        charge_id: str,
        *,
        next_poll_at: datetime,
        last_error: Optional[str],
        count_attempt: bool,
    ) -> bool:
        c = self.s.charges.get(charge_id)
        if c is None or c.status not in OUTSTANDING_STATUSES:
            return False
        self.s.charges[charge_id] = replace(
            c,
            next_poll_at=next_poll_at,
            last_error=last_error,
            poll_attempts=c.poll_attempts + (1 if count_attempt else 0),
            updated_at=_utcnow(),
        )
        return True

    def flag_manual_refund(
        self,
        *,
        charge_id: str,
        buyer_id: str,
        product_id: str,
        gross_amount: Decimal,
        quantity: int,
        reason: str,
    ) -> bool:
        if charge_id in self.s.refunds:
            return False
        self.s.refunds[charge_id] = {
            "charge_id": charge_id,
            "buyer_id": buyer_id,
            "product_id": product_id,
            "gross_amount": gross_amount,
            "quantity": quantity,
            "reason": reason,
            "created_at": _utcnow(),
        }
        return True

    def list_manual_refunds(self, *, limit: int = 200) -> list[dict[str, Any]]:
        rows = sorted(self.s.refunds.values(), key=lambda r: r["created_at"], reverse=True)
        return [dict(r) for r in rows[:limit]]

    def list_completed_without_order(self, *, limit: int = 200) -> list[dict[str, Any]]:
        settled = {o.charge_id for o in self.s.orders.values()}
        rows = [
            {"charge_id": c.id, "gross_amount": c.gross_amount, "updated_at": c.updated_at}
            for c in self.s.charges.values()
            if c.status is ChargeStatus.COMPLETED and c.id not in settled and c.id not in self.s.refunds
        ]
        return rows[:limit]

    # orders
    def insert_order(self, order: Order) -> None:
        if any(o.charge_id == order.charge_id for o in self.s.orders.values()):
            raise DuplicateReconciliation(order.charge_id)
        self.s.orders[order.id] = order

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.s.orders.get(order_id)

    def get_order_by_charge(self, charge_id: str) -> Optional[Order]:
        return next((o for o in self.s.orders.values() if o.charge_id == charge_id), None)

    def list_orders(
        self,
        *,
        buyer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[Order]:
        if (buyer_id is None) == (seller_id is None):
            raise ValueError("exactly one of buyer_id / seller_id is required")
        if buyer_id is not None:
            rows = [o for o in self.s.orders.values() if o.buyer_id == buyer_id]
        else:
            rows = [o for o in self.s.orders.values() if o.seller_id == seller_id]
        rows.sort(key=lambda o: o.created_at, reverse=True)
        return rows[:limit]

    def mark_order_delivered(self, order_id: str) -> bool:
        o = self.s.orders.get(order_id)
        if o is None or o.status is not OrderState.PAID:
            return False
        self.s.orders[order_id] = replace(o, status=OrderState.DELIVERED, delivered_at=_utcnow(), purge_pending=True)
        return True

    def clear_purge_pending(self, order_id: str) -> bool:
        o = self.s.orders.get(order_id)
        if o is None or not o.purge_pending:
            return False
        self.s.orders[order_id] = replace(o, purge_pending=False)
        return True

    # payouts
    def insert_payout(self, payout: Payout) -> None:
        if any(p.source_charge_id == payout.source_charge_id for p in self.s.payouts.values()):
            raise DuplicateReconciliation(payout.source_charge_id)
        self.s.payouts[payout.id] = payout

    def get_payout(self, payout_id: str) -> Optional[Payout]:
        return self.s.payouts.get(payout_id)

    def get_payout_by_order(self, order_id: str) -> Optional[Payout]:
        return next((p for p in self.s.payouts.values() if p.order_id == order_id), None)

    def get_payout_by_charge(self, charge_id: str) -> Optional[Payout]:
        return next((p for p in self.s.payouts.values() if p.source_charge_id == charge_id), None)

    def claim_retryable_payouts(self, *, batch_size: int, lease_seconds: int) -> list[Payout]:
        now = _utcnow()
        due = [
            p
            for p in self.s.payouts.values()
            if p.status is PayoutStatus.PENDING
            and not p.provider_ref
            and (p.next_retry_at is None or p.next_retry_at <= now)
        ]
        due.sort(key=lambda p: p.created_at)
        claimed = []
        for p in due[:batch_size]:
            self.s.payouts[p.id] = replace(p, next_retry_at=now + timedelta(seconds=lease_seconds))
            claimed.append(self.s.payouts[p.id])
        return claimed

    def update_payout(
        self,
        payout_id: str,
        *,
        new_status: PayoutStatus,
        from_status: PayoutStatus = PayoutStatus.PENDING,
        provider_ref: Optional[str] = None,
        provider_response: Optional[dict[str, Any]] = None,
        last_error: Optional[str] = None,
        attempt_count: Optional[int] = None,
        next_retry_at: Optional[datetime] = None,
    ) -> bool:
        p = self.s.payouts.get(payout_id)
        if p is None or p.status is not from_status:
            return False
        self.s.payouts[payout_id] = replace(
            p,
            status=new_status,
            provider_ref=provider_ref or p.provider_ref,
            provider_response=provider_response if provider_response is not None else p.provider_response,
            last_error=last_error,
            attempt_count=p.attempt_count if attempt_count is None else attempt_count,
            next_retry_at=next_retry_at,
            updated_at=_utcnow(),
        )
        return True

    def list_payouts_by_status(self, status: PayoutStatus, *, limit: int = 200) -> list[Payout]:
        rows = [p for p in self.s.payouts.values() if p.status is status]
        rows.sort(key=lambda p: p.updated_at or p.created_at, reverse=True)
        return rows[:limit]

    # reports
    def save_reconcile_report(self, *, summary: dict[str, Any], items: list[dict[str, Any]]) -> str:
        report_id = str(uuid.uuid4())
        self.s.reports.append({"id": report_id, "run_at": _utcnow(), "summary": dict(summary), "items": list(items)})
        return report_id


class InMemoryStore:
    """
    Single-process store used in sandbox mode and tests.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state = _State()

    @contextmanager
    def unit_of_work(self) -> Iterator[InMemoryUnitOfWork]:
        with self._lock:
            snapshot = copy.deepcopy(self._state)
            try:
                yield InMemoryUnitOfWork(self._state)
            except BaseException:
                self._state.__dict__.update(snapshot.__dict__)
                raise
