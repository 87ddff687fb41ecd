

# app/store/base.py
from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol

from app.charges.model import Charge, ChargeStatus
from app.inventory.model import Product
from app.orders.model import Order
from app.payouts.model import Payout, PayoutStatus


class UnitOfWork(Protocol):
    """
    One store transaction. Everything inside commits or rolls back together.
    No network calls are made while a unit of work is open.
    """

    # products
    def insert_product(self, product: Product) -> None: ...
    def get_product(self, product_id: str) -> Optional[Product]: ...
    def decrement_stock(self, product_id: str, quantity: int) -> int: ...

    # charges
    def insert_charge(self, charge: Charge) -> None: ...
    def get_charge(self, charge_id: str) -> Optional[Charge]: ...
    def claim_outstanding_charges(self, *, batch_size: int, lease_seconds: int) -> list[Charge]: ...
    def transition_charge(
        self,
        charge_id: str,
        from_status: ChargeStatus,
        to_status: ChargeStatus,
        *,
        last_error: Optional[str] = None,
    ) -> bool: ...
    def schedule_next_poll(
        self,
        charge_id: str,
        *,
        next_poll_at: datetime,
        last_error: Optional[str],
        count_attempt: bool,
    ) -> bool: ...
    def flag_manual_refund(
        self,
        *,
        charge_id: str,
        buyer_id: str,
        product_id: str,
        gross_amount: Decimal,
        quantity: int,
        reason: str,
    ) -> bool: ...
    def list_manual_refunds(self, *, limit: int = 200) -> list[dict[str, Any]]: ...
    def list_completed_without_order(self, *, limit: int = 200) -> list[dict[str, Any]]: ...

    # orders
    def insert_order(self, order: Order) -> None: ...
    def get_order(self, order_id: str) -> Optional[Order]: ...
    def get_order_by_charge(self, charge_id: str) -> Optional[Order]: ...
    def list_orders(
        self,
        *,
        buyer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[Order]: ...
    def mark_order_delivered(self, order_id: str) -> bool: ...
    def clear_purge_pending(self, order_id: str) -> bool: ...

    # payouts
    def insert_payout(self, payout: Payout) -> None: ...
    def get_payout(self, payout_id: str) -> Optional[Payout]: ...
    def get_payout_by_order(self, order_id: str) -> Optional[Payout]: ...
    def get_payout_by_charge(self, charge_id: str) -> Optional[Payout]: ...
    def claim_retryable_payouts(self, *, batch_size: int, lease_seconds: int) -> list[Payout]: ...
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
    ) -> bool: ...
    def list_payouts_by_status(self, status: PayoutStatus, *, limit: int = 200) -> list[Payout]: ...

    # reports
    def save_reconcile_report(self, *, summary: dict[str, Any], items: list[dict[str, Any]]) -> str: ...


class MarketStore(Protocol):
    def unit_of_work(self) -> AbstractContextManager[UnitOfWork]: ...
