

# app/orders/service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from app.charges.model import Charge, ChargeStatus
from app.errors import ChargeNotSettled, Forbidden, InsufficientStock, NotFound
from app.inventory import guard
from app.messaging.client import MessagingClient
from app.orders.model import Order, OrderState
from app.orders.state_machine import assert_transition
from app.payouts.fees import compute_fee, compute_net_payout
from app.payouts.model import Payout, PayoutStatus
from app.store.base import MarketStore

logger = logging.getLogger("nexus.orders")


@dataclass(frozen=True)
class SettlementResult:
    charge: Charge
    order: Optional[Order] = None
    payout: Optional[Payout] = None
    refund_flagged: bool = False


@dataclass(frozen=True)
class DeliveryResult:
    order: Order
    transitioned: bool
    purged_messages: int = 0


def build_order_from_charge(charge: Charge) -> Order:
    if charge.status is not ChargeStatus.COMPLETED:
        raise ChargeNotSettled(charge.id, charge.status.value)

    return Order(
        id=str(uuid.uuid4()),
        buyer_id=charge.buyer_id,
        seller_id=charge.seller_id,
        product_id=charge.product_id,
        product_title=charge.product_title,
        price=charge.gross_amount,
        quantity=charge.quantity,
        charge_id=charge.id,
        status=OrderState.PAID,
        shipping_address=charge.shipping_address,
    )


def settle_charge(store: MarketStore, charge_id: str, *, fee_rate: Optional[Decimal] = None) -> Optional[SettlementResult]:
    """
    Apply a provider-confirmed charge. One unit of work:

      1) CAS charge ACTIVE -> COMPLETED (losers return None, nothing else runs)
      2) conditional stock decrement
      3) order insert (unique per charge)
      4) payout insert (unique per charge), left PENDING for submission after commit

    Short stock keeps the charge COMPLETED and writes a manual refund flag instead
    of the order. DuplicateReconciliation propagates and rolls the whole unit back.
    """
    with store.unit_of_work() as uow:
        charge = uow.get_charge(charge_id)
        if charge is None:
            raise NotFound(f"Charge not found: {charge_id}")

        if not uow.transition_charge(charge_id, ChargeStatus.ACTIVE, ChargeStatus.COMPLETED):
            return None

        settled = charge.with_status(ChargeStatus.COMPLETED)
        product = uow.get_product(charge.product_id)

        try:
            if product is None:
                raise InsufficientStock(charge.product_id, charge.quantity)
            guard.decrement_stock(uow, charge.product_id, charge.quantity)
        except InsufficientStock as exc:
            uow.flag_manual_refund(
                charge_id=charge.id,
                buyer_id=charge.buyer_id,
                product_id=charge.product_id,
                gross_amount=charge.gross_amount,
                quantity=charge.quantity,
                reason=str(exc),
            )
            result = SettlementResult(charge=settled, refund_flagged=True)
        else:
            order = build_order_from_charge(settled)
            uow.insert_order(order)

            payout = Payout(
                id=str(uuid.uuid4()),
                source_charge_id=charge.id,
                order_id=order.id,
                seller_id=charge.seller_id,
                gross_amount=charge.gross_amount,
                net_amount=compute_net_payout(charge.gross_amount, fee_rate),
                fee_amount=compute_fee(charge.gross_amount, fee_rate),
                beneficiary_key=product.beneficiary_key,
                beneficiary_key_kind=product.beneficiary_key_kind,
                status=PayoutStatus.PENDING,
            )
            uow.insert_payout(payout)
            result = SettlementResult(charge=settled, order=order, payout=payout)

    if result.refund_flagged:
        logger.error(
            "MANUAL REFUND REQUIRED charge=%s buyer=%s product=%s amount=%s qty=%s reason=insufficient stock",
            charge.id,
            charge.buyer_id,
            charge.product_id,
            charge.gross_amount,
            charge.quantity,
        )
    else:
        logger.info(
            "charge settled charge=%s order=%s payout=%s gross=%s net=%s",
            charge.id,
            result.order.id,
            result.payout.id,
            result.payout.gross_amount,
            result.payout.net_amount,
        )
    return result


def _can_deliver(order: Order, actor: Any) -> bool:
    role = (getattr(actor, "role", "") or "").lower()
    return role == "admin" or str(getattr(actor, "user_id", "")) == order.seller_id


def mark_delivered(store: MarketStore, messaging: MessagingClient, order_id: str, actor: Any) -> DeliveryResult:
    """
    Seller (or admin) marks an order delivered.

    The call that performs PAID -> DELIVERED purges the order's chat. The order
    keeps `purge_pending` until a purge succeeds, so a repeat call after a failed
    purge retries it; once cleared, repeating the call is a no-op.
    """
    with store.unit_of_work() as uow:
        order = uow.get_order(order_id)
        if order is None:
            raise NotFound(f"Order not found: {order_id}")
        if not _can_deliver(order, actor):
            raise Forbidden("Only the seller can mark this order delivered")

        if order.status is OrderState.DELIVERED:
            transitioned = False
        else:
            assert_transition(order.status, OrderState.DELIVERED)
            transitioned = uow.mark_order_delivered(order_id)
        order = uow.get_order(order_id)

    if not order.purge_pending:
        return DeliveryResult(order=order, transitioned=transitioned)

    try:
        purged = messaging.purge_order_messages(order_id)
    except Exception:
        logger.exception("message purge failed for delivered order=%s; retried on next delivery call", order_id)
        raise

    with store.unit_of_work() as uow:
        uow.clear_purge_pending(order_id)
        order = uow.get_order(order_id)

    logger.warning(
        "destructive: purged chat history order=%s messages=%s actor=%s",
        order_id,
        purged,
        getattr(actor, "user_id", None),
    )
    return DeliveryResult(order=order, transitioned=transitioned, purged_messages=purged)
