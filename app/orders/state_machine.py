

# app/orders/state_machine.py
from __future__ import annotations

from typing import Optional

from app.charges.model import Charge, ChargeStatus
from app.errors import InvalidTransition
from app.orders.model import Order, OrderState

ALLOWED = {
    OrderState.AWAITING_PAYMENT: {OrderState.PAID, OrderState.FAILED},
    OrderState.PAID: {OrderState.DELIVERED},
    OrderState.DELIVERED: set(),
    OrderState.FAILED: set(),
}


def assert_transition(old: OrderState, new: OrderState) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal order transition: {old.value} -> {new.value}")


def order_state_for(charge: Charge, order: Optional[Order] = None) -> OrderState:
    """
    Externally visible order state for a checkout.

    An order row only exists once its charge is COMPLETED, so the states
    before that are derived from the charge. A COMPLETED charge with no
    order (stock ran out, refund flagged) stays AWAITING_PAYMENT from the
    buyer's point of view until an operator resolves it.
    """
    if order is not None:
        return order.status
    if charge.status is ChargeStatus.FAILED:
        return OrderState.FAILED
    return OrderState.AWAITING_PAYMENT
