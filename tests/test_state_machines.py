from __future__ import annotations

import pytest

from app.charges import state_machine as charges_sm
from app.charges.model import Charge, ChargeStatus
from app.errors import InvalidTransition
from app.orders import state_machine as orders_sm
from app.orders.model import Order, OrderState
from app.payouts import state_machine as payouts_sm
from app.payouts.model import PayoutStatus
from decimal import Decimal


def _charge(status: ChargeStatus) -> Charge:
    return Charge(
        id="c1",
        buyer_id="b1",
        seller_id="s1",
        product_id="p1",
        product_title="t",
        quantity=1,
        gross_amount=Decimal("10.00"),
        status=status,
    )


def test_charge_valid_transitions():
    charges_sm.assert_transition(ChargeStatus.PENDING, ChargeStatus.ACTIVE)
    charges_sm.assert_transition(ChargeStatus.PENDING, ChargeStatus.FAILED)
    charges_sm.assert_transition(ChargeStatus.ACTIVE, ChargeStatus.COMPLETED)
    charges_sm.assert_transition(ChargeStatus.ACTIVE, ChargeStatus.FAILED)


def test_charge_cannot_skip_active():
    with pytest.raises(InvalidTransition):
        charges_sm.assert_transition(ChargeStatus.PENDING, ChargeStatus.COMPLETED)


@pytest.mark.parametrize("terminal", [ChargeStatus.COMPLETED, ChargeStatus.FAILED])
def test_charge_terminal_states_frozen(terminal):
    for target in ChargeStatus:
        assert not charges_sm.can_transition(terminal, target)


def test_charge_regression_detection():
    assert charges_sm.is_regression(ChargeStatus.ACTIVE, ChargeStatus.PENDING)
    assert not charges_sm.is_regression(ChargeStatus.PENDING, ChargeStatus.ACTIVE)
    assert not charges_sm.is_regression(ChargeStatus.ACTIVE, ChargeStatus.COMPLETED)


def test_order_transitions():
    orders_sm.assert_transition(OrderState.AWAITING_PAYMENT, OrderState.PAID)
    orders_sm.assert_transition(OrderState.AWAITING_PAYMENT, OrderState.FAILED)
    orders_sm.assert_transition(OrderState.PAID, OrderState.DELIVERED)

    with pytest.raises(InvalidTransition):
        orders_sm.assert_transition(OrderState.PAID, OrderState.FAILED)
    with pytest.raises(InvalidTransition):
        orders_sm.assert_transition(OrderState.DELIVERED, OrderState.PAID)
    with pytest.raises(InvalidTransition):
        orders_sm.assert_transition(OrderState.AWAITING_PAYMENT, OrderState.DELIVERED)


def test_order_state_derived_from_charge():
    assert orders_sm.order_state_for(_charge(ChargeStatus.PENDING)) is OrderState.AWAITING_PAYMENT
    assert orders_sm.order_state_for(_charge(ChargeStatus.ACTIVE)) is OrderState.AWAITING_PAYMENT
    assert orders_sm.order_state_for(_charge(ChargeStatus.FAILED)) is OrderState.FAILED

    order = Order(
        id="o1",
        buyer_id="b1",
        seller_id="s1",
        product_id="p1",
        product_title="t",
        price=Decimal("10.00"),
        quantity=1,
        charge_id="c1",
        status=OrderState.DELIVERED,
    )
    assert orders_sm.order_state_for(_charge(ChargeStatus.COMPLETED), order) is OrderState.DELIVERED


def test_payout_transitions():
    payouts_sm.assert_transition(PayoutStatus.PENDING, PayoutStatus.COMPLETED)
    payouts_sm.assert_transition(PayoutStatus.PENDING, PayoutStatus.FAILED)
    payouts_sm.assert_transition(PayoutStatus.PENDING, PayoutStatus.PENDING)

    with pytest.raises(InvalidTransition):
        payouts_sm.assert_transition(PayoutStatus.COMPLETED, PayoutStatus.FAILED)
    with pytest.raises(InvalidTransition):
        payouts_sm.assert_transition(PayoutStatus.FAILED, PayoutStatus.COMPLETED)


def test_payout_completed_requires_provider_ref():
    with pytest.raises(InvalidTransition):
        payouts_sm.assert_terminal_invariant(PayoutStatus.COMPLETED, None)
    payouts_sm.assert_terminal_invariant(PayoutStatus.COMPLETED, "wd-1")
    payouts_sm.assert_terminal_invariant(PayoutStatus.FAILED, None)
