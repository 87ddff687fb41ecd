


# app/charges/state_machine.py
from __future__ import annotations

from app.charges.model import ChargeStatus
from app.errors import InvalidTransition

ALLOWED = {
    ChargeStatus.PENDING: {ChargeStatus.ACTIVE, ChargeStatus.FAILED},
    ChargeStatus.ACTIVE: {ChargeStatus.COMPLETED, ChargeStatus.FAILED},
    ChargeStatus.COMPLETED: set(),
    ChargeStatus.FAILED: set(),
}

# Ordering used to ignore provider reads that lag behind local state
_RANK = {
    ChargeStatus.PENDING: 0,
    ChargeStatus.ACTIVE: 1,
    ChargeStatus.COMPLETED: 2,
    ChargeStatus.FAILED: 2,
}


def can_transition(old: ChargeStatus, new: ChargeStatus) -> bool:
    return new in ALLOWED.get(old, set())


def assert_transition(old: ChargeStatus, new: ChargeStatus) -> None:
    if not can_transition(old, new):
        raise InvalidTransition(f"Illegal charge transition: {old.value} -> {new.value}")


def is_regression(local: ChargeStatus, remote: ChargeStatus) -> bool:
    return _RANK[remote] < _RANK[local]
