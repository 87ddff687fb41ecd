



# app/payouts/state_machine.py
from app.errors import InvalidTransition
from app.payouts.model import PayoutStatus

ALLOWED = {
    PayoutStatus.PENDING: {PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.PENDING},  # PENDING->PENDING allowed for retry scheduling
    PayoutStatus.COMPLETED: set(),
    PayoutStatus.FAILED: set(),
}


def assert_transition(old: PayoutStatus, new: PayoutStatus) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal payout transition: {old.value} -> {new.value}")


def assert_terminal_invariant(new_status: PayoutStatus, provider_ref: str | None) -> None:
    """
    Invariant: a payout can only be COMPLETED once the provider has given it a reference.
    """
    if new_status is PayoutStatus.COMPLETED and not provider_ref:
        raise InvalidTransition("Invariant violation: status=COMPLETED requires provider_ref")
