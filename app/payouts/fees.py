

# app/payouts/fees.py
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from app.errors import InvalidAmount
from settings import settings

CENTS = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    # str() first so floats like 10.005 keep their written digits
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except Exception as exc:
        raise InvalidAmount(f"Not a decimal amount: {value!r}") from exc


def quantize_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def default_fee_rate() -> Decimal:
    return to_decimal(settings.PLATFORM_FEE_RATE)


def compute_net_payout(gross: Number, fee_rate: Optional[Number] = None) -> Decimal:
    """
    Seller share of a gross amount: gross * (1 - fee_rate), half-up to cents.
    """
    g = to_decimal(gross)
    if not g.is_finite() or g <= 0:
        raise InvalidAmount(f"Gross amount must be positive, got {gross!r}")

    rate = default_fee_rate() if fee_rate is None else to_decimal(fee_rate)
    if rate < 0 or rate >= 1:
        raise InvalidAmount(f"Fee rate out of range: {fee_rate!r}")

    return (g * (Decimal(1) - rate)).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_fee(gross: Number, fee_rate: Optional[Number] = None) -> Decimal:
    """
    Platform share, so that fee + net == gross exactly. Charge amounts are
    always whole cents; a sub-cent gross has no exact split and is refused.
    """
    g = to_decimal(gross)
    if g.is_finite() and g != quantize_money(g):
        raise InvalidAmount(f"Gross amount must be whole cents for a fee split, got {gross!r}")
    return g - compute_net_payout(g, fee_rate)
