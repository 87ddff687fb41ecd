

# app/errors.py
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class MarketError(Exception):
    code = "MARKET_ERROR"


class GatewayErrorKind(str, Enum):
    UNREACHABLE = "UNREACHABLE"
    REJECTED_BY_PROVIDER = "REJECTED_BY_PROVIDER"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    INVALID_BENEFICIARY = "INVALID_BENEFICIARY"


class GatewayError(MarketError):
    code = "GATEWAY_ERROR"

    def __init__(
        self,
        kind: GatewayErrorKind,
        message: str,
        *,
        http_status: Optional[int] = None,
        response: Optional[dict[str, Any]] = None,
    ):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message
        self.http_status = http_status
        self.response = response

    @property
    def retryable(self) -> bool:
        # Only transport-level failures are safe to retry
        return self.kind is GatewayErrorKind.UNREACHABLE


class InvalidAmount(MarketError):
    code = "INVALID_AMOUNT"


class InsufficientStock(MarketError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int):
        super().__init__(f"Insufficient stock for product={product_id} requested={requested}")
        self.product_id = product_id
        self.requested = requested


class ChargeNotSettled(MarketError):
    code = "CHARGE_NOT_SETTLED"

    def __init__(self, charge_id: str, status: str):
        super().__init__(f"Charge {charge_id} is {status}, not COMPLETED")
        self.charge_id = charge_id
        self.status = status


class DuplicateReconciliation(MarketError):
    """A second settlement was attempted for a charge that already has an order."""

    code = "DUPLICATE_RECONCILIATION"

    def __init__(self, charge_id: str):
        super().__init__(f"Charge {charge_id} already settled")
        self.charge_id = charge_id


class InvalidTransition(MarketError):
    code = "INVALID_TRANSITION"


class NotFound(MarketError):
    code = "NOT_FOUND"


class Forbidden(MarketError):
    code = "FORBIDDEN"
