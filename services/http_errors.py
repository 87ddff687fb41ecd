

# services/http_errors.py
from __future__ import annotations

from fastapi import HTTPException

from app.errors import GatewayError, MarketError

MARKET_ERROR_HTTP_MAP: dict[str, tuple[int, str]] = {
    "NOT_FOUND": (404, "Not found"),
    "FORBIDDEN": (403, "Forbidden"),
    "INVALID_AMOUNT": (422, "Invalid amount"),
    "INSUFFICIENT_STOCK": (409, "Insufficient stock"),
    "CHARGE_NOT_SETTLED": (409, "Charge not settled"),
    "INVALID_TRANSITION": (409, "Invalid state transition"),
    "DUPLICATE_RECONCILIATION": (409, "Charge already settled"),
}


def raise_http_from_market_error(exc: Exception, *, gateway_detail: str = "could not reach payment provider") -> None:
    """
    Convert known domain errors into HTTP responses; otherwise fail closed.
    """
    if isinstance(exc, GatewayError):
        raise HTTPException(status_code=502, detail=gateway_detail) from exc

    code = getattr(exc, "code", None) if isinstance(exc, MarketError) else None
    if code and code in MARKET_ERROR_HTTP_MAP:
        status, message = MARKET_ERROR_HTTP_MAP[code]
        raise HTTPException(status_code=status, detail=message) from exc

    raise HTTPException(status_code=500, detail="Internal server error") from exc
