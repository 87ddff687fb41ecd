

# app/charges/model.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class ChargeStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


OUTSTANDING_STATUSES = (ChargeStatus.PENDING, ChargeStatus.ACTIVE)
TERMINAL_STATUSES = (ChargeStatus.COMPLETED, ChargeStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Charge:
    id: str
    buyer_id: str
    seller_id: str
    product_id: str
    product_title: str
    quantity: int
    gross_amount: Decimal
    status: ChargeStatus
    description: str = ""
    shipping_address: Optional[dict[str, Any]] = None
    external_id: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    qrcode_url: Optional[str] = None
    copy_paste: Optional[str] = None
    poll_attempts: int = 0
    next_poll_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def with_status(self, status: ChargeStatus) -> "Charge":
        return replace(self, status=status, updated_at=_utcnow())

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Charge":
        return cls(
            id=str(row["id"]),
            buyer_id=str(row["buyer_id"]),
            seller_id=str(row["seller_id"]),
            product_id=str(row["product_id"]),
            product_title=row.get("product_title") or "",
            quantity=int(row["quantity"]),
            gross_amount=Decimal(str(row["gross_amount"])),
            status=ChargeStatus(str(row["status"]).strip().upper()),
            description=row.get("description") or "",
            shipping_address=row.get("shipping_address"),
            external_id=row.get("external_id"),
            provider_transaction_id=row.get("provider_transaction_id"),
            qrcode_url=row.get("qrcode_url"),
            copy_paste=row.get("copy_paste"),
            poll_attempts=int(row.get("poll_attempts") or 0),
            next_poll_at=row.get("next_poll_at"),
            last_error=row.get("last_error"),
            created_at=row.get("created_at") or _utcnow(),
            updated_at=row.get("updated_at"),
        )
