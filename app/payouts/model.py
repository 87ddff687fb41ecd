

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Any

from app.payouts.keys import KeyKind


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Payout:
    id: str
    source_charge_id: str
    order_id: str
    seller_id: str
    gross_amount: Decimal
    net_amount: Decimal
    fee_amount: Decimal
    beneficiary_key: str
    beneficiary_key_kind: KeyKind
    status: PayoutStatus = PayoutStatus.PENDING
    provider_ref: Optional[str] = None
    attempt_count: int = 0
    next_retry_at: Optional[datetime] = None
    last_error: Optional[str] = None
    provider_response: Optional[dict[str, Any]] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def submitted(self) -> bool:
        return bool(self.provider_ref)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Payout":
        return cls(
            id=str(row["id"]),
            source_charge_id=str(row["source_charge_id"]),
            order_id=str(row["order_id"]),
            seller_id=str(row["seller_id"]),
            gross_amount=Decimal(str(row["gross_amount"])),
            net_amount=Decimal(str(row["net_amount"])),
            fee_amount=Decimal(str(row["fee_amount"])),
            beneficiary_key=row["beneficiary_key"],
            beneficiary_key_kind=KeyKind(row["beneficiary_key_kind"]),
            status=PayoutStatus(row["status"]),
            provider_ref=row.get("provider_ref"),
            attempt_count=int(row.get("attempt_count") or 0),
            next_retry_at=row.get("next_retry_at"),
            last_error=row.get("last_error"),
            provider_response=row.get("provider_response"),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )
