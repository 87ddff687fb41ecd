

# app/orders/model.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class OrderState(str, Enum):
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAID = "PAID"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


# Only these are ever persisted on an order row
PERSISTED_STATES = (OrderState.PAID, OrderState.DELIVERED)


@dataclass(frozen=True)
class Order:
    id: str
    buyer_id: str
    seller_id: str
    product_id: str
    product_title: str
    price: Decimal
    quantity: int
    charge_id: str
    status: OrderState = OrderState.PAID
    shipping_address: Optional[dict[str, Any]] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    delivered_at: Optional[datetime] = None
    # DELIVERED but the chat purge has not succeeded yet
    purge_pending: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Order":
        return cls(
            id=str(row["id"]),
            buyer_id=str(row["buyer_id"]),
            seller_id=str(row["seller_id"]),
            product_id=str(row["product_id"]),
            product_title=row.get("product_title") or "",
            price=Decimal(str(row["price"])),
            quantity=int(row["quantity"]),
            charge_id=str(row["charge_id"]),
            status=OrderState(row["status"]),
            shipping_address=row.get("shipping_address"),
            created_at=row["created_at"],
            delivered_at=row.get("delivered_at"),
            purge_pending=bool(row.get("purge_pending")),
        )
