

# app/inventory/model.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from app.payouts.keys import KeyKind, resolve_key_kind

# Defaulting policy for catalog rows. Applied once, when a row enters the
# core (read from the store or created through the API), never at call sites.
DEFAULT_QUANTITY = 1
DEFAULT_CITY = "Não informado"
DEFAULT_DELIVERY_METHOD = "pickup"


@dataclass(frozen=True)
class Product:
    id: str
    seller_id: str
    title: str
    price: Decimal
    quantity: int
    beneficiary_key: str
    beneficiary_key_kind: KeyKind
    city: str = DEFAULT_CITY
    delivery_method: str = DEFAULT_DELIVERY_METHOD
    description: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Product":
        key = (row.get("beneficiary_key") or "").strip()
        quantity = row.get("quantity")
        return cls(
            id=str(row["id"]),
            seller_id=str(row["seller_id"]),
            title=row.get("title") or "",
            price=Decimal(str(row["price"])),
            quantity=DEFAULT_QUANTITY if quantity is None else int(quantity),
            beneficiary_key=key,
            beneficiary_key_kind=resolve_key_kind(key, row.get("beneficiary_key_kind")),
            city=row.get("city") or DEFAULT_CITY,
            delivery_method=row.get("delivery_method") or DEFAULT_DELIVERY_METHOD,
            description=row.get("description") or "",
        )


def normalize_product_input(
    *,
    quantity: Optional[int],
    city: Optional[str],
    beneficiary_key: str,
    beneficiary_key_kind: Optional[str],
    delivery_method: Optional[str] = None,
) -> dict[str, Any]:
    key = (beneficiary_key or "").strip()
    return {
        "quantity": DEFAULT_QUANTITY if quantity is None else int(quantity),
        "city": (city or "").strip() or DEFAULT_CITY,
        "beneficiary_key": key,
        "beneficiary_key_kind": resolve_key_kind(key, beneficiary_key_kind).value,
        "delivery_method": (delivery_method or "").strip() or DEFAULT_DELIVERY_METHOD,
    }
