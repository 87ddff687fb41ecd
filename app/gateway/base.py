

# app/gateway/base.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol

from app.charges.model import ChargeStatus
from app.payouts.keys import KeyKind
from app.payouts.model import PayoutStatus


@dataclass(frozen=True)
class GatewayCharge:
    external_id: str
    status: ChargeStatus
    amount: Decimal
    transaction_id: Optional[str] = None
    qrcode_url: Optional[str] = None
    copy_paste: Optional[str] = None
    response: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class GatewayPayout:
    provider_ref: str
    status: PayoutStatus
    amount: Optional[Decimal] = None
    response: Optional[dict[str, Any]] = None


class PaymentGateway(Protocol):
    def create_charge(self, gross_amount: Decimal, description: str) -> GatewayCharge: ...
    def get_charge_status(self, external_id: str) -> GatewayCharge: ...
    def create_payout(
        self,
        net_amount: Decimal,
        beneficiary_key: str,
        beneficiary_key_kind: KeyKind,
        description: str,
    ) -> GatewayPayout: ...
